"""
Auth Token Model - the single active fleet API credential
"""
from sqlalchemy import Column, Integer, BigInteger, Text

from courier_sync.db.database import Base


class AuthToken(Base):
    """Singleton record, replaced on every refresh (see TokenStore.replace)"""

    __tablename__ = "auth_tokens"

    id = Column(Integer, primary_key=True)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    expires_at = Column(BigInteger, nullable=False, index=True)  # epoch ms
    updated_at = Column(BigInteger, nullable=False)
