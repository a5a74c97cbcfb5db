"""
Courier Earning Model - append-only earnings transactions of a daily bucket
"""
from sqlalchemy import Column, Integer, BigInteger, String, Float, ForeignKey
from sqlalchemy.orm import relationship

from courier_sync.db.database import Base


class CourierEarning(Base):
    """
    One aggregated transaction as received from the earnings feed.

    Rows are only ever inserted. Overlapping fetch windows may deliver the
    same transaction twice; no de-duplication happens here.
    """

    __tablename__ = "courier_earnings"

    id = Column(Integer, primary_key=True, index=True)
    stats_id = Column(Integer, ForeignKey("courier_stats.id"), nullable=False, index=True)

    amount = Column(Float, nullable=True)
    currency = Column(String(10), nullable=True)
    transaction_type = Column(String(100), nullable=True)
    company_id = Column(String(100), nullable=True)
    recorded_at = Column(BigInteger, nullable=False)  # epoch ms

    stats = relationship("CourierStats", back_populates="earnings")
