"""
Courier Model - profile mirrored from the fleet management system
"""
from sqlalchemy import Column, Integer, BigInteger, String, Boolean, JSON

from courier_sync.db.database import Base


class Courier(Base):
    """One row per fleet courier id. Never deleted; disabling flips is_disabled."""

    __tablename__ = "couriers"

    id = Column(Integer, primary_key=True, index=True)
    courier_id = Column(BigInteger, unique=True, nullable=False, index=True)

    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    name = Column(String(200), nullable=True)
    email = Column(String(200), nullable=True, index=True)
    phone = Column(String(50), nullable=True, index=True)
    contract_type = Column(String(50), nullable=True)
    vehicle_type = Column(String(50), nullable=True)
    allow_shift_reservation = Column(Boolean, nullable=True)
    capabilities = Column(JSON, nullable=True)
    contract_valid_from = Column(BigInteger, nullable=True)  # UTC midnight, epoch ms
    is_disabled = Column(Boolean, default=False, nullable=False)

    # Team from the courier detail endpoint, used for hotspot matching
    team = Column(String(100), nullable=True)
    team_synced_at = Column(BigInteger, nullable=True)  # epoch ms of the last detail lookup

    # Epoch ms, as reported by the fleet system
    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=False)

    # Mirror (Coda) row reference
    mirror_row_id = Column(String(100), nullable=True)
    mirror_last_synced = Column(BigInteger, nullable=True)
