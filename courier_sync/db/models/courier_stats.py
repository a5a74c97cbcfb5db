"""
Courier Stats Model - one aggregate per courier per local day
"""
from sqlalchemy import Column, Integer, BigInteger, String, Float, JSON, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from courier_sync.db.database import Base

# Fleet metric key -> column. Each column holds {"value": ..., "updated_at": epoch_ms}.
METRIC_FIELDS: dict[str, str] = {
    "tar": "tar",
    "tcr": "tcr",
    "dph": "dph",
    "numDeliveries": "num_deliveries",
    "onlineHours": "online_hours",
    "onTaskHours": "on_task_hours",
    "idleHours": "idle_hours",
    "tarShownTasks": "tar_shown_tasks",
    "tarStartedTasks": "tar_started_tasks",
}


class CourierStats(Base):
    """Daily bucket. Metrics are last-write-wins per field, earnings are append-only."""

    __tablename__ = "courier_stats"

    id = Column(Integer, primary_key=True, index=True)
    courier_id = Column(BigInteger, nullable=False)
    date = Column(BigInteger, nullable=False)  # day bucket: local midnight, epoch ms
    latest_update = Column(BigInteger, nullable=False)
    collection_date = Column(BigInteger, nullable=False)

    tar = Column(JSON, nullable=True)
    tcr = Column(JSON, nullable=True)
    dph = Column(JSON, nullable=True)
    num_deliveries = Column(JSON, nullable=True)
    online_hours = Column(JSON, nullable=True)
    on_task_hours = Column(JSON, nullable=True)
    idle_hours = Column(JSON, nullable=True)
    tar_shown_tasks = Column(JSON, nullable=True)
    tar_started_tasks = Column(JSON, nullable=True)

    # Current cash balance snapshot (only ever written to today's bucket)
    cash_balance_amount = Column(Float, nullable=True)
    cash_balance_currency = Column(String(10), nullable=True)
    cash_balance_company_id = Column(String(100), nullable=True)
    cash_balance_updated_at = Column(BigInteger, nullable=True)

    earnings = relationship(
        "CourierEarning",
        order_by="CourierEarning.id",
        lazy="selectin",
        back_populates="stats",
    )

    __table_args__ = (
        UniqueConstraint("courier_id", "date", name="uq_courier_stats_courier_date"),
        Index("ix_courier_stats_date", "date"),
    )

    def metrics(self) -> dict[str, dict | None]:
        """Metric columns keyed by column name"""
        return {column: getattr(self, column) for column in METRIC_FIELDS.values()}

    @property
    def cash_balance(self) -> dict | None:
        if self.cash_balance_updated_at is None:
            return None
        return {
            "amount": self.cash_balance_amount,
            "currency": self.cash_balance_currency,
            "company_id": self.cash_balance_company_id,
            "updated_at": self.cash_balance_updated_at,
        }
