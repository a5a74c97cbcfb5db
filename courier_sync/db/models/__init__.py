"""
Database Models
"""
from courier_sync.db.models.courier import Courier
from courier_sync.db.models.courier_stats import CourierStats, METRIC_FIELDS
from courier_sync.db.models.courier_earning import CourierEarning
from courier_sync.db.models.auth_token import AuthToken

__all__ = [
    "Courier",
    "CourierStats",
    "METRIC_FIELDS",
    "CourierEarning",
    "AuthToken",
]
