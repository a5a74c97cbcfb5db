"""
Domain Services
"""
from courier_sync.domain.services.token_service import TokenManager, TokenStore
from courier_sync.domain.services.reconciliation_service import ReconciliationEngine
from courier_sync.domain.services.hotspot_service import HotspotAssignmentPipeline
from courier_sync.domain.services.scheduler import CollectionScheduler

__all__ = [
    "TokenManager",
    "TokenStore",
    "ReconciliationEngine",
    "HotspotAssignmentPipeline",
    "CollectionScheduler",
]
