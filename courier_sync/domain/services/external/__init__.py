"""
External API Gateway

Thin async clients for the fleet management system, its OAuth2 server,
the road-network distance service and the Coda mirror.
"""
from courier_sync.domain.services.external.auth_api import AuthApiClient, TokenGrant
from courier_sync.domain.services.external.coda_mirror import CodaMirrorClient
from courier_sync.domain.services.external.distance_api import DistanceElement, DistanceMatrixClient
from courier_sync.domain.services.external.fleet_api import FleetApiClient

__all__ = [
    "AuthApiClient",
    "TokenGrant",
    "CodaMirrorClient",
    "DistanceElement",
    "DistanceMatrixClient",
    "FleetApiClient",
]
