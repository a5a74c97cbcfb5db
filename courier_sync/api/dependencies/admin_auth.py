"""
Admin API key check for the manual trigger endpoints.

Usage:
    @router.post("/collect")
    async def collect(_: None = Depends(require_admin_api_key)):
        ...
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader

from courier_sync.core.config import settings
from courier_sync.core.logging import get_logger

logger = get_logger(__name__)

_api_key_header = APIKeyHeader(name="X-Admin-API-Key", auto_error=False)


async def require_admin_api_key(
    api_key: str | None = Depends(_api_key_header),
) -> None:
    """
    401 when the key is missing, 403 when it does not match.
    With no ADMIN_API_KEY configured, access is refused altogether.
    """
    if not settings.ADMIN_API_KEY:
        logger.warning("Admin endpoint refused: ADMIN_API_KEY not configured")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="ADMIN_API_KEY is not configured",
        )

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key, header required: X-Admin-API-Key",
        )

    if api_key != settings.ADMIN_API_KEY:
        logger.warning("Admin endpoint refused: wrong API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )
