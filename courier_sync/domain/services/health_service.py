"""
Health checks - liveness is trivial, readiness checks the DB and the Celery broker.
"""
from typing import Any

import redis.asyncio as aioredis
from sqlalchemy import text

from courier_sync.core.config import settings
from courier_sync.core.logging import get_logger
from courier_sync.db.database import AsyncSessionLocal

logger = get_logger(__name__)

_STATUS_HEALTHY = "healthy"
_STATUS_DEGRADED = "degraded"

_CHECK_OK = "ok"

# No infrastructure details in the public response
_ERROR_DB = "error: db_unavailable"
_ERROR_BROKER = "error: broker_unavailable"


async def _check_db() -> str:
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return _CHECK_OK
    except Exception as e:
        logger.warning("DB health check failed", extra_data={"error": str(e)})
        return _ERROR_DB


async def _check_broker() -> str:
    """PING the Celery broker (Redis)"""
    try:
        client = aioredis.from_url(settings.CELERY_BROKER_URL, decode_responses=True)
        try:
            await client.ping()
            return _CHECK_OK
        finally:
            await client.aclose()
    except Exception as e:
        logger.warning("Broker health check failed", extra_data={"error": str(e)})
        return _ERROR_BROKER


async def check_readiness() -> dict[str, Any]:
    checks = {
        "db": await _check_db(),
        "broker": await _check_broker(),
    }

    all_ok = all(v == _CHECK_OK for v in checks.values())
    if not all_ok:
        logger.warning("Readiness check degraded", extra_data=checks)

    return {"status": _STATUS_HEALTHY if all_ok else _STATUS_DEGRADED, **checks}
