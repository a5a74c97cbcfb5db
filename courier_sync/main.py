"""
Courier Sync - Main FastAPI Application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from courier_sync.core.config import settings
from courier_sync.core.logging import setup_logging, get_logger
from courier_sync.core.middleware import setup_middleware, setup_exception_handlers
from courier_sync.api.routes import router as api_router
from courier_sync.db.database import engine, Base
from courier_sync.db import models  # noqa: F401  registers tables on Base.metadata

# Setup logging before anything else
setup_logging(
    level="DEBUG" if settings.DEBUG else "INFO",
    json_format=not settings.DEBUG,
    app_name=settings.APP_NAME
)

logger = get_logger(__name__)


def _parse_allowed_origins(raw: str) -> list[str]:
    """Parse comma-separated CORS origins string into a clean list."""
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description=(
        "Keeps a local copy of fleet courier data (profiles, daily metrics, earnings, "
        "cash balances), mirrors selected fields to Coda and assigns idle couriers to hotspots."
    ),
)

setup_middleware(app)
setup_exception_handlers(app)

allowed_origins = _parse_allowed_origins(settings.ALLOWED_ORIGINS)

if not allowed_origins and settings.DEBUG:
    allowed_origins = [
        "http://localhost",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Correlation-ID", "X-Admin-API-Key"],
    )

app.include_router(api_router, prefix="/api")


@app.on_event("startup")
async def startup() -> None:
    """Initialize database tables on startup"""
    logger.info("Starting application", extra_data={"app_name": settings.APP_NAME})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")

    if settings.RUN_IMMEDIATE_COLLECTION:
        from courier_sync.workers.tasks import collect_data

        logger.info("Running immediate data collection on startup")
        collect_data.delay(is_first_run=False)


@app.on_event("shutdown")
async def shutdown() -> None:
    """Cleanup on shutdown"""
    logger.info("Shutting down application")
    await engine.dispose()
    logger.info("Database connections disposed")


@app.get("/health", summary="Liveness probe", tags=["Health"])
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}


@app.get(
    "/health/ready",
    summary="Readiness probe",
    description="Checks the database and the Celery broker. 503 when either is down.",
    tags=["Health"],
)
async def readiness_check() -> JSONResponse:
    from courier_sync.domain.services.health_service import check_readiness

    result = await check_readiness()
    status_code = 200 if result["status"] == "healthy" else 503
    return JSONResponse(content=result, status_code=status_code)
