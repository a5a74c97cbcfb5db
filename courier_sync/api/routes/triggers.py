"""
Manual trigger routes - enqueue a run and return immediately.

Per-courier failures never reach the caller; they only show up in the logs.
"""
from typing import Optional

from fastapi import APIRouter, Depends

from courier_sync.api.dependencies.admin_auth import require_admin_api_key
from courier_sync.api.routes.schemas import CollectRequest, TriggerResponse
from courier_sync.core.logging import get_logger
from courier_sync.workers import tasks

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/collect",
    response_model=TriggerResponse,
    summary="Start a data collection in the background",
    responses={401: {"description": "Missing API key"}, 403: {"description": "Wrong API key"}},
    tags=["Triggers"],
)
async def trigger_collection(
    body: Optional[CollectRequest] = None,
    _: None = Depends(require_admin_api_key),
) -> TriggerResponse:
    is_first_run = body.is_first_run if body is not None else False
    tasks.collect_data.delay(is_first_run=is_first_run)
    logger.info("Manual data collection enqueued", extra_data={"is_first_run": is_first_run})
    return TriggerResponse(message="Data collection started")


@router.post(
    "/track-idle-couriers",
    response_model=TriggerResponse,
    summary="Start idle courier tracking in the background",
    responses={401: {"description": "Missing API key"}, 403: {"description": "Wrong API key"}},
    tags=["Triggers"],
)
async def trigger_tracking(
    _: None = Depends(require_admin_api_key),
) -> TriggerResponse:
    tasks.track_idle_couriers.delay()
    logger.info("Manual idle courier tracking enqueued")
    return TriggerResponse(message="Idle courier tracking started")
