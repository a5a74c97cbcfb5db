"""
Courier API Routes - read access to couriers and daily stats
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from courier_sync.api.routes.schemas import (
    CourierResponse,
    CourierStatsResponse,
    DayStatsResponse,
    StatsListResponse,
)
from courier_sync.core.logging import get_logger
from courier_sync.db import queries
from courier_sync.db.database import get_db

logger = get_logger(__name__)

router = APIRouter()

# Upper bound on the day walk of filtered-stats
MAX_FILTER_DAYS = 366


@router.get(
    "/couriers",
    response_model=List[CourierResponse],
    summary="Enabled couriers, sorted by name",
    tags=["Couriers"],
)
async def list_couriers(db: AsyncSession = Depends(get_db)) -> List[CourierResponse]:
    couriers = await queries.list_enabled_couriers(db)
    return [CourierResponse.model_validate(c) for c in couriers]


@router.get(
    "/couriers/all-stats",
    response_model=StatsListResponse,
    summary="Every daily bucket, newest first",
    responses={404: {"description": "No stats stored yet"}},
    tags=["Stats"],
)
async def all_stats(db: AsyncSession = Depends(get_db)) -> StatsListResponse:
    stats = await queries.list_all_stats(db)
    if not stats:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No courier stats found")
    return StatsListResponse(data=[CourierStatsResponse.model_validate(s) for s in stats])


@router.get(
    "/courier/search",
    response_model=StatsListResponse,
    summary="Daily buckets of one courier, newest first",
    responses={404: {"description": "Courier has no stats"}},
    tags=["Stats"],
)
async def search_courier(
    courier_id: int = Query(..., alias="courierId"),
    db: AsyncSession = Depends(get_db),
) -> StatsListResponse:
    stats = await queries.list_stats_for_courier(db, courier_id)
    if not stats:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Courier stats not found")
    return StatsListResponse(data=[CourierStatsResponse.model_validate(s) for s in stats])


@router.get(
    "/courier/filtered-stats",
    response_model=List[DayStatsResponse],
    summary="Buckets of one courier touched on each UTC day of a range",
    description=(
        "`from` and `to` are epoch milliseconds. A bucket matches a day when its date, "
        "latest update, any metric, the cash balance or any earning falls in that day."
    ),
    tags=["Stats"],
)
async def filtered_stats(
    courier_id: int = Query(..., alias="courierId"),
    from_ms: int = Query(..., alias="from", ge=0),
    to_ms: int = Query(..., alias="to", ge=0),
    db: AsyncSession = Depends(get_db),
) -> List[DayStatsResponse]:
    if to_ms < from_ms:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="'to' must not be before 'from'")
    if (to_ms - from_ms) // queries.DAY_MS >= MAX_FILTER_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Range must not exceed {MAX_FILTER_DAYS} days",
        )

    days = await queries.filtered_stats_by_day(db, courier_id, from_ms, to_ms)
    return [
        DayStatsResponse(
            date=day,
            stats=[CourierStatsResponse.model_validate(s) for s in stats],
        )
        for day, stats in days
    ]
