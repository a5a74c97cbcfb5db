"""
Read queries for the HTTP layer.

Daily buckets are returned with their earnings already loaded (selectin).
"""
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courier_sync.db.models.courier import Courier
from courier_sync.db.models.courier_stats import CourierStats

DAY_MS = 86_400_000


async def list_enabled_couriers(db: AsyncSession) -> List[Courier]:
    result = await db.execute(
        select(Courier)
        .where(Courier.is_disabled == False)  # noqa: E712
        .order_by(Courier.name)
    )
    return list(result.scalars().all())


async def list_all_stats(db: AsyncSession) -> List[CourierStats]:
    result = await db.execute(select(CourierStats).order_by(CourierStats.date.desc()))
    return list(result.scalars().all())


async def list_stats_for_courier(db: AsyncSession, courier_id: int) -> List[CourierStats]:
    result = await db.execute(
        select(CourierStats)
        .where(CourierStats.courier_id == courier_id)
        .order_by(CourierStats.date.desc())
    )
    return list(result.scalars().all())


def utc_day_range(epoch_ms: int) -> tuple[int, int]:
    """[00:00:00.000, 23:59:59.999] UTC of the day containing ``epoch_ms``"""
    start = (epoch_ms // DAY_MS) * DAY_MS
    return start, start + DAY_MS - 1


def _touched_instants(stats: CourierStats) -> list[int]:
    instants = [stats.date, stats.latest_update]
    for metric in stats.metrics().values():
        if metric and metric.get("updated_at") is not None:
            instants.append(metric["updated_at"])
    if stats.cash_balance_updated_at is not None:
        instants.append(stats.cash_balance_updated_at)
    instants.extend(e.recorded_at for e in stats.earnings if e.recorded_at is not None)
    return instants


def stats_touch_range(stats: CourierStats, start: int, end: int) -> bool:
    """True when the bucket, a metric, the cash balance or an earning falls in [start, end]"""
    return any(start <= instant <= end for instant in _touched_instants(stats))


async def filtered_stats_by_day(
    db: AsyncSession,
    courier_id: int,
    from_ms: int,
    to_ms: int,
) -> list[tuple[int, List[CourierStats]]]:
    """
    Walk UTC days from ``from_ms`` to ``to_ms`` and collect the buckets of a
    courier touched on each day. Days without matches are left out.
    """
    candidates = await list_stats_for_courier(db, courier_id)
    results = []
    ts = from_ms
    while ts <= to_ms:
        start, end = utc_day_range(ts)
        matched = [s for s in candidates if stats_touch_range(s, start, end)]
        if matched:
            results.append((start, matched))
        ts += DAY_MS
    return results
