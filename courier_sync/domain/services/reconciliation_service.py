"""
Reconciliation Service - fleet payloads -> local store (+ best-effort mirror).

One collect() run syncs four categories in order: couriers, metrics,
earnings, cash balances. Each category is isolated from the others, and
inside a category each courier is isolated from the rest of the batch.
Only token acquisition may abort a run.
"""
from typing import Any, Awaitable, Callable
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courier_sync.core.config import settings
from courier_sync.core.exceptions import CourierNotFoundLocallyError, ExternalServiceException
from courier_sync.core.logging import get_logger, log_async_operation
from courier_sync.core.rate_limiter import FixedDelayRateLimiter, RateLimiter
from courier_sync.db.database import SessionFactory
from courier_sync.db.models.courier import Courier
from courier_sync.db.models.courier_earning import CourierEarning
from courier_sync.db.models.courier_stats import CourierStats
from courier_sync.domain.services.external.coda_mirror import CodaMirrorClient
from courier_sync.domain.services.external.fleet_api import FleetApiClient
from courier_sync.domain.services.mappers import (
    map_cash_balance,
    map_courier,
    map_earnings,
    map_metrics,
)
from courier_sync.domain.services.time_window import (
    Clock,
    CollectionWindow,
    day_bucket,
    get_collection_window,
    to_epoch_ms,
    utc_now,
)
from courier_sync.domain.services.token_service import TokenManager

logger = get_logger(__name__)


async def get_courier(db: AsyncSession, courier_id: int) -> Courier | None:
    result = await db.execute(select(Courier).where(Courier.courier_id == courier_id))
    return result.scalar_one_or_none()


async def get_or_create_stats(
    db: AsyncSession,
    courier_id: int,
    bucket: int,
    now_ms: int,
) -> CourierStats:
    """Daily bucket of a courier, created on first use"""
    result = await db.execute(
        select(CourierStats).where(
            CourierStats.courier_id == courier_id,
            CourierStats.date == bucket,
        )
    )
    stats = result.scalar_one_or_none()
    if stats is None:
        stats = CourierStats(
            courier_id=courier_id,
            date=bucket,
            latest_update=now_ms,
            collection_date=now_ms,
        )
        db.add(stats)
        await db.flush()
    return stats


class ReconciliationEngine:

    def __init__(
        self,
        session_factory: SessionFactory,
        fleet: FleetApiClient,
        mirror: CodaMirrorClient,
        token_manager: TokenManager,
        courier_limiter: RateLimiter | None = None,
        cash_limiter: RateLimiter | None = None,
        clock: Clock = utc_now,
        tz: ZoneInfo | None = None,
        company_id: str | None = None,
        currency: str | None = None,
    ):
        self._session_factory = session_factory
        self._fleet = fleet
        self._mirror = mirror
        self._token_manager = token_manager
        self._courier_limiter = courier_limiter or FixedDelayRateLimiter(
            settings.COURIER_SYNC_DELAY_MS
        )
        self._cash_limiter = cash_limiter or FixedDelayRateLimiter(
            settings.CASH_BALANCE_SYNC_DELAY_MS
        )
        self._clock = clock
        self._tz = tz or settings.tz
        self._company_id = company_id if company_id is not None else settings.FLEET_COMPANY_ID
        self._currency = currency or settings.DEFAULT_CURRENCY

    def _now_ms(self) -> int:
        return to_epoch_ms(self._clock())

    @log_async_operation("collect_data")
    async def collect(self, is_first_run: bool = False) -> dict[str, int] | None:
        """
        Run one reconciliation cycle.

        Returns per-category processed counts (None when skipped because the
        run falls outside operating hours, or -1 for a failed category).

        Raises:
            AuthError: no usable token, the run cannot start
        """
        window = get_collection_window(self._clock(), self._tz, is_first_run)
        if window is None:
            logger.info("Outside operating hours (06:00-23:00), skipping data collection")
            return None

        logger.info(
            "Starting data collection",
            extra_data={
                "is_first_run": is_first_run,
                "from": window.from_ts,
                "to": window.to_ts,
                "day_bucket": window.day_bucket,
            },
        )
        token = await self._token_manager.get_valid_token()

        steps: list[tuple[str, Callable[[AsyncSession], Awaitable[int]]]] = [
            ("couriers", lambda db: self.sync_couriers(db, token)),
            ("metrics", lambda db: self.sync_metrics(db, token, window)),
            ("earnings", lambda db: self.sync_earnings(db, token, window)),
            ("cash_balances", lambda db: self.sync_cash_balances(db, token)),
        ]

        summary: dict[str, int] = {}
        async with self._session_factory() as db:
            for category, step in steps:
                try:
                    summary[category] = await step(db)
                except Exception as exc:
                    await db.rollback()
                    summary[category] = -1
                    logger.error(
                        "Data category failed, continuing with the next one",
                        extra_data={
                            "category": category,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                    )

        logger.info("Data collection completed", extra_data=summary)
        return summary

    # ── couriers ──

    async def sync_couriers(self, db: AsyncSession, token: str) -> int:
        couriers = await self._fleet.list_couriers(token)
        processed = 0
        for payload in couriers:
            courier_id = payload.get("id")
            try:
                await self._upsert_courier(db, payload)
                processed += 1
                await self._courier_limiter.wait()
            except Exception as exc:
                await db.rollback()
                logger.error(
                    "Error processing courier",
                    extra_data={"courier_id": courier_id, "error": str(exc)},
                )
        return processed

    async def _upsert_courier(self, db: AsyncSession, payload: dict[str, Any]) -> Courier:
        now_ms = self._now_ms()
        courier_id = payload.get("id")
        if courier_id is None:
            raise ValueError("courier payload has no id")

        courier = await get_courier(db, courier_id)
        values = map_courier(
            payload, now_ms, created_default_ms=courier.created_at if courier is not None else None
        )
        if courier is None:
            courier = Courier(**values)
            db.add(courier)
            logger.info("Created new courier", extra_data={"courier_id": courier.courier_id})
        else:
            for column, value in values.items():
                if column == "courier_id":
                    continue
                setattr(courier, column, value)
            logger.info("Updated existing courier", extra_data={"courier_id": courier.courier_id})
        await db.commit()

        if courier.mirror_row_id is None:
            await self._push_courier_to_mirror(db, courier)
        return courier

    async def _push_courier_to_mirror(self, db: AsyncSession, courier: Courier) -> None:
        try:
            row_id = await self._mirror.add_courier(courier)
        except ExternalServiceException as exc:
            logger.warning(
                "Failed to add courier to mirror",
                extra_data={"courier_id": courier.courier_id, "error": exc.message},
            )
            return
        if not row_id:
            return

        courier.mirror_row_id = row_id
        courier.mirror_last_synced = self._now_ms()
        await db.commit()

    # ── metrics ──

    async def sync_metrics(self, db: AsyncSession, token: str, window: CollectionWindow) -> int:
        entries = await self._fleet.get_metrics(window.from_ts, window.to_ts, token)
        processed = 0
        for entry in entries:
            courier_id = entry.get("courierId")
            if not courier_id:
                logger.warning("Skipping metric processing due to missing courierId")
                continue
            try:
                now_ms = self._now_ms()
                fields = map_metrics(entry, now_ms)
                stats = await get_or_create_stats(db, courier_id, window.day_bucket, now_ms)
                for column, value in fields.items():
                    setattr(stats, column, value)
                stats.latest_update = now_ms
                await db.commit()
                processed += 1
            except Exception as exc:
                await db.rollback()
                logger.error(
                    "Error processing metrics",
                    extra_data={"courier_id": courier_id, "error": str(exc)},
                )
        return processed

    # ── earnings ──

    async def sync_earnings(self, db: AsyncSession, token: str, window: CollectionWindow) -> int:
        # NOTE: overlapping windows append the same transactions again, nothing dedups them
        entries = await self._fleet.get_earnings(window.from_ts, window.to_ts, token)
        processed = 0
        for entry in entries:
            courier_id = entry.get("courierId")
            if not courier_id or entry.get("aggregatedTransactions") is None:
                logger.warning(
                    "Missing required data for earnings processing",
                    extra_data={"courier_id": courier_id},
                )
                continue
            try:
                now_ms = self._now_ms()
                records = map_earnings(entry, self._company_id, now_ms)
                stats = await get_or_create_stats(db, courier_id, window.day_bucket, now_ms)
                for record in records:
                    db.add(CourierEarning(stats_id=stats.id, **record))
                stats.latest_update = now_ms
                await db.commit()
                # the selectin collection was loaded before the inserts
                await db.refresh(stats, attribute_names=["earnings"])
                processed += 1
                logger.info(
                    "Added earnings transactions",
                    extra_data={"courier_id": courier_id, "count": len(records)},
                )
            except Exception as exc:
                await db.rollback()
                logger.error(
                    "Error processing earnings",
                    extra_data={"courier_id": courier_id, "error": str(exc)},
                )
        return processed

    # ── cash balances ──

    async def sync_cash_balances(self, db: AsyncSession, token: str) -> int:
        balances = await self._fleet.get_cash_balances(token)
        # cash balance has no history: always today's bucket, whatever the window
        bucket = day_bucket(self._clock(), self._tz)
        processed = 0
        for entry in balances:
            courier_id = entry.get("courierId")
            try:
                await self._apply_cash_balance(db, entry, bucket)
                processed += 1
                await self._cash_limiter.wait()
            except CourierNotFoundLocallyError as exc:
                logger.warning(
                    "Skipping cash balance update: courier not found in database",
                    extra_data={"courier_id": exc.courier_id},
                )
            except Exception as exc:
                await db.rollback()
                logger.error(
                    "Error processing cash balance",
                    extra_data={"courier_id": courier_id, "error": str(exc)},
                )
        return processed

    async def _apply_cash_balance(self, db: AsyncSession, entry: dict[str, Any], bucket: int) -> None:
        courier_id = entry.get("courierId")
        courier = await get_courier(db, courier_id) if courier_id is not None else None
        if courier is None:
            raise CourierNotFoundLocallyError(courier_id)

        now_ms = self._now_ms()
        stats = await get_or_create_stats(db, courier_id, bucket, now_ms)
        for column, value in map_cash_balance(
            entry, self._company_id, self._currency, now_ms
        ).items():
            setattr(stats, column, value)
        stats.latest_update = now_ms
        await db.commit()
        logger.info(
            "Updated cash balance",
            extra_data={
                "courier_id": courier_id,
                "amount": stats.cash_balance_amount,
                "currency": stats.cash_balance_currency,
            },
        )

        if not courier.mirror_row_id:
            return
        try:
            pushed = await self._mirror.update_cash_balance(
                courier.mirror_row_id, stats.cash_balance_amount
            )
        except ExternalServiceException as exc:
            logger.warning(
                "Failed to update cash balance in mirror",
                extra_data={"courier_id": courier_id, "error": exc.message},
            )
            return
        if pushed:
            courier.mirror_last_synced = self._now_ms()
            await db.commit()
