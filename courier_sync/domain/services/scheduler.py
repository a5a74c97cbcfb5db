"""
Collection Scheduler - guarded entry points for the timed and manual triggers.

The timers themselves live in Celery beat; this object owns the
``collection_in_flight`` flag that keeps idle tracking away from a running
collection. The flag is process-local, so the worker runs a single process.
"""
import threading
from typing import Awaitable, Callable
from zoneinfo import ZoneInfo

from courier_sync.core.config import settings
from courier_sync.core.logging import generate_correlation_id, get_logger, set_correlation_id
from courier_sync.domain.services.time_window import OPERATING_START_HOUR, Clock, utc_now

logger = get_logger(__name__)

Collector = Callable[[bool], Awaitable[object]]
Tracker = Callable[[], Awaitable[object]]


class CollectionScheduler:

    def __init__(
        self,
        collector: Collector,
        tracker: Tracker,
        clock: Clock = utc_now,
        tz: ZoneInfo | None = None,
    ):
        self._collector = collector
        self._tracker = tracker
        self._clock = clock
        self._tz = tz or settings.tz
        self._lock = threading.Lock()
        self._collection_in_flight = False

    @property
    def collection_in_flight(self) -> bool:
        with self._lock:
            return self._collection_in_flight

    def _try_begin_collection(self) -> bool:
        with self._lock:
            if self._collection_in_flight:
                return False
            self._collection_in_flight = True
            return True

    def _end_collection(self) -> None:
        with self._lock:
            self._collection_in_flight = False

    async def run_collection(self, is_first_run: bool = False) -> bool:
        """
        Run one collection with tracking disabled.

        Returns False when another collection is already running (skipped).
        Errors are logged, never raised: the next cycle is the retry.
        """
        set_correlation_id(generate_correlation_id())
        if not self._try_begin_collection():
            logger.warning(
                "Data collection already in progress, skipping",
                extra_data={"is_first_run": is_first_run},
            )
            return False

        try:
            logger.info("Running data collection", extra_data={"is_first_run": is_first_run})
            await self._collector(is_first_run)
        except Exception as exc:
            logger.error(
                "Error during data collection",
                extra_data={"error": str(exc), "error_type": type(exc).__name__},
            )
        finally:
            self._end_collection()
            logger.info("Data collection finished, tracking enabled")
        return True

    async def run_scheduled_collection(self) -> bool:
        """Intraday trigger; the 06:00 slot belongs to the first run of the day"""
        now = self._clock().astimezone(self._tz)
        if now.hour == OPERATING_START_HOUR and now.minute == 0:
            logger.info("Skipping intraday collection at 06:00, first run handles it")
            return False
        return await self.run_collection(is_first_run=False)

    async def run_tracking(self) -> bool:
        """Idle tracking, skipped entirely while a collection runs. Returns True if it ran."""
        set_correlation_id(generate_correlation_id())
        if self.collection_in_flight:
            logger.info("Skipping tracking job as data collection is in progress")
            return False

        try:
            logger.info("Running idle courier tracking")
            await self._tracker()
        except Exception as exc:
            logger.error(
                "Error during courier tracking",
                extra_data={"error": str(exc), "error_type": type(exc).__name__},
            )
        return True

    # ── manual triggers ──

    async def run_now(self, is_first_run: bool = False) -> bool:
        return await self.run_collection(is_first_run)

    async def run_tracking_now(self) -> bool:
        return await self.run_tracking()


def build_scheduler() -> CollectionScheduler:
    """Wire the production engine and pipeline (one DB engine per task run)"""
    from courier_sync.db.database import get_task_session
    from courier_sync.domain.services.external import (
        AuthApiClient,
        CodaMirrorClient,
        DistanceMatrixClient,
        FleetApiClient,
    )
    from courier_sync.domain.services.hotspot_service import HotspotAssignmentPipeline
    from courier_sync.domain.services.reconciliation_service import ReconciliationEngine
    from courier_sync.domain.services.token_service import TokenManager

    fleet = FleetApiClient()
    mirror = CodaMirrorClient()
    token_manager = TokenManager(get_task_session, AuthApiClient())

    engine = ReconciliationEngine(
        session_factory=get_task_session,
        fleet=fleet,
        mirror=mirror,
        token_manager=token_manager,
    )
    pipeline = HotspotAssignmentPipeline(
        session_factory=get_task_session,
        fleet=fleet,
        distance=DistanceMatrixClient(),
        mirror=mirror,
        token_manager=token_manager,
    )
    return CollectionScheduler(engine.collect, pipeline.track_idle_couriers)
