"""
Tests for the collection scheduler and the Celery task wrappers
"""
import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from courier_sync.domain.services.scheduler import CollectionScheduler
from courier_sync.workers import tasks
from courier_sync.workers.celery_app import celery_app
from tests.conftest import BUDAPEST, WORKDAY_MORNING, fixed_clock


def _scheduler(collector=None, tracker=None, now: datetime = WORKDAY_MORNING) -> CollectionScheduler:
    return CollectionScheduler(
        collector=collector or AsyncMock(),
        tracker=tracker or AsyncMock(),
        clock=fixed_clock(now),
        tz=BUDAPEST,
    )


class BlockingCollector:
    """Collector that stays in flight until released"""

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def __call__(self, is_first_run: bool):
        self.calls += 1
        self.started.set()
        await self.release.wait()


class TestCollectionGuard:

    @pytest.mark.unit
    async def test_tracking_is_skipped_while_collection_runs(self):
        collector = BlockingCollector()
        tracker = AsyncMock()
        scheduler = _scheduler(collector, tracker)

        collection = asyncio.create_task(scheduler.run_collection())
        await collector.started.wait()

        assert scheduler.collection_in_flight is True
        assert await scheduler.run_tracking() is False
        tracker.assert_not_awaited()

        collector.release.set()
        assert await collection is True
        assert scheduler.collection_in_flight is False

        assert await scheduler.run_tracking() is True
        tracker.assert_awaited_once()

    @pytest.mark.unit
    async def test_overlapping_collection_is_skipped(self):
        collector = BlockingCollector()
        scheduler = _scheduler(collector)

        first = asyncio.create_task(scheduler.run_collection(is_first_run=True))
        await collector.started.wait()

        assert await scheduler.run_collection() is False

        collector.release.set()
        assert await first is True
        assert collector.calls == 1

    @pytest.mark.unit
    async def test_flag_is_reset_when_collection_fails(self):
        collector = AsyncMock(side_effect=RuntimeError("database unavailable"))
        tracker = AsyncMock()
        scheduler = _scheduler(collector, tracker)

        assert await scheduler.run_collection() is True

        assert scheduler.collection_in_flight is False
        assert await scheduler.run_tracking() is True
        tracker.assert_awaited_once()

    @pytest.mark.unit
    async def test_tracking_errors_are_logged_not_raised(self):
        tracker = AsyncMock(side_effect=RuntimeError("hotspots.csv missing"))

        assert await _scheduler(tracker=tracker).run_tracking() is True


class TestScheduledCollection:

    @pytest.mark.unit
    async def test_six_oclock_slot_is_left_to_the_first_run(self):
        collector = AsyncMock()
        six_local = datetime(2024, 5, 15, 4, 0, tzinfo=timezone.utc)

        assert await _scheduler(collector, now=six_local).run_scheduled_collection() is False
        collector.assert_not_awaited()

    @pytest.mark.unit
    async def test_later_slots_run_intraday_collection(self):
        collector = AsyncMock()
        six_twenty_eight = datetime(2024, 5, 15, 4, 28, tzinfo=timezone.utc)

        assert await _scheduler(collector, now=six_twenty_eight).run_scheduled_collection() is True
        collector.assert_awaited_once_with(False)


class TestManualTriggers:

    @pytest.mark.unit
    async def test_run_now_passes_first_run_flag(self):
        collector = AsyncMock()

        assert await _scheduler(collector).run_now(is_first_run=True) is True
        collector.assert_awaited_once_with(True)

    @pytest.mark.unit
    async def test_run_tracking_now_respects_the_guard(self):
        collector = BlockingCollector()
        tracker = AsyncMock()
        scheduler = _scheduler(collector, tracker)

        collection = asyncio.create_task(scheduler.run_now())
        await collector.started.wait()
        assert await scheduler.run_tracking_now() is False

        collector.release.set()
        await collection
        tracker.assert_not_awaited()


# ============================================================================
# Celery tasks
# ============================================================================

@pytest.fixture
def fake_scheduler():
    scheduler = MagicMock()
    scheduler.run_now = AsyncMock(return_value=True)
    scheduler.run_scheduled_collection = AsyncMock(return_value=False)
    scheduler.run_tracking_now = AsyncMock(return_value=True)
    with patch("courier_sync.workers.tasks.get_scheduler", return_value=scheduler):
        yield scheduler


class TestCeleryTasks:

    @pytest.mark.unit
    def test_collect_data_runs_on_a_fresh_loop(self, fake_scheduler):
        result = tasks.collect_data(is_first_run=True)

        assert result == {"ran": True, "is_first_run": True}
        fake_scheduler.run_now.assert_awaited_once_with(True)

    @pytest.mark.unit
    def test_collect_data_scheduled(self, fake_scheduler):
        assert tasks.collect_data_scheduled() == {"ran": False}
        fake_scheduler.run_scheduled_collection.assert_awaited_once()

    @pytest.mark.unit
    def test_track_idle_couriers(self, fake_scheduler):
        assert tasks.track_idle_couriers() == {"ran": True}
        fake_scheduler.run_tracking_now.assert_awaited_once()

    @pytest.mark.unit
    def test_beat_schedule(self):
        schedule = celery_app.conf.beat_schedule

        first_run = schedule["collect-first-run-daily-06-00"]
        assert first_run["task"] == "courier_sync.workers.tasks.collect_data"
        assert first_run["kwargs"] == {"is_first_run": True}
        assert first_run["schedule"].hour == {6}
        assert first_run["schedule"].minute == {0}

        intraday = schedule["collect-intraday-every-28-minutes"]
        assert intraday["schedule"].hour == set(range(6, 23))
        assert intraday["schedule"].minute == {0, 28, 56}

        assert schedule["track-idle-couriers-every-2-minutes"]["schedule"].minute == set(range(0, 60, 2))
        assert celery_app.conf.timezone == "Europe/Budapest"
