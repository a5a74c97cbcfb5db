"""
Celery Tasks - timed and manual triggers

Every task runs the matching CollectionScheduler entry point on a fresh
event loop. The scheduler is created once per worker process and shared by
all tasks of that process.
"""
import asyncio
import threading
from contextlib import contextmanager

from courier_sync.workers.celery_app import celery_app
from courier_sync.core.logging import get_logger, set_correlation_id
from courier_sync.domain.services.scheduler import CollectionScheduler, build_scheduler

logger = get_logger(__name__)

_scheduler: CollectionScheduler | None = None
_scheduler_lock = threading.Lock()


def get_scheduler() -> CollectionScheduler:
    """Process-wide scheduler, created lazily"""
    global _scheduler
    with _scheduler_lock:
        if _scheduler is None:
            _scheduler = build_scheduler()
            logger.info("Collection scheduler initialized")
        return _scheduler


@contextmanager
def get_event_loop():
    """
    Context manager for proper event loop handling in Celery tasks.
    Creates a new event loop and ensures proper cleanup to prevent resource leaks.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        yield loop
    finally:
        try:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()


def run_async(coro):
    """Helper to run async code in sync Celery task with proper cleanup"""
    set_correlation_id()

    with get_event_loop() as loop:
        return loop.run_until_complete(coro)


@celery_app.task(name="courier_sync.workers.tasks.collect_data")
def collect_data(is_first_run: bool = False):
    """Daily first run and manual collection"""
    ran = run_async(get_scheduler().run_now(is_first_run))
    return {"ran": ran, "is_first_run": is_first_run}


@celery_app.task(name="courier_sync.workers.tasks.collect_data_scheduled")
def collect_data_scheduled():
    """Intraday collection"""
    ran = run_async(get_scheduler().run_scheduled_collection())
    return {"ran": ran}


@celery_app.task(name="courier_sync.workers.tasks.track_idle_couriers")
def track_idle_couriers():
    """Idle tracking; skipped while a collection is in flight"""
    ran = run_async(get_scheduler().run_tracking_now())
    return {"ran": ran}
