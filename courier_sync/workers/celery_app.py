"""
Celery Application Configuration

Beat owns the three timers. The worker must run as a single process
(``--pool=threads``): the collection/tracking exclusion flag is process-local.
"""
from celery import Celery
from celery.schedules import crontab

from courier_sync.core.config import settings

celery_app = Celery(
    "courier_sync",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["courier_sync.workers.tasks"]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.TIMEZONE,
    enable_utc=True,
    task_track_started=True,
    task_time_limit=1800,  # a full first run with rate limiting takes a while
    worker_prefetch_multiplier=1,
    task_acks_late=False,
)

# Beat schedule, in local time
celery_app.conf.beat_schedule = {
    # First run of the day: all of yesterday
    "collect-first-run-daily-06-00": {
        "task": "courier_sync.workers.tasks.collect_data",
        "schedule": crontab(hour="6", minute="0"),
        "kwargs": {"is_first_run": True},
    },
    # Intraday collection during the operating window (06:00 slot skipped by the task)
    "collect-intraday-every-28-minutes": {
        "task": "courier_sync.workers.tasks.collect_data_scheduled",
        "schedule": crontab(minute="*/28", hour="6-22"),
    },
    "track-idle-couriers-every-2-minutes": {
        "task": "courier_sync.workers.tasks.track_idle_couriers",
        "schedule": crontab(minute="*/2"),
    },
}
