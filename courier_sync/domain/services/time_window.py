"""
Time helpers: operating window, collection windows and day buckets.

Timestamps sent to the fleet API are epoch seconds; everything stored
locally is epoch milliseconds. The day bucket of a run is computed once
at run start, so a run that crosses midnight keeps writing to the bucket
it started with.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable
from zoneinfo import ZoneInfo

from courier_sync.core.exceptions import MappingError

Clock = Callable[[], datetime]

OPERATING_START_HOUR = 6
OPERATING_END_HOUR = 23

_CALENDAR_DATE_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])-(0[1-9]|[12]\d|3[01])$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CollectionWindow:
    """Query window for metrics/earnings plus the storage key of the day"""
    from_ts: int     # epoch seconds
    to_ts: int       # epoch seconds
    day_bucket: int  # local midnight, epoch ms


def to_epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def format_utc_date(epoch_ms: int | None) -> str | None:
    """Epoch ms -> 'YYYY-MM-DD' (UTC), None passes through"""
    if epoch_ms is None:
        return None
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).date().isoformat()


def is_operating_hours(now: datetime, tz: ZoneInfo) -> bool:
    """06:00 <= local time < 23:00"""
    hour = now.astimezone(tz).hour
    return OPERATING_START_HOUR <= hour < OPERATING_END_HOUR


def local_midnight(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def day_bucket(now: datetime, tz: ZoneInfo) -> int:
    """Epoch ms of the local midnight starting the day that contains ``now``"""
    return to_epoch_ms(local_midnight(now.astimezone(tz).date(), tz))


def get_collection_window(
    now: datetime,
    tz: ZoneInfo,
    is_first_run: bool = False,
) -> CollectionWindow | None:
    """
    Window for one collection run, or None outside operating hours.

    First run of the day covers all of yesterday (local midnight to midnight);
    later runs cover today's midnight up to ``now``.
    """
    if not is_operating_hours(now, tz):
        return None

    today = now.astimezone(tz).date()
    today_start = local_midnight(today, tz)

    if is_first_run:
        start = local_midnight(today - timedelta(days=1), tz)
        start_ms = to_epoch_ms(start)
        # last millisecond of yesterday
        end_ms = to_epoch_ms(today_start) - 1
        return CollectionWindow(
            from_ts=start_ms // 1000,
            to_ts=end_ms // 1000,
            day_bucket=start_ms,
        )

    start_ms = to_epoch_ms(today_start)
    return CollectionWindow(
        from_ts=start_ms // 1000,
        to_ts=to_epoch_ms(now) // 1000,
        day_bucket=start_ms,
    )


def parse_instant_ms(value: Any, field: str) -> int:
    """
    ISO-8601 string or epoch-ms number -> epoch ms.

    Naive timestamps are read as UTC. Raises MappingError on anything else.
    """
    if isinstance(value, bool) or value is None or value == "":
        raise MappingError(field, value)
    if isinstance(value, (int, float)):
        return int(value)
    if not isinstance(value, str):
        raise MappingError(field, value)
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as exc:
        raise MappingError(field, value) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return to_epoch_ms(parsed)


def parse_utc_calendar_date_ms(value: Any, field: str) -> int:
    """'YYYY-MM-DD[Thh:mm...]' -> epoch ms of that calendar date at UTC midnight"""
    if not isinstance(value, str):
        raise MappingError(field, value)
    match = _CALENDAR_DATE_RE.match(value.split("T", 1)[0].strip())
    if not match:
        raise MappingError(field, value)
    try:
        parsed = date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError as exc:
        # e.g. 2024-02-30
        raise MappingError(field, value) from exc
    return to_epoch_ms(datetime.combine(parsed, time.min, tzinfo=timezone.utc))
