"""Calendar-day helpers anchored to the deployment's reference timezone."""

from __future__ import annotations

import logging
import os
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterator
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .events import TimeWindow

LOGGER = logging.getLogger(__name__)

REFERENCE_TIMEZONE_ENV = "REFERENCE_TIMEZONE"
DEFAULT_REFERENCE_TIMEZONE = "UTC"

_LAST_MILLISECOND = timedelta(days=1) - timedelta(milliseconds=1)


def reference_timezone() -> tzinfo:
    """Return the timezone used to cut the event log into calendar days."""

    name = (os.getenv(REFERENCE_TIMEZONE_ENV) or DEFAULT_REFERENCE_TIMEZONE).strip()
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        LOGGER.warning("Unknown %s=%s; falling back to UTC", REFERENCE_TIMEZONE_ENV, name)
        return timezone.utc


def day_window(day: date, tz: tzinfo | None = None) -> TimeWindow:
    """Return ``[00:00:00.000, 23:59:59.999]`` of ``day`` in ``tz``."""

    zone = tz or reference_timezone()
    start = datetime.combine(day, time.min, tzinfo=zone)
    return TimeWindow(start=start, end=start + _LAST_MILLISECOND)


def local_day(instant: datetime, tz: tzinfo | None = None) -> date:
    zone = tz or reference_timezone()
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(zone).date()


def today(tz: tzinfo | None = None) -> date:
    return datetime.now(tz or reference_timezone()).date()


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def day_key(day: date) -> str:
    return day.isoformat()
