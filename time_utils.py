from __future__ import annotations

import calendar
import logging
from datetime import datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


def resolve_timezone(name: Optional[str]):
    if not name:
        return datetime.now().astimezone().tzinfo or timezone.utc
    try:
        return ZoneInfo(name)
    except Exception as exc:  # pragma: no cover - environment-dependent
        logger.warning("Failed to load timezone %s via zoneinfo (%s)", name, exc)
    local_tz = datetime.now().astimezone().tzinfo
    if local_tz:
        logger.warning("Using system local timezone instead: %s", getattr(local_tz, "key", local_tz))
        return local_tz
    logger.warning("System timezone unavailable, fallback to UTC")
    return timezone.utc


def now_in_tz(tzinfo) -> datetime:
    if tzinfo:
        return datetime.now(tzinfo)
    return datetime.now().astimezone()


def ensure_tz(dt: datetime, tzinfo) -> datetime:
    if dt.tzinfo:
        return dt.astimezone(tzinfo) if tzinfo else dt
    return dt.replace(tzinfo=tzinfo)


def format_clock(dt: datetime) -> str:
    return dt.strftime("%H:%M")


def format_date_line(dt: datetime) -> str:
    # "Saturday, October 17"
    return f"{dt.strftime('%A, %B')} {dt.day}"


def format_12h(value) -> str:
    """Format a datetime or time as "8:05 PM"."""
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


def next_time_of_day(now: datetime, at: time) -> datetime:
    """Next instant (strictly after ``now``) whose wall-clock time is ``at``."""
    candidate = now.replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)
    if candidate <= now:
        candidate = candidate + timedelta(days=1)
    return candidate


def next_occurrence(current: datetime, repeat_type: str) -> datetime:
    if repeat_type == "daily":
        return current + timedelta(days=1)
    if repeat_type == "weekly":
        return current + timedelta(days=7)
    if repeat_type == "monthly":
        year = current.year + (1 if current.month == 12 else 0)
        month = 1 if current.month == 12 else current.month + 1
        last_day = calendar.monthrange(year, month)[1]
        # Jan 31 -> Feb 28/29
        return current.replace(year=year, month=month, day=min(current.day, last_day))
    return current
