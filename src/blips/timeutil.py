"""Time helpers.

All timestamps in blips are timezone-aware UTC. Values read back from disk
may be ISO strings, YAML-decoded datetimes, or naive datetimes written by
hand; they are normalized here.
"""

from datetime import date, datetime, timezone

from dateutil import parser as dateparser

from .constants import (
    SECONDS_PER_DAY,
    SECONDS_PER_HOUR,
    SECONDS_PER_MINUTE,
    SECONDS_PER_MONTH,
    SECONDS_PER_WEEK,
    SECONDS_PER_YEAR,
)


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: object) -> datetime | None:
    """Leniently parse a stored timestamp.

    Accepts datetimes, dates and strings (ISO 8601 or anything dateutil
    understands). Returns None for empty or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None
    try:
        return ensure_utc(dateparser.isoparse(value))
    except ValueError:
        pass
    try:
        return ensure_utc(dateparser.parse(value))
    except (ValueError, OverflowError):
        return None


def format_timestamp(dt: datetime) -> str:
    """Render a timestamp the way it is stored on disk."""
    return ensure_utc(dt).isoformat()


_AGE_UNITS = (
    ("year", SECONDS_PER_YEAR),
    ("month", SECONDS_PER_MONTH),
    ("week", SECONDS_PER_WEEK),
    ("day", SECONDS_PER_DAY),
    ("hour", SECONDS_PER_HOUR),
    ("minute", SECONDS_PER_MINUTE),
)


def format_relative_time(dt: datetime, now: datetime | None = None) -> str:
    """Age of `dt` as "3 days ago", using the largest whole unit.

    Under a minute is "just now"; timestamps after `now` are "in the future".
    """
    seconds = int(((now or utc_now()) - ensure_utc(dt)).total_seconds())
    if seconds < 0:
        return "in the future"
    for unit, size in _AGE_UNITS:
        count = seconds // size
        if count:
            return f"{count} {unit}{'s' if count != 1 else ''} ago"
    return "just now"
