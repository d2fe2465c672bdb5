"""
Timestamp helpers.

All instants are kept as timezone-aware UTC datetimes with millisecond
precision, and exchanged as ISO-8601 strings of one fixed shape
(``2025-01-01T12:00:00.000Z``) so the store can compare them as text.
"""

import datetime
from typing import Union

import pytz

TimestampLike = Union[datetime.datetime, str]


def _truncate(dt: datetime.datetime) -> datetime.datetime:
    return dt.replace(microsecond=dt.microsecond // 1000 * 1000)


def utc_now() -> datetime.datetime:
    """Current instant as an aware UTC datetime."""
    return _truncate(datetime.datetime.now(pytz.utc))


def to_utc(value: TimestampLike) -> datetime.datetime:
    """
    Normalize a datetime or ISO-8601 string to an aware UTC datetime.

    Naive values are taken to be UTC already.

    Raises:
        ValueError: If a string is not a valid ISO-8601 timestamp
        TypeError: If the value is neither a string nor a datetime
    """
    if isinstance(value, str):
        value = datetime.datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if not isinstance(value, datetime.datetime):
        raise TypeError(f"Expected datetime or ISO-8601 string, got {type(value).__name__}")

    if value.tzinfo is None:
        value = pytz.utc.localize(value)
    return _truncate(value.astimezone(pytz.utc))


def format_timestamp(value: TimestampLike) -> str:
    """Render an instant in the canonical storage form."""
    dt = to_utc(value)
    return dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{dt.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> datetime.datetime:
    """Parse a stored timestamp back into an aware UTC datetime."""
    return to_utc(value)


def add_calendar_days(
    moment: TimestampLike, days: int, timezone_name: str = "UTC"
) -> datetime.datetime:
    """
    Add whole calendar days to an instant.

    The wall-clock time in ``timezone_name`` is kept, so a day that crosses a
    daylight saving transition is 23 or 25 hours long.

    Args:
        moment: The starting instant
        days: Number of calendar days to add
        timezone_name: IANA zone name the calendar is read in

    Returns:
        The resulting instant in UTC
    """
    tz = pytz.timezone(timezone_name)
    local = to_utc(moment).astimezone(tz)
    shifted = local.replace(tzinfo=None) + datetime.timedelta(days=days)
    return to_utc(tz.localize(shifted))
