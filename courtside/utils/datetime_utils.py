"""
Datetime utility functions.
Provides UTC helpers and conversion of local event times to timestamps.
"""

import os
from datetime import date, datetime, timedelta
from typing import Optional, Tuple
import pytz

# Wall-clock timezone that event dates and start times are entered in
EVENT_TIMEZONE = os.getenv("EVENT_TIMEZONE", "Asia/Taipei")


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime read back from the database to aware UTC.

    SQLite drops tzinfo on round-trip; all stored values are UTC, so a naive
    value is tagged as UTC rather than converted.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 string for a stored timestamp, or None."""
    value = ensure_utc(value)
    return value.isoformat() if value else None


def compute_event_window(
    date_str: str, start_time: str, duration_hours: float, tz_name: Optional[str] = None
) -> Tuple[datetime, datetime]:
    """
    Compute the UTC start and end of an event.

    Args:
        date_str: Calendar date "YYYY-MM-DD" in the event timezone
        start_time: Wall-clock start "HH:MM" in the event timezone
        duration_hours: Length of the event in (possibly fractional) hours
        tz_name: Override for EVENT_TIMEZONE

    Returns:
        (start_at, end_at) as aware UTC datetimes

    Raises:
        ValueError: If the date or time cannot be parsed, or duration is not positive

    Examples:
        >>> compute_event_window("2024-01-01", "14:00", 2, "UTC")
        (datetime(2024, 1, 1, 14, 0, tzinfo=<UTC>), datetime(2024, 1, 1, 16, 0, tzinfo=<UTC>))
    """
    try:
        day = datetime.strptime(date_str, "%Y-%m-%d").date()
        clock = datetime.strptime(start_time, "%H:%M").time()
    except (TypeError, ValueError):
        raise ValueError(f"Invalid event date/time: {date_str!r} {start_time!r}")

    if duration_hours is None or duration_hours <= 0:
        raise ValueError("Duration must be greater than zero")

    tz = pytz.timezone(tz_name or EVENT_TIMEZONE)
    local_start = tz.localize(datetime.combine(day, clock))
    start_at = local_start.astimezone(pytz.UTC)
    # Duration is carried in milliseconds so fractional hours keep their precision
    end_at = start_at + timedelta(milliseconds=round(duration_hours * 60 * 60 * 1000))
    return start_at, end_at


def local_today(tz_name: Optional[str] = None) -> date:
    """Today's calendar date in the event timezone."""
    tz = pytz.timezone(tz_name or EVENT_TIMEZONE)
    return utcnow().astimezone(tz).date()
