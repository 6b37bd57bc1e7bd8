"""
UTC datetime utilities for run timing.

All datetimes in the engine are timezone-aware UTC; run durations and
timeouts are integer milliseconds.
"""

from datetime import UTC, datetime, timedelta
from typing import Any


def utc_now() -> datetime:
    """Return the current UTC datetime with timezone info."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """
    Ensure a datetime is UTC-aware.

    Naive values (SQLite returns these) are assumed to be UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def from_timestamp_ms_utc(timestamp_ms: int) -> datetime:
    """Create a UTC-aware datetime from a millisecond Unix timestamp."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)


def elapsed_ms(start: datetime | None, end: datetime | None = None) -> int:
    """Whole milliseconds between start and end (default now); 0 if start is None."""
    if start is None:
        return 0
    end = ensure_utc(end) or utc_now()
    return max(0, int((end - ensure_utc(start)).total_seconds() * 1000))


def add_ms(dt: datetime, ms: int) -> datetime:
    return dt + timedelta(milliseconds=ms)


def parse_instant(value: Any) -> datetime | None:
    """
    Parse an absolute point in time.

    Accepts a datetime, an epoch-milliseconds number (or numeric string)
    or an ISO-8601 string. Returns None when the value cannot be parsed.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        return from_timestamp_ms_utc(int(value))
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lstrip("-").isdigit():
            return from_timestamp_ms_utc(int(text))
        try:
            return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None
