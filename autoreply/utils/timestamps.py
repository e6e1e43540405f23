"""Timestamp utilities for UTC handling and webhook time conversion.

Webhook payloads carry time in several shapes (unix seconds for comments,
unix milliseconds for direct messages, ISO strings from test tooling). The
helpers here turn all of them into timezone-aware UTC datetimes and measure
elapsed milliseconds for queue and activity bookkeeping.
"""

from datetime import datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current UTC time with timezone info
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware and in UTC.

    Naive datetimes are treated as UTC; aware ones are converted.

    Args:
        dt: Datetime to convert (can be None)

    Returns:
        Timezone-aware datetime in UTC, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def parse_iso_datetime(iso_string: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 datetime string to UTC datetime.

    Accepts a trailing 'Z' as well as explicit offsets.

    Args:
        iso_string: ISO 8601 formatted datetime string

    Returns:
        Timezone-aware datetime in UTC, or None if parsing fails

    Example:
        >>> dt = parse_iso_datetime("2025-11-04T12:00:00Z")
        >>> dt.year == 2025 and dt.month == 11 and dt.day == 4
        True
    """
    if not iso_string or not iso_string.strip():
        return None

    cleaned = iso_string.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"

    try:
        return ensure_utc(datetime.fromisoformat(cleaned))
    except ValueError:
        return None


def format_timestamp(dt: Optional[datetime], include_microseconds: bool = False) -> str:
    """Format a datetime as ISO 8601 string in UTC with 'Z' suffix.

    Example:
        >>> from datetime import datetime, timezone
        >>> format_timestamp(datetime(2025, 11, 4, 12, 0, 0, tzinfo=timezone.utc))
        '2025-11-04T12:00:00Z'
    """
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return ""

    if include_microseconds:
        return dt_utc.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return dt_utc.strftime("%Y-%m-%dT%H:%M:%SZ")


def unix_to_timestamp(unix_seconds: Union[int, float]) -> datetime:
    """Convert Unix timestamp (seconds) to datetime in UTC."""
    return datetime.fromtimestamp(unix_seconds, tz=timezone.utc)


def coerce_event_time(value) -> Optional[datetime]:
    """Convert a webhook time value into a UTC datetime.

    Numbers above 10^11 are treated as milliseconds (message webhooks),
    smaller numbers as seconds (comment webhooks). Strings are parsed as
    ISO 8601; datetimes are normalized to UTC.

    Args:
        value: int, float, str, datetime or None

    Returns:
        Timezone-aware UTC datetime, or None when the value is missing/unparseable
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if value > 1e11:
            return unix_to_timestamp(value / 1000.0)
        return unix_to_timestamp(value)
    if isinstance(value, str):
        return parse_iso_datetime(value)
    return None


def elapsed_ms(start: Optional[datetime], end: Optional[datetime]) -> Optional[int]:
    """Milliseconds between two datetimes, or None if either is missing."""
    if start is None or end is None:
        return None
    return int((end - start).total_seconds() * 1000)
