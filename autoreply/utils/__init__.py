"""Utility functions for time handling."""

from .timestamps import (
    coerce_event_time,
    elapsed_ms,
    ensure_utc,
    format_timestamp,
    parse_iso_datetime,
    unix_to_timestamp,
    utc_now,
)

__all__ = [
    "utc_now",
    "ensure_utc",
    "parse_iso_datetime",
    "format_timestamp",
    "unix_to_timestamp",
    "coerce_event_time",
    "elapsed_ms",
]
