"""Duration parsing utilities for configuration.

Queue timings are specified in milliseconds in the running system, while cache
TTLs and maintenance intervals read more naturally in seconds or minutes. All
durations in the config file therefore accept the same syntax and are parsed to
milliseconds first.
"""

import re
from typing import Union


class DurationParseError(ValueError):
    """Raised when a duration string cannot be parsed."""

    pass


UNIT_MULTIPLIERS_MS = {
    "ms": 1,
    "s": 1000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
}

_HUMAN_PATTERN = re.compile(r"(\d+)\s*(ms|s|m|h|d)")
_ISO_PATTERN = re.compile(
    r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$"
)


def parse_duration_ms(duration: Union[str, int]) -> int:
    """Parse a duration to milliseconds.

    Supported forms:
    - Integers: taken as milliseconds already
    - Human-readable: "250ms", "3s", "5m", "1h", "2d", combinations like "1m30s"
    - ISO-8601: "PT3S", "PT5M", "P1D"

    Args:
        duration: Duration string or integer milliseconds

    Returns:
        Duration in milliseconds (always > 0)

    Raises:
        DurationParseError: If the duration is invalid or zero

    Examples:
        >>> parse_duration_ms("3s")
        3000
        >>> parse_duration_ms("PT5M")
        300000
        >>> parse_duration_ms("1m30s")
        90000
    """
    if isinstance(duration, bool):
        raise DurationParseError(f"Invalid duration: {duration!r}")

    if isinstance(duration, int):
        if duration <= 0:
            raise DurationParseError(f"Duration must be positive: {duration}")
        return duration

    if not isinstance(duration, str):
        raise DurationParseError(f"Invalid duration type: {type(duration).__name__}")

    duration_str = duration.strip()
    if not duration_str:
        raise DurationParseError("Duration string cannot be empty")

    if duration_str.upper().startswith("P"):
        return _parse_iso8601_duration(duration_str)

    return _parse_human_readable_duration(duration_str)


def parse_duration(duration: Union[str, int]) -> float:
    """Parse a duration to seconds (fractional for sub-second values)."""
    return parse_duration_ms(duration) / 1000.0


def _parse_iso8601_duration(duration_str: str) -> int:
    match = _ISO_PATTERN.match(duration_str.upper())
    if not match:
        raise DurationParseError(
            f"Invalid ISO-8601 duration format: '{duration_str}'. "
            "Expected format like 'P1D', 'PT1H30M', 'PT5M', or 'PT3S'"
        )

    days, hours, minutes, seconds = match.groups()

    total_ms = 0
    if days:
        total_ms += int(days) * UNIT_MULTIPLIERS_MS["d"]
    if hours:
        total_ms += int(hours) * UNIT_MULTIPLIERS_MS["h"]
    if minutes:
        total_ms += int(minutes) * UNIT_MULTIPLIERS_MS["m"]
    if seconds:
        total_ms += int(round(float(seconds) * 1000))

    if total_ms == 0:
        raise DurationParseError(f"Duration cannot be zero: '{duration_str}'")

    return total_ms


def _parse_human_readable_duration(duration_str: str) -> int:
    lowered = duration_str.lower()
    matches = _HUMAN_PATTERN.findall(lowered)

    if not matches:
        raise DurationParseError(
            f"Invalid duration format: '{duration_str}'. "
            "Expected format like '250ms', '3s', '5m', '1h', '2d', or combinations like '1m30s'"
        )

    # Reject leftovers such as "5x" or "3s later"
    parsed_str = "".join(f"{num}{unit}" for num, unit in matches)
    if parsed_str != re.sub(r"\s+", "", lowered):
        raise DurationParseError(
            f"Invalid characters in duration: '{duration_str}'. "
            "Use only digits and units: ms, s, m, h, d"
        )

    total_ms = sum(int(num) * UNIT_MULTIPLIERS_MS[unit] for num, unit in matches)

    if total_ms == 0:
        raise DurationParseError(f"Duration cannot be zero: '{duration_str}'")

    return total_ms


def validate_duration_range(
    duration_ms: int,
    min_ms: int,
    max_ms: int,
    label: str = "Duration",
) -> None:
    """Validate that a duration in milliseconds is within [min_ms, max_ms].

    Raises:
        DurationParseError: If the duration is outside the range
    """
    if duration_ms < min_ms:
        raise DurationParseError(
            f"{label} too short: {format_duration_ms(duration_ms)}. "
            f"Minimum is {format_duration_ms(min_ms)}."
        )

    if duration_ms > max_ms:
        raise DurationParseError(
            f"{label} too long: {format_duration_ms(duration_ms)}. "
            f"Maximum is {format_duration_ms(max_ms)}."
        )


def format_duration_ms(duration_ms: int) -> str:
    """Render milliseconds in the largest whole unit (e.g. "3 seconds")."""
    for unit, name in (("d", "day"), ("h", "hour"), ("m", "minute"), ("s", "second")):
        size = UNIT_MULTIPLIERS_MS[unit]
        if duration_ms >= size and duration_ms % size == 0:
            count = duration_ms // size
            return f"{count} {name}{'s' if count != 1 else ''}"
    return f"{duration_ms} ms"
