"""Soft validation for configuration values that are legal but suspicious."""

import warnings
from typing import Any, Dict, List

from .duration import DurationParseError, parse_duration_ms


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check raw configuration for potential issues and return warnings.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    matching = config_dict.get("matching", {})
    if isinstance(matching, dict):
        fuzzy_enabled = matching.get("enable_fuzzy_matching", True)
        threshold = matching.get("fuzzy_threshold", 0.8)
        min_confidence = matching.get("min_confidence", 0.7)
        if (
            fuzzy_enabled
            and isinstance(threshold, (int, float))
            and isinstance(min_confidence, (int, float))
            and threshold < min_confidence
        ):
            warning_messages.append(
                f"fuzzy_threshold ({threshold}) is below min_confidence ({min_confidence}); "
                "fuzzy matches between the two values will be discarded"
            )

        if isinstance(threshold, (int, float)) and fuzzy_enabled and threshold < 0.5:
            warning_messages.append(
                f"Low fuzzy_threshold ({threshold}) will match unrelated words"
            )

    queue = config_dict.get("queue", {})
    if isinstance(queue, dict):
        timeout = _duration_or_none(queue.get("timeout"))
        retry_delay = _duration_or_none(queue.get("retry_delay"))
        max_retries = queue.get("max_retries", 3)

        if timeout is not None and timeout < 1000:
            warning_messages.append(
                f"Very short queue timeout ({queue.get('timeout')}) may fail healthy deliveries"
            )

        if (
            retry_delay is not None
            and isinstance(max_retries, int)
            and retry_delay * max_retries > 600_000
        ):
            warning_messages.append(
                "Retries may hold an event for more than 10 minutes "
                f"(retry_delay={queue.get('retry_delay')}, max_retries={max_retries})"
            )

    responder = config_dict.get("responder", {})
    if isinstance(responder, dict):
        for key in ("dm_success_rate", "comment_success_rate"):
            rate = responder.get(key)
            if isinstance(rate, (int, float)) and rate == 0:
                warning_messages.append(f"responder.{key} is 0; every delivery will fail")

    return warning_messages


def _duration_or_none(value: Any):
    if value is None:
        return None
    try:
        return parse_duration_ms(value)
    except DurationParseError:
        # Hard validation reports the error
        return None


def emit_warnings(warning_messages: List[str]) -> None:
    """Emit warning messages using Python's warnings module."""
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
