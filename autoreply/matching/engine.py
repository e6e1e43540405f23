"""Keyword matching engine for inbound comments and direct messages.

This module orchestrates the rule cache and the matcher:
1. Validates the resource id and message text
2. Loads the resource's ordered active rules (cached per TTL)
3. Runs the matcher over every rule
4. Sorts, truncates and filters the results per MatchOptions
5. Tracks running performance metrics
"""

import time
from typing import Any, Iterable, List, Optional, Tuple, Union

from autoreply.logging import get_logger

from .cache import RuleCache
from .matcher import match
from .models import (
    BatchOutcome,
    BatchSummary,
    EngineMetrics,
    MatchOptions,
    MatchOutcome,
    MatchResult,
)

logger = get_logger(__name__, component="matching")

NO_RULES_REASON = "No active keywords found for resource"
MessageInput = Union[str, dict, Any]


class MatchingEngine:
    """Matches message text against the keyword rules of a resource.

    Responsibilities:
    - Validate matching input without touching the cache
    - Evaluate every cached rule and order the results deterministically
    - Report processing time and cache provenance on every outcome
    - Keep running totals (calls, cache hits/misses, mean latency)
    """

    def __init__(self, rule_cache: RuleCache, default_options: Optional[MatchOptions] = None):
        """Initialize MatchingEngine.

        Args:
            rule_cache: RuleCache serving ordered active rules
            default_options: Options used when a call passes none
        """
        self.rule_cache = rule_cache
        self.default_options = default_options or MatchOptions()
        self.metrics = EngineMetrics()

    async def match_one(
        self,
        resource_id: str,
        text: str,
        options: Optional[MatchOptions] = None,
        message_id: Optional[str] = None,
    ) -> MatchOutcome:
        """Match one message against a resource's rules.

        Expected failures (missing input, rule store errors) are returned as
        an outcome with success=False and an error string; they never raise.

        Args:
            resource_id: Resource whose rules apply
            text: Message text
            options: Matching options (defaults to the engine's defaults)
            message_id: Optional caller identifier echoed on the outcome

        Returns:
            MatchOutcome
        """
        started = time.perf_counter()
        options = options or self.default_options

        if not _is_present(resource_id) or not _is_present(text):
            return MatchOutcome(
                success=False,
                error="Missing required parameters: resource_id and text",
                processing_time_ms=_elapsed_ms(started),
                message_id=message_id,
            )

        try:
            rules, cache_hit = await self.rule_cache.rules_for_with_status(resource_id)
        except Exception as e:
            logger.error(
                f"Failed to load rules: {e}",
                extra={
                    "event": "matching.rules_failed",
                    "resource_id": resource_id,
                    "error_type": type(e).__name__,
                },
            )
            return MatchOutcome(
                success=False,
                error=str(e) or type(e).__name__,
                processing_time_ms=_elapsed_ms(started),
                message_id=message_id,
            )

        if not rules:
            elapsed = _elapsed_ms(started)
            self.metrics.record_call(elapsed, cache_hit)
            return MatchOutcome(
                success=True,
                total_rules=0,
                processing_time_ms=elapsed,
                cache_hit=cache_hit,
                reason=NO_RULES_REASON,
                message_id=message_id,
            )

        candidates = [result for result in (match(text, rule, options) for rule in rules) if result]
        matches = select_matches(candidates, options)

        elapsed = _elapsed_ms(started)
        self.metrics.record_call(elapsed, cache_hit)

        logger.debug(
            "Message matched" if matches else "Message did not match",
            extra={
                "event": "matching.completed",
                "resource_id": resource_id,
                "rule_count": len(rules),
                "candidate_count": len(candidates),
                "match_count": len(matches),
                "cache_hit": cache_hit,
                "duration_ms": round(elapsed, 3),
            },
        )

        return MatchOutcome(
            success=True,
            matches=matches,
            total_rules=len(rules),
            processing_time_ms=elapsed,
            cache_hit=cache_hit,
            message_id=message_id,
        )

    async def match_many(
        self,
        resource_id: str,
        messages: Iterable[MessageInput],
        options: Optional[MatchOptions] = None,
    ) -> BatchOutcome:
        """Match each message in turn and summarize the batch.

        Messages may be plain strings, dicts with ``id`` and ``text`` keys, or
        objects with ``id`` and ``text`` attributes. A failed message does not
        stop the batch.
        """
        if messages is None or isinstance(messages, (str, bytes)):
            return BatchOutcome(success=False, error="Messages must be a non-empty list")

        messages = list(messages)
        if not messages:
            return BatchOutcome(success=False, error="Messages must be a non-empty list")

        outcomes: List[MatchOutcome] = []
        for message in messages:
            message_id, text = _unpack_message(message)
            outcomes.append(
                await self.match_one(resource_id, text, options, message_id=message_id)
            )

        summary = summarize(outcomes)
        logger.info(
            "Batch matched",
            extra={
                "event": "matching.batch_completed",
                "resource_id": resource_id,
                "total_messages": summary.total_messages,
                "messages_with_matches": summary.messages_with_matches,
                "failed_messages": summary.failed_messages,
            },
        )
        return BatchOutcome(success=True, outcomes=outcomes, summary=summary)

    async def refresh_rules(self, resource_id: str) -> bool:
        """Force a re-fetch of one resource's rules. Never raises."""
        return await self.rule_cache.refresh(resource_id)

    def clear_rule_cache(self) -> int:
        """Evict every cached rule list. Safe to call repeatedly."""
        return self.rule_cache.clear_all()

    def get_metrics(self) -> dict:
        metrics = self.metrics.to_dict()
        metrics["cache_size"] = len(self.rule_cache)
        return metrics


def select_matches(candidates: List[MatchResult], options: MatchOptions) -> List[MatchResult]:
    """Sort, truncate to max_matches, then drop results below min_confidence.

    With priority weighting the order is (priority desc, confidence desc),
    otherwise confidence desc alone. The sort is stable, so ties keep rule
    evaluation order.
    """
    if options.priority_weighting:
        ordered = sorted(candidates, key=lambda m: (-m.priority, -m.confidence))
    else:
        ordered = sorted(candidates, key=lambda m: -m.confidence)

    return [m for m in ordered[: options.max_matches] if m.confidence >= options.min_confidence]


def summarize(outcomes: List[MatchOutcome]) -> BatchSummary:
    """Aggregate per-message outcomes of a batch."""
    total = len(outcomes)
    if total == 0:
        return BatchSummary()

    with_matches = sum(1 for outcome in outcomes if outcome.matches)
    total_matches = sum(len(outcome.matches) for outcome in outcomes)
    total_time = sum(outcome.processing_time_ms for outcome in outcomes)
    cache_hits = sum(1 for outcome in outcomes if outcome.cache_hit)

    return BatchSummary(
        total_messages=total,
        messages_with_matches=with_matches,
        messages_without_matches=total - with_matches,
        total_matches=total_matches,
        failed_messages=sum(1 for outcome in outcomes if not outcome.success),
        average_matches_per_message=round(total_matches / total, 2),
        average_processing_time_ms=round(total_time / total, 3),
        cache_hit_rate=round(cache_hits / total * 100, 2),
    )


def _unpack_message(message: MessageInput) -> Tuple[Optional[str], Optional[str]]:
    if isinstance(message, str):
        return None, message
    if isinstance(message, dict):
        message_id = message.get("id")
        return (str(message_id) if message_id is not None else None), message.get("text")
    message_id = getattr(message, "id", None)
    return (str(message_id) if message_id is not None else None), getattr(message, "text", None)


def _is_present(value) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000
