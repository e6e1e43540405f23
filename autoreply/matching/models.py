"""Data models for the keyword matching engine.

This module defines the options, per-rule results and per-call outcomes
exchanged between the matcher, the matching engine and its callers.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from autoreply.domain.models import KeywordRule, MatchStrategy

from .utils import generate_tag


class MatchKind(str, Enum):
    """Which term of a rule matched and by which method."""

    KEYWORD = "KEYWORD"
    SYNONYM = "SYNONYM"
    FUZZY_KEYWORD = "FUZZY_KEYWORD"
    FUZZY_SYNONYM = "FUZZY_SYNONYM"

    @property
    def is_fuzzy(self) -> bool:
        return self in (MatchKind.FUZZY_KEYWORD, MatchKind.FUZZY_SYNONYM)


@dataclass(frozen=True)
class MatchOptions:
    """Options applied to one matching call.

    Attributes:
        enable_fuzzy_matching: Fall back to edit-distance similarity per token
        fuzzy_threshold: Minimum similarity accepted as a fuzzy match
        enable_word_boundary: CONTAINS terms must be delimited by non-word characters
        max_matches: Results kept after sorting
        min_confidence: Results below this confidence are dropped after truncation
        priority_weighting: Sort by rule priority before confidence
    """

    enable_fuzzy_matching: bool = False
    fuzzy_threshold: float = 0.8
    enable_word_boundary: bool = False
    max_matches: int = 5
    min_confidence: float = 0.7
    priority_weighting: bool = True

    def __post_init__(self):
        if not 0.0 <= self.fuzzy_threshold <= 1.0:
            raise ValueError("fuzzy_threshold must be between 0 and 1")
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ValueError("min_confidence must be between 0 and 1")
        if self.max_matches < 1:
            raise ValueError("max_matches must be at least 1")

    @classmethod
    def from_config(cls, matching_config) -> "MatchOptions":
        """Build options from a MatchingConfig section."""
        return cls(
            enable_fuzzy_matching=matching_config.enable_fuzzy_matching,
            fuzzy_threshold=matching_config.fuzzy_threshold,
            enable_word_boundary=matching_config.enable_word_boundary,
            max_matches=matching_config.max_matches,
            min_confidence=matching_config.min_confidence,
            priority_weighting=matching_config.priority_weighting,
        )


@dataclass
class MatchResult:
    """One rule that matched a message.

    Attributes:
        rule: The matching KeywordRule
        matched_term: Keyword or synonym that produced the match
        kind: KEYWORD, SYNONYM or their fuzzy variants
        confidence: 1.0 for strategy matches, similarity for fuzzy ones
        priority: The rule's priority at match time
    """

    rule: KeywordRule
    matched_term: str
    kind: MatchKind
    confidence: float
    priority: int

    @property
    def rule_id(self) -> str:
        return self.rule.rule_id

    @property
    def keyword(self) -> str:
        return self.rule.keyword

    @property
    def strategy(self) -> MatchStrategy:
        return self.rule.settings.match_strategy

    @property
    def tag(self) -> str:
        """Label combining priority band and keyword, e.g. high_priority_harga."""
        return generate_tag(self.rule.keyword, self.priority)

    @property
    def response_data(self) -> Dict[str, Optional[str]]:
        """Reply templates of the matched rule, product link resolved."""
        response = self.rule.response
        return {
            "dm_message": response.dm_message,
            "fallback_comment": response.fallback_comment,
            "product_link": response.effective_product_link,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "keyword": self.keyword,
            "matched_term": self.matched_term,
            "kind": self.kind.value,
            "confidence": self.confidence,
            "priority": self.priority,
            "strategy": self.strategy.value,
            "tag": self.tag,
            "response_data": self.response_data,
        }


@dataclass
class MatchOutcome:
    """Outcome of matching one message.

    success is False only for invalid input or a failed rule fetch; an
    empty rule set or a message nothing matched is still a success.
    """

    success: bool
    matches: List[MatchResult] = field(default_factory=list)
    total_rules: int = 0
    processing_time_ms: float = 0.0
    cache_hit: bool = False
    reason: Optional[str] = None
    error: Optional[str] = None
    message_id: Optional[str] = None

    @property
    def has_matches(self) -> bool:
        return bool(self.matches)

    @property
    def best_match(self) -> Optional[MatchResult]:
        return self.matches[0] if self.matches else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message_id": self.message_id,
            "matches": [match.to_dict() for match in self.matches],
            "total_rules": self.total_rules,
            "processing_time_ms": self.processing_time_ms,
            "cache_hit": self.cache_hit,
            "reason": self.reason,
            "error": self.error,
        }


@dataclass
class BatchSummary:
    """Aggregates over the outcomes of one match_many call."""

    total_messages: int = 0
    messages_with_matches: int = 0
    messages_without_matches: int = 0
    total_matches: int = 0
    failed_messages: int = 0
    average_matches_per_message: float = 0.0
    average_processing_time_ms: float = 0.0
    cache_hit_rate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BatchOutcome:
    """Per-message outcomes of one match_many call plus their summary."""

    success: bool
    outcomes: List[MatchOutcome] = field(default_factory=list)
    summary: BatchSummary = field(default_factory=BatchSummary)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "summary": self.summary.to_dict(),
            "error": self.error,
        }


@dataclass
class EngineMetrics:
    """Running totals maintained by the matching engine."""

    total_calls: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    average_match_time_ms: float = 0.0

    @property
    def total_cache_requests(self) -> int:
        return self.cache_hits + self.cache_misses

    @property
    def cache_hit_rate(self) -> float:
        """Percentage of rule lookups served from the cache."""
        if self.total_cache_requests == 0:
            return 0.0
        return round(self.cache_hits / self.total_cache_requests * 100, 2)

    def record_call(self, processing_time_ms: float, cache_hit: bool) -> None:
        self.total_calls += 1
        if cache_hit:
            self.cache_hits += 1
        else:
            self.cache_misses += 1
        self.average_match_time_ms += (
            processing_time_ms - self.average_match_time_ms
        ) / self.total_calls

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_calls": self.total_calls,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "total_cache_requests": self.total_cache_requests,
            "cache_hit_rate": self.cache_hit_rate,
            "average_match_time_ms": round(self.average_match_time_ms, 3),
        }
