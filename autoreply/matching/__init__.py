"""Keyword matching for inbound comments and direct messages.

This module provides:
- match: pure evaluation of one message against one KeywordRule
- RuleCache: TTL cache of each resource's ordered active rules
- MatchingEngine: single and batch matching with running metrics
- Result and option models shared by callers
"""

from .cache import CacheEntry, RuleCache, order_rules
from .engine import MatchingEngine, select_matches, summarize
from .matcher import match
from .models import (
    BatchOutcome,
    BatchSummary,
    EngineMetrics,
    MatchKind,
    MatchOptions,
    MatchOutcome,
    MatchResult,
)
from .utils import generate_tag, levenshtein_distance, similarity

__all__ = [
    "match",
    "RuleCache",
    "CacheEntry",
    "order_rules",
    "MatchingEngine",
    "select_matches",
    "summarize",
    "MatchKind",
    "MatchOptions",
    "MatchResult",
    "MatchOutcome",
    "BatchOutcome",
    "BatchSummary",
    "EngineMetrics",
    "generate_tag",
    "levenshtein_distance",
    "similarity",
]
