"""Domain models for keyword rules, posts and activity records."""

from .models import (
    ActivityRecord,
    ActivityStatus,
    ActivityType,
    EventType,
    KeywordRule,
    MatchStrategy,
    PostRecord,
    PostStatus,
    ReplyMode,
    ResponseKind,
    ResponseResult,
    RuleOutcome,
    RuleResponse,
    RuleSettings,
    RuleStatistics,
)

__all__ = [
    "ActivityRecord",
    "ActivityStatus",
    "ActivityType",
    "EventType",
    "KeywordRule",
    "MatchStrategy",
    "PostRecord",
    "PostStatus",
    "ReplyMode",
    "ResponseKind",
    "ResponseResult",
    "RuleOutcome",
    "RuleResponse",
    "RuleSettings",
    "RuleStatistics",
]
