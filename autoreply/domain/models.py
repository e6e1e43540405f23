"""Core domain models for keyword rules, posts, activities and deliveries.

This module defines the data structures shared by the matching engine, the
webhook processor and the persistence adapters:
- KeywordRule: a per-post keyword configuration with response templates
- PostRecord: the post a rule set is scoped to, with its automation settings
- ActivityRecord: the full outcome of one processed webhook event
- ResponseResult: what the delivery channel reported for one send
"""

import re
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from autoreply.utils.timestamps import ensure_utc, utc_now

PRODUCT_LINK_PATTERN = re.compile(r"^https?://.+")


class MatchStrategy(str, Enum):
    """How a rule's terms are compared against message text."""

    EXACT = "EXACT"
    CONTAINS = "CONTAINS"
    STARTS_WITH = "STARTS_WITH"
    ENDS_WITH = "ENDS_WITH"


class RuleOutcome(str, Enum):
    """Terminal reply outcome recorded against a rule's statistics."""

    SUCCESS = "success"
    FAILED = "failed"
    FALLBACK = "fallback"


class ReplyMode(str, Enum):
    """Which channels a post's automation may reply through."""

    COMMENTS_ONLY = "COMMENTS_ONLY"
    DMS_ONLY = "DMS_ONLY"
    BOTH = "BOTH"


class PostStatus(str, Enum):
    """Lifecycle state of a post."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ARCHIVED = "ARCHIVED"
    ERROR = "ERROR"


class EventType(str, Enum):
    """Kind of inbound webhook event."""

    COMMENT = "comment"
    MESSAGE = "message"


class ResponseKind(str, Enum):
    """Delivery channel of a reply."""

    DM = "DM"
    COMMENT = "COMMENT"
    NONE = "NONE"


class ActivityType(str, Enum):
    """What kind of inbound event an activity record describes."""

    COMMENT_RECEIVED = "COMMENT_RECEIVED"
    MESSAGE_RECEIVED = "MESSAGE_RECEIVED"


class ActivityStatus(str, Enum):
    """Terminal outcome of a processed event."""

    SUCCESS = "SUCCESS"
    FALLBACK = "FALLBACK"
    FAILED = "FAILED"
    NO_MATCH = "NO_MATCH"
    IGNORED = "IGNORED"
    ERROR = "ERROR"


class RuleResponse(BaseModel):
    """Reply templates attached to a keyword rule."""

    dm_message: str = Field(..., min_length=1, max_length=1000)
    fallback_comment: str = Field(..., min_length=1, max_length=300)
    include_product_link: bool = Field(True, description="Append product_link to the DM")
    product_link: Optional[str] = Field(None, description="URL appended to the DM")

    @model_validator(mode="after")
    def validate_product_link(self):
        if self.include_product_link and self.product_link:
            if not PRODUCT_LINK_PATTERN.match(self.product_link):
                raise ValueError("Product link must be a valid URL")
        return self

    @property
    def effective_product_link(self) -> Optional[str]:
        """The link to append, or None when linking is disabled or unset."""
        if self.include_product_link and self.product_link:
            return self.product_link
        return None


class RuleSettings(BaseModel):
    """Matching behaviour of a keyword rule."""

    is_active: bool = True
    match_strategy: MatchStrategy = MatchStrategy.CONTAINS
    case_sensitive: bool = False
    priority: int = Field(1, ge=1, le=10, description="Higher priority is considered first")


class RuleStatistics(BaseModel):
    """Cumulative reply statistics of a keyword rule."""

    total_matches: int = 0
    successful_replies: int = 0
    failed_replies: int = 0
    fallback_replies: int = 0
    last_matched_at: Optional[datetime] = None
    average_response_time_ms: float = 0.0

    @property
    def total_replies(self) -> int:
        return self.successful_replies + self.failed_replies + self.fallback_replies

    @property
    def success_rate(self) -> int:
        """Percentage of replies that succeeded, rounded to an int."""
        if self.total_replies == 0:
            return 0
        return round(self.successful_replies / self.total_replies * 100)

    def record_outcome(
        self,
        outcome: RuleOutcome,
        latency_ms: float = 0,
        now: Optional[datetime] = None,
    ) -> None:
        """Apply one terminal reply outcome.

        The running latency average covers replies recorded so far and only
        moves when a positive latency is reported.

        Args:
            outcome: success, failed or fallback
            latency_ms: Delivery latency of this reply (0 when unknown)
            now: Timestamp for last_matched_at (defaults to current UTC time)
        """
        outcome = RuleOutcome(outcome)
        self.total_matches += 1
        self.last_matched_at = now or utc_now()

        if latency_ms and latency_ms > 0:
            previous = self.total_replies
            self.average_response_time_ms = round(
                (self.average_response_time_ms * previous + latency_ms) / (previous + 1)
            )

        if outcome is RuleOutcome.SUCCESS:
            self.successful_replies += 1
        elif outcome is RuleOutcome.FAILED:
            self.failed_replies += 1
        else:
            self.fallback_replies += 1


class KeywordRule(BaseModel):
    """A keyword configuration scoped to one post.

    The primary keyword and its synonyms are normalized on construction:
    stripped, lowercased unless the rule is case sensitive, synonyms
    deduplicated in declaration order and never equal to the keyword.
    """

    rule_id: str = Field(..., min_length=1)
    resource_id: str = Field(..., min_length=1, description="Post the rule belongs to")
    account_id: str = Field(..., min_length=1, description="Owner of the rule")
    keyword: str = Field(..., min_length=1, max_length=100)
    synonyms: List[str] = Field(default_factory=list)
    response: RuleResponse
    settings: RuleSettings = Field(default_factory=RuleSettings)
    statistics: RuleStatistics = Field(default_factory=RuleStatistics)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("synonyms")
    @classmethod
    def validate_synonym_length(cls, v: List[str]) -> List[str]:
        for synonym in v:
            if len(synonym) > 100:
                raise ValueError("Synonym cannot exceed 100 characters")
        return v

    @field_validator("created_at")
    @classmethod
    def validate_created_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def normalize_terms(self):
        keyword = self.keyword.strip()
        if not keyword:
            raise ValueError("Keyword cannot be empty or whitespace-only")
        if not self.settings.case_sensitive:
            keyword = keyword.lower()

        synonyms: List[str] = []
        for synonym in self.synonyms:
            term = synonym.strip()
            if not self.settings.case_sensitive:
                term = term.lower()
            if term and term != keyword and term not in synonyms:
                synonyms.append(term)

        self.keyword = keyword
        self.synonyms = synonyms
        return self

    @property
    def all_terms(self) -> List[str]:
        """Keyword followed by synonyms in declaration order."""
        return [self.keyword, *self.synonyms]

    @property
    def priority(self) -> int:
        return self.settings.priority


class PostRecord(BaseModel):
    """A post whose comments and messages are answered automatically."""

    resource_id: str = Field(..., min_length=1, description="Internal post identifier")
    external_post_id: str = Field(..., min_length=1, description="Post id used by webhooks")
    account_id: str = Field(..., min_length=1)
    automation_enabled: bool = False
    reply_mode: ReplyMode = ReplyMode.BOTH
    status: PostStatus = PostStatus.ACTIVE

    @property
    def is_automated(self) -> bool:
        return self.automation_enabled and self.status == PostStatus.ACTIVE


class ResponseResult(BaseModel):
    """What the delivery channel reported for one send attempt."""

    success: bool
    kind: ResponseKind = ResponseKind.DM
    response_id: Optional[str] = None
    latency_ms: Optional[int] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class ActivityRecord(BaseModel):
    """Full outcome of one processed webhook event.

    Written exactly once per event when its outcome is terminal.
    """

    event_id: Optional[str] = Field(None, description="Queue item id of the event")
    account_id: Optional[str] = None
    resource_id: Optional[str] = None
    rule_id: Optional[str] = None
    type: ActivityType
    status: ActivityStatus

    # Inbound event
    external_post_id: Optional[str] = None
    comment_id: Optional[str] = None
    message_id: Optional[str] = None
    from_user_id: Optional[str] = None
    from_username: Optional[str] = None
    original_text: str = Field("", max_length=2200)
    event_timestamp: Optional[datetime] = None

    # Match detail
    matched_keyword: Optional[str] = None
    matched_term: Optional[str] = None
    match_strategy: Optional[MatchStrategy] = None
    match_kind: Optional[str] = None
    confidence: Optional[float] = None
    tag: Optional[str] = None
    total_rules: Optional[int] = None
    cache_hit: Optional[bool] = None

    # Response detail
    response_kind: ResponseKind = ResponseKind.NONE
    response_message: Optional[str] = Field(None, max_length=1000)
    response_id: Optional[str] = None
    response_latency_ms: Optional[int] = None

    # Error detail
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    retry_count: int = 0

    reason: Optional[str] = None
    processing_time_ms: Optional[int] = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("original_text", mode="before")
    @classmethod
    def clip_original_text(cls, v):
        if v is None:
            return ""
        return str(v)[:2200]

    @field_validator("response_message", mode="before")
    @classmethod
    def clip_response_message(cls, v):
        if v is None:
            return None
        return str(v)[:1000]
