"""Database schema definition and ORM models.

This module defines SQLAlchemy ORM models for posts, keyword rules and
activity records, and the conversions between ORM rows and domain models.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from autoreply.domain.models import (
    ActivityRecord,
    KeywordRule,
    PostRecord,
    RuleResponse,
    RuleSettings,
    RuleStatistics,
)

logger = logging.getLogger(__name__)

Base = declarative_base()


class PostModel(Base):
    """ORM model for posts table.

    A post owns a set of keyword rules and the automation switch for them.
    """

    __tablename__ = "posts"

    resource_id = Column(String(64), primary_key=True, nullable=False)
    external_post_id = Column(String(255), nullable=False, unique=True)
    account_id = Column(String(64), nullable=False)

    automation_enabled = Column(Boolean, nullable=False, default=False)
    reply_mode = Column(String(20), nullable=False, default="BOTH")
    status = Column(String(20), nullable=False, default="ACTIVE")

    __table_args__ = (Index("idx_posts_account", "account_id"),)

    def to_domain(self) -> PostRecord:
        return PostRecord(
            resource_id=self.resource_id,
            external_post_id=self.external_post_id,
            account_id=self.account_id,
            automation_enabled=self.automation_enabled,
            reply_mode=self.reply_mode,
            status=self.status,
        )

    @classmethod
    def from_domain(cls, post: PostRecord) -> "PostModel":
        return cls(
            resource_id=post.resource_id,
            external_post_id=post.external_post_id,
            account_id=post.account_id,
            automation_enabled=post.automation_enabled,
            reply_mode=post.reply_mode.value,
            status=post.status.value,
        )


class KeywordRuleModel(Base):
    """ORM model for keyword_rules table.

    (resource_id, keyword) is unique: a post cannot carry the same normalized
    keyword twice.
    """

    __tablename__ = "keyword_rules"

    rule_id = Column(String(64), primary_key=True, nullable=False)
    resource_id = Column(
        String(64), ForeignKey("posts.resource_id", ondelete="CASCADE"), nullable=False
    )
    account_id = Column(String(64), nullable=False)

    # Terms
    keyword = Column(String(100), nullable=False)
    synonyms = Column(JSON, nullable=False, default=list)

    # Response templates
    dm_message = Column(Text, nullable=False)
    fallback_comment = Column(String(300), nullable=False)
    include_product_link = Column(Boolean, nullable=False, default=True)
    product_link = Column(Text, nullable=True)

    # Settings
    is_active = Column(Boolean, nullable=False, default=True)
    match_strategy = Column(String(20), nullable=False, default="CONTAINS")
    case_sensitive = Column(Boolean, nullable=False, default=False)
    priority = Column(Integer, nullable=False, default=1)

    # Statistics
    total_matches = Column(Integer, nullable=False, default=0)
    successful_replies = Column(Integer, nullable=False, default=0)
    failed_replies = Column(Integer, nullable=False, default=0)
    fallback_replies = Column(Integer, nullable=False, default=0)
    last_matched_at = Column(String(50), nullable=True)
    average_response_time_ms = Column(Float, nullable=False, default=0.0)

    # Timestamps (stored as ISO 8601 strings)
    created_at = Column(String(50), nullable=False)

    __table_args__ = (
        UniqueConstraint("resource_id", "keyword", name="uq_keyword_rules_resource_keyword"),
        Index("idx_keyword_rules_lookup", "resource_id", "is_active", "priority"),
    )

    def to_domain(self) -> KeywordRule:
        return KeywordRule(
            rule_id=self.rule_id,
            resource_id=self.resource_id,
            account_id=self.account_id,
            keyword=self.keyword,
            synonyms=list(self.synonyms or []),
            response=RuleResponse(
                dm_message=self.dm_message,
                fallback_comment=self.fallback_comment,
                include_product_link=self.include_product_link,
                product_link=self.product_link,
            ),
            settings=RuleSettings(
                is_active=self.is_active,
                match_strategy=self.match_strategy,
                case_sensitive=self.case_sensitive,
                priority=self.priority,
            ),
            statistics=self.statistics_to_domain(),
            created_at=parse_db_timestamp(self.created_at),
        )

    def statistics_to_domain(self) -> RuleStatistics:
        return RuleStatistics(
            total_matches=self.total_matches or 0,
            successful_replies=self.successful_replies or 0,
            failed_replies=self.failed_replies or 0,
            fallback_replies=self.fallback_replies or 0,
            last_matched_at=parse_db_timestamp(self.last_matched_at),
            average_response_time_ms=self.average_response_time_ms or 0.0,
        )

    def apply_statistics(self, statistics: RuleStatistics) -> None:
        self.total_matches = statistics.total_matches
        self.successful_replies = statistics.successful_replies
        self.failed_replies = statistics.failed_replies
        self.fallback_replies = statistics.fallback_replies
        self.last_matched_at = format_db_timestamp(statistics.last_matched_at)
        self.average_response_time_ms = statistics.average_response_time_ms

    def apply_domain(self, rule: KeywordRule) -> None:
        """Copy every rule field except the primary key onto this row."""
        self.resource_id = rule.resource_id
        self.account_id = rule.account_id
        self.keyword = rule.keyword
        self.synonyms = list(rule.synonyms)
        self.dm_message = rule.response.dm_message
        self.fallback_comment = rule.response.fallback_comment
        self.include_product_link = rule.response.include_product_link
        self.product_link = rule.response.product_link
        self.is_active = rule.settings.is_active
        self.match_strategy = rule.settings.match_strategy.value
        self.case_sensitive = rule.settings.case_sensitive
        self.priority = rule.settings.priority
        self.created_at = format_db_timestamp(rule.created_at)
        self.apply_statistics(rule.statistics)

    @classmethod
    def from_domain(cls, rule: KeywordRule) -> "KeywordRuleModel":
        model = cls(rule_id=rule.rule_id)
        model.apply_domain(rule)
        return model


# Activity columns copied one-to-one between the row and ActivityRecord
ACTIVITY_PLAIN_FIELDS = (
    "event_id",
    "account_id",
    "resource_id",
    "rule_id",
    "external_post_id",
    "comment_id",
    "message_id",
    "from_user_id",
    "from_username",
    "original_text",
    "matched_keyword",
    "matched_term",
    "match_kind",
    "confidence",
    "tag",
    "total_rules",
    "cache_hit",
    "response_message",
    "response_id",
    "response_latency_ms",
    "error_code",
    "error_message",
    "retry_count",
    "reason",
    "processing_time_ms",
)


class ActivityModel(Base):
    """ORM model for activities table.

    One row per processed webhook event, written once its outcome is terminal.
    """

    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(64), nullable=True)
    account_id = Column(String(64), nullable=True)
    resource_id = Column(String(64), nullable=True)
    rule_id = Column(String(64), nullable=True)
    type = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False)

    external_post_id = Column(String(255), nullable=True)
    comment_id = Column(String(255), nullable=True)
    message_id = Column(String(255), nullable=True)
    from_user_id = Column(String(255), nullable=True)
    from_username = Column(String(255), nullable=True)
    original_text = Column(Text, nullable=False, default="")
    event_timestamp = Column(String(50), nullable=True)

    matched_keyword = Column(String(100), nullable=True)
    matched_term = Column(String(100), nullable=True)
    match_strategy = Column(String(20), nullable=True)
    match_kind = Column(String(20), nullable=True)
    confidence = Column(Float, nullable=True)
    tag = Column(String(150), nullable=True)
    total_rules = Column(Integer, nullable=True)
    cache_hit = Column(Boolean, nullable=True)

    response_kind = Column(String(10), nullable=False, default="NONE")
    response_message = Column(Text, nullable=True)
    response_id = Column(String(255), nullable=True)
    response_latency_ms = Column(Integer, nullable=True)

    error_code = Column(String(100), nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)

    reason = Column(Text, nullable=True)
    processing_time_ms = Column(Integer, nullable=True)
    created_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_activities_resource", "resource_id", "created_at"),
        Index("idx_activities_status", "status"),
        Index("idx_activities_created", "created_at"),
    )

    def to_domain(self) -> ActivityRecord:
        values = {name: getattr(self, name) for name in ACTIVITY_PLAIN_FIELDS}
        return ActivityRecord(
            type=self.type,
            status=self.status,
            match_strategy=self.match_strategy,
            response_kind=self.response_kind,
            event_timestamp=parse_db_timestamp(self.event_timestamp),
            created_at=parse_db_timestamp(self.created_at),
            **values,
        )

    @classmethod
    def from_domain(cls, activity: ActivityRecord) -> "ActivityModel":
        values = {name: getattr(activity, name) for name in ACTIVITY_PLAIN_FIELDS}
        return cls(
            type=activity.type.value,
            status=activity.status.value,
            match_strategy=activity.match_strategy.value if activity.match_strategy else None,
            response_kind=activity.response_kind.value,
            event_timestamp=format_db_timestamp(activity.event_timestamp),
            created_at=format_db_timestamp(activity.created_at),
            **values,
        )


def format_db_timestamp(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime as ISO 8601 string for database storage."""
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_db_timestamp(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO 8601 string back to a UTC datetime."""
    if dt_str is None or dt_str == "":
        return None

    dt_str = dt_str.rstrip("Z")

    try:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)

        from sqlalchemy import inspect

        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")

    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
