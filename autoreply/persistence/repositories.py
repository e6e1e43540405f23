"""Data access layer (repositories) for posts, keyword rules and activities.

Repositories wrap one SQLAlchemy session, translate SQLAlchemy errors into
PersistenceError subclasses and return domain models rather than ORM rows.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from autoreply.domain.models import ActivityRecord, KeywordRule, PostRecord, RuleOutcome
from autoreply.utils.timestamps import utc_now

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import ActivityModel, KeywordRuleModel, PostModel, format_db_timestamp

logger = logging.getLogger(__name__)


class PostRepository:
    """Repository for posts and their automation settings."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, resource_id: str) -> Optional[PostRecord]:
        try:
            post_model = self.session.get(PostModel, resource_id)
            return post_model.to_domain() if post_model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving post {resource_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve post: {e}") from e

    def get_by_external_id(self, external_post_id: str) -> Optional[PostRecord]:
        """Look up a post by the id carried in webhook payloads.

        Returns:
            PostRecord if found, None otherwise
        """
        try:
            stmt = select(PostModel).where(PostModel.external_post_id == external_post_id)
            post_model = self.session.execute(stmt).scalar_one_or_none()
            return post_model.to_domain() if post_model else None
        except SQLAlchemyError as e:
            logger.error(
                f"Error retrieving post by external id {external_post_id}: {e}", exc_info=True
            )
            raise PersistenceError(f"Failed to retrieve post: {e}") from e

    def list_all(self) -> List[PostRecord]:
        try:
            stmt = select(PostModel).order_by(PostModel.resource_id)
            return [post_model.to_domain() for post_model in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing posts: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list posts: {e}") from e

    def upsert(self, post: PostRecord) -> PostRecord:
        """Insert a post or update the existing row with the same resource_id.

        Raises:
            DataIntegrityError: If external_post_id belongs to another post
            PersistenceError: If database error occurs
        """
        try:
            existing = self.session.get(PostModel, post.resource_id)
            if existing:
                existing.external_post_id = post.external_post_id
                existing.account_id = post.account_id
                existing.automation_enabled = post.automation_enabled
                existing.reply_mode = post.reply_mode.value
                existing.status = post.status.value
                self.session.flush()
                return existing.to_domain()

            post_model = PostModel.from_domain(post)
            self.session.add(post_model)
            self.session.flush()
            return post_model.to_domain()

        except IntegrityError as e:
            logger.error(f"Integrity error upserting post {post.resource_id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to upsert post due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error upserting post {post.resource_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to upsert post: {e}") from e


class RuleRepository:
    """Repository for keyword rules and their reply statistics."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, rule_id: str) -> Optional[KeywordRule]:
        try:
            rule_model = self.session.get(KeywordRuleModel, rule_id)
            return rule_model.to_domain() if rule_model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving rule {rule_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve rule: {e}") from e

    def get_active_for_resource(self, resource_id: str) -> List[KeywordRule]:
        """Active rules of one post, highest priority first, then oldest first.

        Returns:
            List of KeywordRule domain models (empty list if none found)

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = (
                select(KeywordRuleModel)
                .where(
                    KeywordRuleModel.resource_id == resource_id,
                    KeywordRuleModel.is_active.is_(True),
                )
                .order_by(KeywordRuleModel.priority.desc(), KeywordRuleModel.created_at.asc())
            )
            rule_models = self.session.execute(stmt).scalars().all()
            return [rule_model.to_domain() for rule_model in rule_models]

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving rules for resource {resource_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve rules: {e}") from e

    def get_for_resource(self, resource_id: str) -> List[KeywordRule]:
        """All rules of one post, active or not."""
        try:
            stmt = (
                select(KeywordRuleModel)
                .where(KeywordRuleModel.resource_id == resource_id)
                .order_by(KeywordRuleModel.priority.desc(), KeywordRuleModel.created_at.asc())
            )
            return [rule_model.to_domain() for rule_model in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving rules for resource {resource_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve rules: {e}") from e

    def upsert(self, rule: KeywordRule) -> KeywordRule:
        """Insert a rule or overwrite the existing row with the same rule_id.

        Raises:
            DataIntegrityError: If the post already has a rule with this keyword,
                or the post does not exist
            PersistenceError: If database error occurs
        """
        try:
            existing = self.session.get(KeywordRuleModel, rule.rule_id)
            if existing:
                existing.apply_domain(rule)
                self.session.flush()
                return existing.to_domain()

            rule_model = KeywordRuleModel.from_domain(rule)
            self.session.add(rule_model)
            self.session.flush()
            return rule_model.to_domain()

        except IntegrityError as e:
            logger.error(f"Integrity error upserting rule {rule.rule_id}: {e}", exc_info=True)
            raise DataIntegrityError(
                f"Failed to upsert rule '{rule.keyword}' for resource {rule.resource_id}: {e}"
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Error upserting rule {rule.rule_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to upsert rule: {e}") from e

    def record_outcome(
        self,
        rule_id: str,
        outcome: RuleOutcome,
        latency_ms: float = 0,
        timestamp: Optional[datetime] = None,
    ) -> KeywordRule:
        """Apply one terminal reply outcome to a rule's statistics.

        Raises:
            RecordNotFoundError: If the rule does not exist
            PersistenceError: If database error occurs
        """
        try:
            rule_model = self.session.get(KeywordRuleModel, rule_id)
            if rule_model is None:
                raise RecordNotFoundError(f"Rule not found: {rule_id}")

            statistics = rule_model.statistics_to_domain()
            statistics.record_outcome(outcome, latency_ms, now=timestamp or utc_now())
            rule_model.apply_statistics(statistics)
            self.session.flush()
            return rule_model.to_domain()

        except SQLAlchemyError as e:
            logger.error(f"Error recording outcome for rule {rule_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to record rule outcome: {e}") from e

    def matching_stats(self, resource_id: str) -> Dict[str, Any]:
        """Aggregate reply statistics of every rule on a post.

        Returns:
            Dict with rule counts, reply totals, success rate, mean response
            time of rules that have one, and the five most matched keywords
        """
        rules = self.get_for_resource(resource_id)

        successful = sum(rule.statistics.successful_replies for rule in rules)
        failed = sum(rule.statistics.failed_replies for rule in rules)
        fallback = sum(rule.statistics.fallback_replies for rule in rules)
        total_replies = successful + failed + fallback
        timed = [
            rule.statistics.average_response_time_ms
            for rule in rules
            if rule.statistics.average_response_time_ms > 0
        ]
        top = sorted(
            (rule for rule in rules if rule.statistics.total_matches > 0),
            key=lambda rule: rule.statistics.total_matches,
            reverse=True,
        )[:5]

        return {
            "total_rules": len(rules),
            "active_rules": sum(1 for rule in rules if rule.settings.is_active),
            "total_matches": sum(rule.statistics.total_matches for rule in rules),
            "successful_replies": successful,
            "failed_replies": failed,
            "fallback_replies": fallback,
            "success_rate": round(successful / total_replies * 100) if total_replies else 0,
            "average_response_time_ms": round(sum(timed) / len(timed)) if timed else 0,
            "top_keywords": [
                {
                    "keyword": rule.keyword,
                    "matches": rule.statistics.total_matches,
                    "success_rate": rule.statistics.success_rate,
                }
                for rule in top
            ],
        }


class ActivityRepository:
    """Repository for processed-event activity records."""

    def __init__(self, session: Session):
        self.session = session

    def record(self, activity: ActivityRecord) -> int:
        """Insert one activity record.

        Returns:
            The generated row id

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            activity_model = ActivityModel.from_domain(activity)
            self.session.add(activity_model)
            self.session.flush()
            return activity_model.id
        except SQLAlchemyError as e:
            logger.error(f"Error recording activity for event {activity.event_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to record activity: {e}") from e

    def list_recent(self, resource_id: Optional[str] = None, limit: int = 50) -> List[ActivityRecord]:
        """Most recent activities first, optionally for one post only."""
        try:
            stmt = select(ActivityModel)
            if resource_id is not None:
                stmt = stmt.where(ActivityModel.resource_id == resource_id)
            stmt = stmt.order_by(ActivityModel.created_at.desc(), ActivityModel.id.desc()).limit(limit)
            return [model.to_domain() for model in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing activities: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list activities: {e}") from e

    def count_by_status(self, resource_id: Optional[str] = None) -> Dict[str, int]:
        try:
            stmt = select(ActivityModel.status, func.count()).group_by(ActivityModel.status)
            if resource_id is not None:
                stmt = stmt.where(ActivityModel.resource_id == resource_id)
            return {status: count for status, count in self.session.execute(stmt).all()}
        except SQLAlchemyError as e:
            logger.error(f"Error counting activities: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count activities: {e}") from e

    def cleanup_older_than(self, cutoff: datetime) -> int:
        """Delete activities created before cutoff. Returns the count deleted."""
        try:
            stmt = delete(ActivityModel).where(ActivityModel.created_at < format_db_timestamp(cutoff))
            result = self.session.execute(stmt)
            self.session.flush()
            logger.info(f"Cleaned up {result.rowcount} old activity records")
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error cleaning up old activities: {e}", exc_info=True)
            raise PersistenceError(f"Failed to clean up activities: {e}") from e
