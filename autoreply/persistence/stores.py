"""Async adapters exposing the repositories through the webhook ports.

Each call opens its own session in a worker thread, so the event loop never
blocks on SQLite I/O.
"""

import asyncio
import re
from typing import List, Optional

from autoreply.domain.models import ActivityRecord, KeywordRule, PostRecord, RuleOutcome

from .database import get_session
from .exceptions import InvalidResourceIdError
from .repositories import ActivityRepository, PostRepository, RuleRepository

RESOURCE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def validate_resource_id(resource_id) -> str:
    """Return resource_id unchanged, or raise InvalidResourceIdError if malformed."""
    if not isinstance(resource_id, str) or not RESOURCE_ID_PATTERN.match(resource_id):
        raise InvalidResourceIdError(resource_id)
    return resource_id


class SqlRuleStore:
    """RuleStore backed by the keyword_rules table."""

    async def fetch_active_rules(self, resource_id: str) -> List[KeywordRule]:
        validate_resource_id(resource_id)
        return await asyncio.to_thread(self._fetch_active_rules, resource_id)

    async def increment_rule_statistics(
        self, rule_id: str, outcome: RuleOutcome, latency_ms: float = 0
    ) -> None:
        await asyncio.to_thread(self._record_outcome, rule_id, outcome, latency_ms)

    @staticmethod
    def _fetch_active_rules(resource_id: str) -> List[KeywordRule]:
        with get_session() as session:
            return RuleRepository(session).get_active_for_resource(resource_id)

    @staticmethod
    def _record_outcome(rule_id: str, outcome: RuleOutcome, latency_ms: float) -> None:
        with get_session() as session:
            RuleRepository(session).record_outcome(rule_id, outcome, latency_ms)


class SqlActivitySink:
    """ActivitySink backed by the activities table."""

    async def record(self, activity: ActivityRecord) -> None:
        await asyncio.to_thread(self._record, activity)

    @staticmethod
    def _record(activity: ActivityRecord) -> None:
        with get_session() as session:
            ActivityRepository(session).record(activity)


class SqlPostDirectory:
    """PostDirectory backed by the posts table."""

    async def find_post(self, external_post_id: str) -> Optional[PostRecord]:
        return await asyncio.to_thread(self._find_post, external_post_id)

    @staticmethod
    def _find_post(external_post_id: str) -> Optional[PostRecord]:
        with get_session() as session:
            return PostRepository(session).get_by_external_id(external_post_id)
