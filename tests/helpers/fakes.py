"""In-memory test doubles for the webhook ports.

These mimic the SQL adapters and the simulated responder closely enough
for deterministic unit and integration tests: no database, no randomness,
optional artificial latency.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from autoreply.domain.models import (
    ActivityRecord,
    KeywordRule,
    MatchStrategy,
    PostRecord,
    ReplyMode,
    ResponseKind,
    ResponseResult,
    RuleOutcome,
)
from autoreply.persistence.exceptions import InvalidResourceIdError

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


def build_rule(
    keyword: str,
    resource_id: str = "P1",
    priority: int = 1,
    strategy: MatchStrategy = MatchStrategy.CONTAINS,
    synonyms: Optional[List[str]] = None,
    is_active: bool = True,
    order: int = 0,
    **response,
) -> KeywordRule:
    """Build a KeywordRule; ``order`` offsets created_at in seconds."""
    response_values = {
        "dm_message": f"Hi {{{{ username }}}}, here is the info about {keyword}",
        "fallback_comment": "Check your DMs!",
        "include_product_link": True,
        "product_link": None,
    }
    response_values.update(response)
    return KeywordRule(
        rule_id=f"rule-{resource_id}-{keyword}",
        resource_id=resource_id,
        account_id="acct-1",
        keyword=keyword,
        synonyms=synonyms or [],
        response=response_values,
        settings={"match_strategy": strategy, "priority": priority, "is_active": is_active},
        created_at=BASE_TIME + timedelta(seconds=order),
    )


def build_post(
    resource_id: str = "P1",
    external_post_id: str = "ext-1",
    automation_enabled: bool = True,
    reply_mode: ReplyMode = ReplyMode.BOTH,
) -> PostRecord:
    return PostRecord(
        resource_id=resource_id,
        external_post_id=external_post_id,
        account_id="acct-1",
        automation_enabled=automation_enabled,
        reply_mode=reply_mode,
    )


class FakeRuleStore:
    """RuleStore serving rules from a dict.

    Args:
        rules: Rules to serve, grouped by their resource_id
        delay: Seconds each fetch sleeps before answering
        error: Exception raised by every fetch when set
        invalid_ids: Resource ids answered with InvalidResourceIdError
        stats_delay: Seconds each statistics update sleeps before recording
    """

    def __init__(
        self,
        rules: Iterable[KeywordRule] = (),
        delay: float = 0,
        error: Optional[Exception] = None,
        invalid_ids: Iterable[str] = (),
        stats_delay: float = 0,
    ):
        self.rules: Dict[str, List[KeywordRule]] = {}
        for rule in rules:
            self.rules.setdefault(rule.resource_id, []).append(rule)
        self.delay = delay
        self.error = error
        self.invalid_ids = set(invalid_ids)
        self.stats_delay = stats_delay
        self.fetch_calls: List[str] = []
        self.outcomes: List[tuple] = []

    async def fetch_active_rules(self, resource_id: str) -> List[KeywordRule]:
        self.fetch_calls.append(resource_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if resource_id in self.invalid_ids:
            raise InvalidResourceIdError(resource_id)
        if self.error is not None:
            raise self.error
        return list(self.rules.get(resource_id, []))

    async def increment_rule_statistics(
        self, rule_id: str, outcome: RuleOutcome, latency_ms: float = 0
    ) -> None:
        if self.stats_delay:
            await asyncio.sleep(self.stats_delay)
        self.outcomes.append((rule_id, RuleOutcome(outcome), latency_ms))


class FakeResponder:
    """Responder answering from scripted per-channel outcomes.

    Each call pops the next scripted bool for its channel; once the script
    runs out, ``default`` applies.
    """

    def __init__(
        self,
        dm: Iterable[bool] = (),
        comment: Iterable[bool] = (),
        default: bool = True,
        delay: float = 0,
        latency_ms: int = 120,
    ):
        self.scripts = {ResponseKind.DM: list(dm), ResponseKind.COMMENT: list(comment)}
        self.default = default
        self.delay = delay
        self.latency_ms = latency_ms
        self.sent: List[tuple] = []

    async def send(self, kind, recipient_id, message, mode=None) -> ResponseResult:
        kind = ResponseKind(kind)
        if self.delay:
            await asyncio.sleep(self.delay)
        self.sent.append((kind, recipient_id, message))

        script = self.scripts[kind]
        success = script.pop(0) if script else self.default
        if success:
            return ResponseResult(
                success=True,
                kind=kind,
                response_id=f"resp-{len(self.sent)}",
                latency_ms=self.latency_ms,
            )
        return ResponseResult(
            success=False,
            kind=kind,
            latency_ms=self.latency_ms,
            error_code=f"{kind.value}_FAILED",
            error_message=f"{kind.value} delivery refused",
        )


class FakeActivitySink:
    """ActivitySink collecting records in a list."""

    def __init__(self):
        self.activities: List[ActivityRecord] = []

    async def record(self, activity: ActivityRecord) -> None:
        self.activities.append(activity)

    @property
    def statuses(self) -> List[str]:
        return [activity.status.value for activity in self.activities]


class FakePostDirectory:
    """PostDirectory serving posts keyed by external_post_id."""

    def __init__(self, posts: Iterable[PostRecord] = ()):
        self.posts = {post.external_post_id: post for post in posts}

    async def find_post(self, external_post_id: str) -> Optional[PostRecord]:
        return self.posts.get(external_post_id)
