"""Ports (interfaces) used by the webhook processing pipeline.

Ports define the minimal contracts for the rule store, delivery channel,
activity sink and post lookup so the pipeline can run against the SQL
adapters, the simulated responder or test doubles alike.
"""

from typing import List, Optional, Protocol

from autoreply.domain.models import (
    ActivityRecord,
    KeywordRule,
    PostRecord,
    ResponseKind,
    ResponseResult,
    RuleOutcome,
)


class RuleStore(Protocol):
    """Source of keyword rules and sink for their reply statistics."""

    async def fetch_active_rules(self, resource_id: str) -> List[KeywordRule]:
        """Active rules of a resource. Raises InvalidResourceIdError for malformed ids."""
        ...

    async def increment_rule_statistics(
        self, rule_id: str, outcome: RuleOutcome, latency_ms: float = 0
    ) -> None:
        ...


class Responder(Protocol):
    """Outbound delivery channel for replies."""

    async def send(
        self, kind: ResponseKind, recipient_id: str, message: str, mode: Optional[str] = None
    ) -> ResponseResult:
        ...


class ActivitySink(Protocol):
    """Persistence of one processed event's full outcome."""

    async def record(self, activity: ActivityRecord) -> None:
        ...


class PostDirectory(Protocol):
    """Lookup of posts by the id carried in webhook payloads."""

    async def find_post(self, external_post_id: str) -> Optional[PostRecord]:
        ...
