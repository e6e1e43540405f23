"""Time-to-live cache of active keyword rules per resource.

Entries are filled from the rule store on miss or expiry. Concurrent misses
for the same resource share one in-flight fetch; misses for different
resources never wait on each other.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

from autoreply.domain.models import KeywordRule
from autoreply.logging import get_logger
from autoreply.persistence.exceptions import InvalidResourceIdError

logger = get_logger(__name__, component="rule_cache")

DEFAULT_TTL_SECONDS = 300.0


@dataclass
class CacheEntry:
    """Ordered rule list for one resource plus its fetch time."""

    rules: List[KeywordRule]
    fetched_at: float

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return now - self.fetched_at < ttl_seconds


def order_rules(rules: List[KeywordRule]) -> List[KeywordRule]:
    """Sort rules by priority (highest first), then by creation time."""
    return sorted(rules, key=lambda rule: (-rule.priority, rule.created_at))


class RuleCache:
    """Caches each resource's active rules for ttl_seconds.

    Args:
        rule_store: Object exposing ``async fetch_active_rules(resource_id)``
        ttl_seconds: Validity window of an entry
        clock: Monotonic time source in seconds (overridable in tests)
    """

    def __init__(
        self,
        rule_store,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.rule_store = rule_store
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._in_flight: Dict[str, asyncio.Future] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, resource_id: str) -> bool:
        entry = self._entries.get(resource_id)
        return entry is not None and entry.is_fresh(self._clock(), self.ttl_seconds)

    async def rules_for(self, resource_id: str) -> List[KeywordRule]:
        """Return the ordered active rules of a resource."""
        rules, _ = await self.rules_for_with_status(resource_id)
        return rules

    async def rules_for_with_status(self, resource_id: str) -> Tuple[List[KeywordRule], bool]:
        """Return the ordered active rules of a resource and whether the cache served them.

        Raises:
            Any rule store error other than InvalidResourceIdError
        """
        entry = self._entries.get(resource_id)
        if entry is not None and entry.is_fresh(self._clock(), self.ttl_seconds):
            self.hits += 1
            logger.debug(
                "Rule cache hit",
                extra={
                    "event": "rule_cache.hit",
                    "resource_id": resource_id,
                    "rule_count": len(entry.rules),
                },
            )
            return list(entry.rules), True

        self.misses += 1
        rules = await self._load(resource_id)
        return list(rules), False

    async def _load(self, resource_id: str) -> List[KeywordRule]:
        task = self._in_flight.get(resource_id)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_store(resource_id))
            self._in_flight[resource_id] = task
            task.add_done_callback(lambda done: self._release(resource_id, done))
        # A cancelled caller must not cancel the fetch other callers share
        return await asyncio.shield(task)

    def _release(self, resource_id: str, task: asyncio.Future) -> None:
        if self._in_flight.get(resource_id) is task:
            del self._in_flight[resource_id]
        if not task.cancelled():
            # Mark the error retrieved when every caller has gone away
            task.exception()

    async def _fetch_and_store(self, resource_id: str) -> List[KeywordRule]:
        rules = await self._fetch(resource_id)
        self._entries[resource_id] = CacheEntry(rules=rules, fetched_at=self._clock())
        return rules

    async def _fetch(self, resource_id: str) -> List[KeywordRule]:
        started = time.perf_counter()
        try:
            fetched = await self.rule_store.fetch_active_rules(resource_id)
        except InvalidResourceIdError:
            logger.warning(
                "Invalid resource id, treating as no rules",
                extra={"event": "rule_cache.invalid_resource", "resource_id": resource_id},
            )
            return []

        rules = order_rules([rule for rule in fetched if rule.settings.is_active])
        logger.debug(
            "Rule cache miss, rules fetched",
            extra={
                "event": "rule_cache.miss",
                "resource_id": resource_id,
                "rule_count": len(rules),
                "duration_ms": round((time.perf_counter() - started) * 1000, 3),
            },
        )
        return rules

    def invalidate(self, resource_id: str) -> bool:
        """Evict one resource. Returns True if an entry was present."""
        return self._entries.pop(resource_id, None) is not None

    async def refresh(self, resource_id: str) -> bool:
        """Evict and re-fetch one resource.

        Returns:
            True when the re-fetch succeeded, False otherwise (never raises)
        """
        self.invalidate(resource_id)
        try:
            await self._load(resource_id)
        except Exception as e:
            logger.error(
                f"Failed to refresh rules: {e}",
                extra={
                    "event": "rule_cache.refresh_failed",
                    "resource_id": resource_id,
                    "error_type": type(e).__name__,
                },
            )
            return False

        logger.info(
            "Rules refreshed",
            extra={"event": "rule_cache.refreshed", "resource_id": resource_id},
        )
        return True

    def clear_all(self) -> int:
        """Evict every entry. Returns the number of entries removed."""
        removed = len(self._entries)
        self._entries.clear()
        if removed:
            logger.info(
                "Rule cache cleared",
                extra={"event": "rule_cache.cleared", "entries_removed": removed},
            )
        return removed

    def stats(self) -> Dict[str, int]:
        return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}
