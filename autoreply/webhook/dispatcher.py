"""Entry point from webhook payloads into the event queue.

The dispatcher extracts events from a payload and enqueues each one with the
priority of its type and the configured retry policy. It also writes every
event's activity record from the queue's terminal notifications: the
processor's outcome on ``processed`` and a FAILED activity on ``failed``.
"""

from typing import Any, List, Optional

from autoreply.config.models import QueueConfig
from autoreply.domain.models import ActivityStatus, PostRecord, RuleOutcome
from autoreply.logging import get_logger
from autoreply.queue import EventQueue, QueueItem, QueueOptions

from .events import InboundEvent, extract_events
from .ports import ActivitySink, RuleStore
from .processor import PROCESSING_ERROR, ProcessingOutcome, WebhookEventProcessor, build_activity

logger = get_logger(__name__, component="webhook")


class WebhookDispatcher:
    """Feeds webhook events to the queue and records their outcomes.

    Args:
        queue: EventQueue the events are processed on
        processor: Processor invoked for every event
        activity_sink: Where activity records are written
        rule_store: Receives the reply outcome of the matched rule, if any
        queue_config: Retry, timeout and priority policy (defaults apply when None)
    """

    def __init__(
        self,
        queue: EventQueue,
        processor: WebhookEventProcessor,
        activity_sink: ActivitySink,
        rule_store: RuleStore,
        queue_config: Optional[QueueConfig] = None,
    ):
        self.queue = queue
        self.processor = processor
        self.activity_sink = activity_sink
        self.rule_store = rule_store
        self.queue_config = queue_config or QueueConfig()
        self._unsubscribers = [
            queue.subscribe("processed", self._on_processed),
            queue.subscribe("failed", self._on_failed),
        ]

    def dispatch(self, payload: Any) -> List[str]:
        """Enqueue every event found in a webhook payload.

        Returns:
            Queue item ids, in payload order
        """
        events = extract_events(payload)
        item_ids = [self.enqueue_event(event) for event in events]

        logger.info(
            f"Webhook payload dispatched: {len(item_ids)} event(s) queued",
            extra={"event": "webhook.dispatched", "queued": len(item_ids)},
        )
        return item_ids

    def enqueue_event(self, event: InboundEvent) -> str:
        """Enqueue one event with its type's priority."""
        priority = (
            self.queue_config.comment_priority
            if event.is_comment
            else self.queue_config.message_priority
        )
        options = QueueOptions.from_config(self.queue_config, priority=priority)
        item_id = self.queue.enqueue(event, self.processor, options)

        logger.debug(
            f"Queued {event.type.value} event",
            extra={
                "event": "webhook.event_queued",
                "item_id": item_id,
                "external_post_id": event.post_id,
                "priority": priority,
                "text_preview": event.preview(50),
            },
        )
        return item_id

    def close(self) -> None:
        """Stop recording outcomes of queued items."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    async def _on_processed(self, item: QueueItem) -> None:
        outcome = item.result
        if not isinstance(item.data, InboundEvent) or not isinstance(outcome, ProcessingOutcome):
            return

        await self.activity_sink.record(outcome.activity)
        if outcome.rule_id and outcome.rule_outcome is not None:
            await self.rule_store.increment_rule_statistics(
                outcome.rule_id, outcome.rule_outcome, outcome.latency_ms
            )

        logger.debug(
            f"Recorded {outcome.activity.status.value} activity",
            extra={
                "event": "webhook.activity_recorded",
                "item_id": item.id,
                "rule_id": outcome.rule_id,
            },
        )

    async def _on_failed(self, item: QueueItem) -> None:
        if not isinstance(item.data, InboundEvent):
            return

        error = item.exception
        rule = getattr(error, "rule", None)
        fields = {
            "error_code": getattr(error, "error_code", None) or PROCESSING_ERROR,
            "error_message": item.error,
        }
        post = None
        if rule is not None:
            fields.update(
                rule_id=rule.rule_id,
                resource_id=rule.resource_id,
                account_id=rule.account_id,
                matched_keyword=rule.keyword,
            )
        else:
            post = await self._find_post(item)

        await self.activity_sink.record(
            build_activity(item.data, ActivityStatus.FAILED, item, post, **fields)
        )
        if rule is not None:
            await self.rule_store.increment_rule_statistics(rule.rule_id, RuleOutcome.FAILED)

        logger.error(
            f"Event failed after {item.retry_count} retries: {item.error}",
            extra={
                "event": "webhook.event_failed",
                "item_id": item.id,
                "rule_id": rule.rule_id if rule else None,
                "error_code": fields["error_code"],
            },
        )

    async def _find_post(self, item: QueueItem) -> Optional[PostRecord]:
        try:
            return await self.processor.post_directory.find_post(item.data.post_id)
        except Exception as e:
            logger.warning(
                f"Post lookup for failed event failed: {e}",
                extra={
                    "event": "webhook.failed_post_lookup_error",
                    "item_id": item.id,
                    "error_type": type(e).__name__,
                },
            )
            return None
