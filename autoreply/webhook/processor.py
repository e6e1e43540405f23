"""Processing of one inbound event: post lookup, matching, reply delivery.

WebhookEventProcessor is the queue processor for webhook events. It is
called as ``processor(event, item)`` and returns a ProcessingOutcome for
every result it reaches itself (ignored, matching error, no match, reply
sent, fallback sent). The outcome carries the activity record and the rule
statistic to write; nothing is written here.

The dispatcher writes them from the queue's ``processed`` notification, and
the FAILED activity from its ``failed`` notification, so an event is
recorded once whatever the queue decides about a slow attempt.

When no reply channel succeeds the processor raises ResponderDeliveryError
so the queue retries the event.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from autoreply.domain.models import (
    ActivityRecord,
    ActivityStatus,
    PostRecord,
    ReplyMode,
    ResponseKind,
    ResponseResult,
    RuleOutcome,
)
from autoreply.logging import get_logger
from autoreply.logging.context import log_context
from autoreply.matching import MatchingEngine, MatchOptions, MatchOutcome, MatchResult
from autoreply.queue import QueueItem

from .events import InboundEvent
from .exceptions import ResponderDeliveryError
from .ports import PostDirectory, Responder
from .templates import ResponseComposer

logger = get_logger(__name__, component="webhook")

IGNORED_REASON = "Post not found or automation disabled"
KEYWORD_MATCHING_ERROR = "KEYWORD_MATCHING_ERROR"
PROCESSING_ERROR = "PROCESSING_ERROR"
RESPONDER_ERROR = "RESPONDER_ERROR"

DM_MODES = (ReplyMode.DMS_ONLY, ReplyMode.BOTH)
COMMENT_MODES = (ReplyMode.COMMENTS_ONLY, ReplyMode.BOTH)


class ProcessingAction(str, Enum):
    """What the processor did with an event."""

    IGNORED = "ignored"
    ERROR = "error"
    NO_MATCH = "no_match"
    REPLIED = "replied"
    FALLBACK = "fallback"


@dataclass
class ProcessingOutcome:
    """Result returned to the queue for a processed event.

    ``activity`` is the record to write for the event; ``rule_outcome`` and
    ``latency_ms`` are set when a reply was delivered for a matched rule.
    """

    action: ProcessingAction
    event_type: str
    external_post_id: str
    activity: ActivityRecord
    resource_id: Optional[str] = None
    rule_id: Optional[str] = None
    matched_keyword: Optional[str] = None
    response_kind: ResponseKind = ResponseKind.NONE
    response_id: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None
    rule_outcome: Optional[RuleOutcome] = None
    latency_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "event_type": self.event_type,
            "external_post_id": self.external_post_id,
            "resource_id": self.resource_id,
            "rule_id": self.rule_id,
            "matched_keyword": self.matched_keyword,
            "response_kind": self.response_kind.value,
            "response_id": self.response_id,
            "reason": self.reason,
            "error": self.error,
            "activity_status": self.activity.status.value,
        }


def build_activity(
    event: InboundEvent,
    status: ActivityStatus,
    item: Optional[QueueItem] = None,
    post: Optional[PostRecord] = None,
    **fields,
) -> ActivityRecord:
    """ActivityRecord pre-filled from the event, its queue item and its post."""
    values = {
        "event_id": item.id if item else None,
        "retry_count": item.retry_count if item else 0,
        "account_id": post.account_id if post else None,
        "resource_id": post.resource_id if post else None,
        "type": event.activity_type,
        "status": status,
        "external_post_id": event.post_id,
        "comment_id": event.comment_id,
        "message_id": event.message_id,
        "from_user_id": event.from_user_id,
        "from_username": event.from_username,
        "original_text": event.text,
        "event_timestamp": event.timestamp,
    }
    values.update(fields)
    return ActivityRecord(**values)


def match_fields(outcome: MatchOutcome, best: MatchResult) -> Dict[str, Any]:
    return {
        "rule_id": best.rule_id,
        "matched_keyword": best.keyword,
        "matched_term": best.matched_term,
        "match_strategy": best.strategy,
        "match_kind": best.kind.value,
        "confidence": best.confidence,
        "tag": best.tag,
        "total_rules": outcome.total_rules,
        "cache_hit": outcome.cache_hit,
    }


class WebhookEventProcessor:
    """Queue processor that turns an InboundEvent into a reply.

    Args:
        engine: MatchingEngine used to match the event text
        responder: Delivery channel for DMs and comments
        post_directory: Lookup of posts by external post id
        composer: Renders rule templates (defaults to a new ResponseComposer)
        match_options: Options passed to every match (defaults to the engine's)
    """

    def __init__(
        self,
        engine: MatchingEngine,
        responder: Responder,
        post_directory: PostDirectory,
        composer: Optional[ResponseComposer] = None,
        match_options: Optional[MatchOptions] = None,
    ):
        self.engine = engine
        self.responder = responder
        self.post_directory = post_directory
        self.composer = composer or ResponseComposer()
        self.match_options = match_options

    async def __call__(self, event: InboundEvent, item: Optional[QueueItem] = None) -> ProcessingOutcome:
        started = time.perf_counter()

        async with log_context(event_type=event.type.value, external_post_id=event.post_id):
            post = await self.post_directory.find_post(event.post_id)
            if post is None or not post.is_automated:
                return self._ignore(event, item, post, IGNORED_REASON, started)

            outcome = await self.engine.match_one(
                post.resource_id,
                event.text,
                self.match_options,
                message_id=event.comment_id or event.message_id,
            )

            if not outcome.success:
                logger.warning(
                    f"Keyword matching failed: {outcome.error}",
                    extra={"event": "webhook.matching_failed", "resource_id": post.resource_id},
                )
                return ProcessingOutcome(
                    action=ProcessingAction.ERROR,
                    event_type=event.type.value,
                    external_post_id=event.post_id,
                    resource_id=post.resource_id,
                    error=outcome.error,
                    activity=build_activity(
                        event,
                        ActivityStatus.ERROR,
                        item,
                        post,
                        error_code=KEYWORD_MATCHING_ERROR,
                        error_message=outcome.error,
                        processing_time_ms=_elapsed_ms(started),
                    ),
                )

            if not outcome.has_matches:
                reason = outcome.reason or "No keyword matched"
                logger.info(
                    "No keyword matched",
                    extra={"event": "webhook.no_match", "resource_id": post.resource_id},
                )
                return ProcessingOutcome(
                    action=ProcessingAction.NO_MATCH,
                    event_type=event.type.value,
                    external_post_id=event.post_id,
                    resource_id=post.resource_id,
                    reason=reason,
                    activity=build_activity(
                        event,
                        ActivityStatus.NO_MATCH,
                        item,
                        post,
                        total_rules=outcome.total_rules,
                        cache_hit=outcome.cache_hit,
                        reason=reason,
                        processing_time_ms=_elapsed_ms(started),
                    ),
                )

            return await self._reply(event, item, post, outcome, started)

    def _ignore(
        self,
        event: InboundEvent,
        item: Optional[QueueItem],
        post: Optional[PostRecord],
        reason: str,
        started: float,
    ) -> ProcessingOutcome:
        logger.info(
            f"Event ignored: {reason}",
            extra={"event": "webhook.ignored", "resource_id": post.resource_id if post else None},
        )
        return ProcessingOutcome(
            action=ProcessingAction.IGNORED,
            event_type=event.type.value,
            external_post_id=event.post_id,
            resource_id=post.resource_id if post else None,
            reason=reason,
            activity=build_activity(
                event,
                ActivityStatus.IGNORED,
                item,
                post,
                reason=reason,
                processing_time_ms=_elapsed_ms(started),
            ),
        )

    async def _reply(
        self,
        event: InboundEvent,
        item: Optional[QueueItem],
        post: PostRecord,
        outcome: MatchOutcome,
        started: float,
    ) -> ProcessingOutcome:
        best = outcome.best_match
        rule = best.rule
        dm_allowed = post.reply_mode in DM_MODES and bool(event.from_user_id)
        comment_allowed = post.reply_mode in COMMENT_MODES and event.is_comment and bool(event.comment_id)

        if not dm_allowed and not comment_allowed:
            reason = f"Reply mode {post.reply_mode.value} allows no channel for this {event.type.value}"
            return self._ignore(event, item, post, reason, started)

        status = ActivityStatus.SUCCESS
        if dm_allowed:
            message = self.composer.compose_dm(rule, event.from_username)
            result = await self._send(ResponseKind.DM, event.from_user_id, message, post)
            if not result.success and comment_allowed:
                logger.info(
                    f"DM failed, sending fallback comment: {result.error_message}",
                    extra={"event": "webhook.dm_failed", "rule_id": rule.rule_id},
                )
                dm_error = result.error_message
                message = self.composer.compose_fallback(rule, event.from_username)
                result = await self._send(ResponseKind.COMMENT, event.comment_id, message, post)
                status = ActivityStatus.FALLBACK
                if not result.success:
                    raise ResponderDeliveryError(
                        f"DM failed ({dm_error}); fallback comment failed ({result.error_message})",
                        rule=rule,
                        error_code=result.error_code,
                    )
        else:
            message = self.composer.compose_fallback(rule, event.from_username)
            result = await self._send(ResponseKind.COMMENT, event.comment_id, message, post)

        if not result.success:
            raise ResponderDeliveryError(
                result.error_message or "Reply delivery failed",
                rule=rule,
                error_code=result.error_code,
            )

        fallback = status == ActivityStatus.FALLBACK
        logger.info(
            f"Reply sent via {result.kind.value}",
            extra={
                "event": "webhook.replied",
                "rule_id": rule.rule_id,
                "keyword": rule.keyword,
                "status": status.value,
                "latency_ms": result.latency_ms,
            },
        )
        return ProcessingOutcome(
            action=ProcessingAction.FALLBACK if fallback else ProcessingAction.REPLIED,
            event_type=event.type.value,
            external_post_id=event.post_id,
            resource_id=post.resource_id,
            rule_id=rule.rule_id,
            matched_keyword=rule.keyword,
            response_kind=result.kind,
            response_id=result.response_id,
            rule_outcome=RuleOutcome.FALLBACK if fallback else RuleOutcome.SUCCESS,
            latency_ms=result.latency_ms or 0,
            activity=build_activity(
                event,
                status,
                item,
                post,
                response_kind=result.kind,
                response_message=message,
                response_id=result.response_id,
                response_latency_ms=result.latency_ms,
                processing_time_ms=_elapsed_ms(started),
                **match_fields(outcome, best),
            ),
        )

    async def _send(
        self, kind: ResponseKind, recipient_id: str, message: str, post: PostRecord
    ) -> ResponseResult:
        try:
            return await self.responder.send(kind, recipient_id, message, mode=post.reply_mode.value)
        except Exception as e:
            logger.error(
                f"Responder raised while sending {kind.value}: {e}",
                exc_info=True,
                extra={"event": "webhook.responder_error", "error_type": type(e).__name__},
            )
            return ResponseResult(
                success=False,
                kind=kind,
                error_code=RESPONDER_ERROR,
                error_message=str(e) or type(e).__name__,
            )


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
