"""Tests for WebhookEventProcessor."""

import asyncio
from types import SimpleNamespace

import pytest

from autoreply.domain.models import ActivityStatus, ReplyMode, ResponseKind, RuleOutcome
from autoreply.matching import MatchingEngine, RuleCache
from autoreply.matching.engine import NO_RULES_REASON
from autoreply.queue import QueueItem, QueueOptions, QueueStatus
from autoreply.webhook import (
    IGNORED_REASON,
    KEYWORD_MATCHING_ERROR,
    InboundEvent,
    ProcessingAction,
    ResponderDeliveryError,
    WebhookEventProcessor,
)
from autoreply.webhook.processor import RESPONDER_ERROR
from tests.helpers.fakes import (
    FakePostDirectory,
    FakeResponder,
    FakeRuleStore,
    build_post,
    build_rule,
)


def make_processor(rules=(), posts=None, responder=None, **store_kwargs):
    store = FakeRuleStore(rules, **store_kwargs)
    responder = responder or FakeResponder()
    processor = WebhookEventProcessor(
        engine=MatchingEngine(RuleCache(store)),
        responder=responder,
        post_directory=FakePostDirectory([build_post()] if posts is None else posts),
    )
    return SimpleNamespace(processor=processor, store=store, responder=responder)


def comment(text="berapa harga?", post_id="ext-1", **fields):
    values = {
        "type": "comment",
        "post_id": post_id,
        "from_user_id": "u-1",
        "from_username": "buyer",
        "text": text,
        "comment_id": "c-1",
    }
    values.update(fields)
    return InboundEvent(**values)


def message(text="berapa harga?", post_id="ext-1", **fields):
    values = {
        "type": "message",
        "post_id": post_id,
        "from_user_id": "u-2",
        "from_username": "asker",
        "text": text,
        "message_id": "m-1",
    }
    values.update(fields)
    return InboundEvent(**values)


def processing_item(event, attempts=1, retry_count=0):
    return QueueItem(
        id="evt_1",
        data=event,
        processor=print,
        options=QueueOptions(),
        status=QueueStatus.PROCESSING,
        attempts=attempts,
        retry_count=retry_count,
    )


class TestIgnoredAndUnmatched:
    """Outcomes that never reach the responder."""

    def test_unknown_post(self):
        env = make_processor([build_rule("harga")], posts=[])

        outcome = asyncio.run(env.processor(comment()))

        assert outcome.action == ProcessingAction.IGNORED
        assert outcome.reason == IGNORED_REASON
        assert outcome.activity.status == ActivityStatus.IGNORED
        assert outcome.activity.resource_id is None
        assert env.responder.sent == []
        assert env.store.fetch_calls == []

    def test_automation_disabled(self):
        env = make_processor([build_rule("harga")], posts=[build_post(automation_enabled=False)])

        outcome = asyncio.run(env.processor(comment()))

        assert outcome.action == ProcessingAction.IGNORED
        assert outcome.resource_id == "P1"
        assert outcome.activity.reason == IGNORED_REASON

    def test_matching_error(self):
        env = make_processor([build_rule("harga")], error=RuntimeError("db down"))

        outcome = asyncio.run(env.processor(comment()))

        assert outcome.action == ProcessingAction.ERROR
        assert outcome.error == "db down"
        activity = outcome.activity
        assert activity.status == ActivityStatus.ERROR
        assert activity.error_code == KEYWORD_MATCHING_ERROR
        assert activity.error_message == "db down"

    def test_no_match(self):
        env = make_processor([build_rule("harga")])

        outcome = asyncio.run(env.processor(comment("nice photo")))

        assert outcome.action == ProcessingAction.NO_MATCH
        activity = outcome.activity
        assert activity.status == ActivityStatus.NO_MATCH
        assert activity.total_rules == 1
        assert activity.cache_hit is False
        assert activity.original_text == "nice photo"
        assert env.responder.sent == []
        assert outcome.rule_outcome is None
        assert env.store.outcomes == []

    def test_no_rules(self):
        env = make_processor()

        outcome = asyncio.run(env.processor(comment()))

        assert outcome.action == ProcessingAction.NO_MATCH
        assert outcome.reason == NO_RULES_REASON

    def test_reply_mode_without_channel(self):
        env = make_processor([build_rule("harga")], posts=[build_post(reply_mode=ReplyMode.COMMENTS_ONLY)])

        outcome = asyncio.run(env.processor(message()))

        assert outcome.action == ProcessingAction.IGNORED
        assert outcome.reason == "Reply mode COMMENTS_ONLY allows no channel for this message"
        assert env.responder.sent == []

    def test_dm_mode_without_sender(self):
        env = make_processor([build_rule("harga")], posts=[build_post(reply_mode=ReplyMode.DMS_ONLY)])

        outcome = asyncio.run(env.processor(comment(from_user_id=None)))

        assert outcome.action == ProcessingAction.IGNORED


class TestReplies:
    """DM, fallback comment and comment-only replies."""

    def test_dm_reply(self):
        env = make_processor(
            [build_rule("harga", priority=9, product_link="https://shop.example.com/p/1")]
        )

        outcome = asyncio.run(env.processor(comment()))

        assert outcome.action == ProcessingAction.REPLIED
        assert outcome.response_kind == ResponseKind.DM
        assert outcome.rule_id == "rule-P1-harga"
        assert env.responder.sent == [
            (
                ResponseKind.DM,
                "u-1",
                "Hi buyer, here is the info about harga\n\nhttps://shop.example.com/p/1",
            )
        ]

        activity = outcome.activity
        assert activity.status == ActivityStatus.SUCCESS
        assert activity.response_kind == ResponseKind.DM
        assert activity.response_id == "resp-1"
        assert activity.response_latency_ms == 120
        assert activity.matched_keyword == "harga"
        assert activity.match_kind == "KEYWORD"
        assert activity.confidence == 1.0
        assert activity.tag == "high_priority_harga"
        assert activity.account_id == "acct-1"
        assert (outcome.rule_outcome, outcome.latency_ms) == (RuleOutcome.SUCCESS, 120)
        assert env.store.outcomes == []

    def test_best_match_is_used(self):
        env = make_processor([build_rule("stok", priority=8), build_rule("harga", priority=9)])

        outcome = asyncio.run(env.processor(comment("harga dan stok?")))

        assert outcome.matched_keyword == "harga"

    def test_dm_reply_to_message(self):
        env = make_processor([build_rule("harga")])

        outcome = asyncio.run(env.processor(message()))

        assert outcome.action == ProcessingAction.REPLIED
        assert env.responder.sent[0][:2] == (ResponseKind.DM, "u-2")
        assert outcome.activity.message_id == "m-1"

    def test_fallback_comment_after_dm_failure(self):
        env = make_processor([build_rule("harga")], responder=FakeResponder(dm=[False]))

        outcome = asyncio.run(env.processor(comment()))

        assert outcome.action == ProcessingAction.FALLBACK
        assert outcome.response_kind == ResponseKind.COMMENT
        assert [sent[0] for sent in env.responder.sent] == [ResponseKind.DM, ResponseKind.COMMENT]
        assert env.responder.sent[1][1:] == ("c-1", "Check your DMs!")

        activity = outcome.activity
        assert activity.status == ActivityStatus.FALLBACK
        assert activity.response_message == "Check your DMs!"
        assert (outcome.rule_outcome, outcome.latency_ms) == (RuleOutcome.FALLBACK, 120)

    def test_comments_only_mode(self):
        env = make_processor([build_rule("harga")], posts=[build_post(reply_mode=ReplyMode.COMMENTS_ONLY)])

        outcome = asyncio.run(env.processor(comment()))

        assert outcome.action == ProcessingAction.REPLIED
        assert outcome.response_kind == ResponseKind.COMMENT
        assert outcome.activity.status == ActivityStatus.SUCCESS
        assert outcome.rule_outcome == RuleOutcome.SUCCESS

    def test_outcome_to_dict(self):
        env = make_processor([build_rule("harga")])
        data = asyncio.run(env.processor(comment())).to_dict()

        assert data["action"] == "replied"
        assert data["response_kind"] == "DM"
        assert data["activity_status"] == "SUCCESS"
        assert "activity" not in data


class TestDeliveryFailures:
    """Failed deliveries raise so the queue can retry."""

    def test_dm_and_fallback_fail(self):
        env = make_processor([build_rule("harga")], responder=FakeResponder(default=False))

        with pytest.raises(ResponderDeliveryError) as exc_info:
            asyncio.run(env.processor(comment()))

        assert exc_info.value.rule_id == "rule-P1-harga"
        assert exc_info.value.error_code == "COMMENT_FAILED"
        assert "fallback comment failed" in str(exc_info.value)
        assert env.store.outcomes == []

    def test_dms_only_has_no_fallback(self):
        env = make_processor(
            [build_rule("harga")],
            posts=[build_post(reply_mode=ReplyMode.DMS_ONLY)],
            responder=FakeResponder(dm=[False]),
        )

        with pytest.raises(ResponderDeliveryError) as exc_info:
            asyncio.run(env.processor(comment()))

        assert exc_info.value.error_code == "DM_FAILED"
        assert len(env.responder.sent) == 1

    def test_message_has_no_fallback(self):
        env = make_processor([build_rule("harga")], responder=FakeResponder(dm=[False]))

        with pytest.raises(ResponderDeliveryError):
            asyncio.run(env.processor(message()))

    def test_responder_exception_counts_as_failed_send(self):
        class ExplodingDm(FakeResponder):
            async def send(self, kind, recipient_id, message, mode=None):
                if kind == ResponseKind.DM:
                    raise ConnectionError("socket closed")
                return await super().send(kind, recipient_id, message, mode)

        env = make_processor([build_rule("harga")], responder=ExplodingDm())

        outcome = asyncio.run(env.processor(comment()))

        assert outcome.action == ProcessingAction.FALLBACK

    def test_responder_exception_without_fallback(self):
        class Exploding(FakeResponder):
            async def send(self, kind, recipient_id, message, mode=None):
                raise ConnectionError("socket closed")

        env = make_processor([build_rule("harga")], responder=Exploding())

        with pytest.raises(ResponderDeliveryError) as exc_info:
            asyncio.run(env.processor(message()))

        assert exc_info.value.error_code == RESPONDER_ERROR
        assert str(exc_info.value) == "socket closed"


class TestQueueItemContext:
    """Activities carry the queue item the event was processed under."""

    def test_activity_carries_item_details(self):
        env = make_processor([build_rule("harga")])
        event = comment()

        outcome = asyncio.run(env.processor(event, processing_item(event, attempts=3, retry_count=2)))

        activity = outcome.activity
        assert activity.event_id == "evt_1"
        assert activity.retry_count == 2
