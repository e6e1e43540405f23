"""Tests for logging configuration and formatters."""

import io
import json
import logging
from datetime import datetime, timezone

import pytest

from autoreply.logging import ComponentLoggerAdapter, get_logger
from autoreply.logging.config import (
    ContextualFilter,
    JSONFormatter,
    KeyValueFormatter,
    configure_logging,
)
from autoreply.logging.context import clear_log_context, log_context


@pytest.fixture(autouse=True)
def clean_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def logger():
    test_logger = logging.getLogger("test_logger")
    test_logger.setLevel(logging.DEBUG)
    test_logger.handlers.clear()
    yield test_logger
    test_logger.handlers.clear()


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.captureWarnings(False)


def make_record(logger, message="Test message", extra=None):
    return logger.makeRecord("test", logging.INFO, "test.py", 1, message, (), None, extra=extra)


def test_json_formatter_basic(logger):
    log_obj = json.loads(JSONFormatter().format(make_record(logger)))

    assert log_obj["level"] == "INFO"
    assert log_obj["message"] == "Test message"
    assert log_obj["logger"] == "test"
    assert "timestamp" in log_obj


def test_json_formatter_with_extra_fields(logger):
    record = make_record(
        logger, extra={"event": "queue.item.processed", "retry_count": 2, "cache_hit": True}
    )
    log_obj = json.loads(JSONFormatter().format(record))

    assert log_obj["event"] == "queue.item.processed"
    assert log_obj["retry_count"] == 2
    assert log_obj["cache_hit"] is True


def test_json_formatter_serializes_datetimes_and_objects(logger):
    record = make_record(
        logger,
        extra={"at": datetime(2025, 1, 1, tzinfo=timezone.utc), "obj": object()},
    )
    log_obj = json.loads(JSONFormatter().format(record))

    assert log_obj["at"] == "2025-01-01T00:00:00+00:00"
    assert isinstance(log_obj["obj"], str)


def test_json_formatter_timestamp_format(logger):
    timestamp = json.loads(JSONFormatter().format(make_record(logger)))["timestamp"]

    assert timestamp.endswith("Z")
    assert "T" in timestamp
    assert len(timestamp) == 24


def test_json_formatter_no_duplicate_standard_fields(logger):
    log_obj = json.loads(JSONFormatter().format(make_record(logger, extra={"event": "x"})))

    assert "name" not in log_obj
    assert "msg" not in log_obj
    assert log_obj["event"] == "x"


def test_contextual_filter_adds_static_fields(logger):
    record = make_record(logger)
    ContextualFilter(service="autoreply", environment="test").filter(record)

    assert record.service == "autoreply"
    assert record.environment == "test"


def test_contextual_filter_adds_context_fields(logger):
    with log_context(item_id="evt_1", attempt=2):
        record = make_record(logger)
        ContextualFilter().filter(record)

    assert record.item_id == "evt_1"
    assert record.attempt == 2


def test_contextual_filter_keeps_explicit_extra(logger):
    """An explicit extra on the call wins over the same context field."""
    with log_context(item_id="evt_context"):
        record = make_record(logger, extra={"item_id": "evt_explicit"})
        ContextualFilter().filter(record)

    assert record.item_id == "evt_explicit"


def test_json_formatter_with_context(logger):
    with log_context(item_id="evt_1", resource_id="post-1"):
        record = make_record(logger, "Processing item", extra={"event": "queue.item.processing"})
        ContextualFilter(service="autoreply", environment="test").filter(record)
        log_obj = json.loads(JSONFormatter().format(record))

    assert log_obj["event"] == "queue.item.processing"
    assert log_obj["service"] == "autoreply"
    assert log_obj["item_id"] == "evt_1"
    assert log_obj["resource_id"] == "post-1"


def test_key_value_formatter_with_extras(logger):
    formatter = KeyValueFormatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    record = make_record(
        logger,
        extra={"event": "matching.completed", "match_count": 3, "cache_hit": False, "reason": "no rules", "rule_id": None},
    )

    output = formatter.format(record)

    assert "[INFO]" in output
    assert "Test message" in output
    assert "event=matching.completed" in output
    assert "match_count=3" in output
    assert "cache_hit=false" in output
    assert 'reason="no rules"' in output
    assert "rule_id=null" in output


def test_component_logger_adapter_merges_extras():
    stream = io.StringIO()
    base = logging.getLogger("test_component")
    base.handlers.clear()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JSONFormatter())
    base.addHandler(handler)
    base.setLevel(logging.INFO)
    base.propagate = False

    adapter = get_logger("test_component", component="queue")
    assert isinstance(adapter, ComponentLoggerAdapter)
    adapter.info("hello", extra={"event": "queue.test"})

    log_obj = json.loads(stream.getvalue())
    assert log_obj["component"] == "queue"
    assert log_obj["event"] == "queue.test"
    base.handlers.clear()


def test_get_logger_without_component_returns_logger():
    assert isinstance(get_logger("plain"), logging.Logger)


def test_configure_logging_invalid_level():
    with pytest.raises(ValueError, match="Invalid log level"):
        configure_logging(level="INVALID")


def test_configure_logging_invalid_format():
    with pytest.raises(ValueError, match="Invalid log format"):
        configure_logging(format_type="invalid")


def test_configure_logging_json_format(restore_root_logger):
    stream = io.StringIO()
    configure_logging(level="DEBUG", format_type="json", environment="test", stream=stream)

    root = logging.getLogger()
    assert isinstance(root.handlers[0].formatter, JSONFormatter)
    assert root.level == logging.DEBUG

    first_line = stream.getvalue().splitlines()[0]
    assert json.loads(first_line)["event"] == "logging.configured"


def test_configure_logging_key_value_format(restore_root_logger):
    configure_logging(level="INFO", format_type="key-value", environment="test", stream=io.StringIO())

    root = logging.getLogger()
    assert isinstance(root.handlers[0].formatter, KeyValueFormatter)


def test_configure_logging_quiets_noisy_loggers(restore_root_logger):
    configure_logging(level="DEBUG", stream=io.StringIO())

    assert logging.getLogger("apscheduler").level == logging.WARNING
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
