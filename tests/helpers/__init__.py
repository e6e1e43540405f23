"""Test helpers: in-memory fakes for the rule store, responder and activity sink."""

from .fakes import (
    FakeActivitySink,
    FakePostDirectory,
    FakeResponder,
    FakeRuleStore,
    build_post,
    build_rule,
)

__all__ = [
    "FakeActivitySink",
    "FakePostDirectory",
    "FakeResponder",
    "FakeRuleStore",
    "build_post",
    "build_rule",
]
