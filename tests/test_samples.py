"""The shipped example config, seed and payload files stay loadable."""

import json
from pathlib import Path

import pytest

from autoreply.config.loader import validate_config_file
from autoreply.domain.models import EventType
from autoreply.persistence import (
    PostRepository,
    RuleRepository,
    close_database,
    get_session,
    init_database,
    seed_from_file,
)
from autoreply.webhook import extract_events

ROOT = Path(__file__).resolve().parent.parent


def test_example_config_is_valid(capsys):
    assert validate_config_file(ROOT / "config.example.yaml") is True
    assert "✓" in capsys.readouterr().out


def test_sample_payload_events():
    payload = json.loads((ROOT / "docs" / "sample_payload.json").read_text())

    events = extract_events(payload)

    assert len(events) == 5
    assert [event.type for event in events].count(EventType.MESSAGE) == 1
    assert events[0].from_username == "sari.shop"


class TestSampleSeed:
    @pytest.fixture(autouse=True)
    def setup_database(self):
        init_database("sqlite:///:memory:")
        yield
        close_database()

    def test_sample_seed_loads(self):
        assert seed_from_file(ROOT / "docs" / "sample_seed.yaml") == (2, 4)

        with get_session() as session:
            rules = RuleRepository(session).get_active_for_resource("post-1")
            post = PostRepository(session).get_by_external_id("17890000000000002")

        assert [rule.rule_id for rule in rules] == ["rule-harga", "rule-stok", "rule-warna"]
        assert post.automation_enabled is False
