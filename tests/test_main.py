"""Unit tests for the main entry point.

Tests the main() function including:
- CLI argument parsing
- Configuration loading with priority (CLI > env > config)
- Database initialization and seeding
- Matching and webhook replay modes
- Exit code handling
- Error handling
"""

import json
import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from autoreply.config.exceptions import ConfigurationError
from autoreply.main import build_parser, load_runtime_config, main, read_payload
from autoreply.persistence import ActivityRepository, close_database, get_session, init_database

CONFIG = """
queue:
  max_retries: {max_retries}
  retry_delay: 10ms
  timeout: 5s
responder:
  dm_success_rate: {success_rate}
  comment_success_rate: {success_rate}
  min_latency_ms: 0
  max_latency_ms: 0
  seed: 1
maintenance:
  enabled: {maintenance}
  interval: 1s
logging:
  level: INFO
  format: key-value
"""

SEED = """
posts:
  - resource_id: post-1
    external_post_id: "1789"
    account_id: acct-1
    automation_enabled: true
    rules:
      - rule_id: rule-harga
        keyword: harga
        response:
          dm_message: "Hi {{ username }}, it is 100k"
          fallback_comment: "Check your DMs!"
"""

PAYLOAD = {
    "entry": [
        {
            "changes": [
                {
                    "field": "comments",
                    "value": {
                        "id": "c-1",
                        "text": "berapa harga?",
                        "from": {"id": "u-1", "username": "buyer"},
                        "media": {"id": "1789"},
                    },
                },
                {
                    "field": "comments",
                    "value": {
                        "id": "c-2",
                        "text": "nice photo",
                        "from": {"id": "u-2", "username": "fan"},
                        "media": {"id": "1789"},
                    },
                },
            ]
        }
    ]
}


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.captureWarnings(False)
    close_database()


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Config, seed and payload files plus a file-backed database."""
    db_file = tmp_path / "data" / "test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_file}")
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    def write_config(success_rate=1.0, max_retries=0, maintenance="false"):
        path = tmp_path / "config.yaml"
        path.write_text(
            CONFIG.format(success_rate=success_rate, max_retries=max_retries, maintenance=maintenance)
        )
        return str(path)

    seed = tmp_path / "seed.yaml"
    seed.write_text(SEED)
    payload = tmp_path / "payload.json"
    payload.write_text(json.dumps(PAYLOAD))

    class Workspace:
        config = staticmethod(write_config)
        seed_path = str(seed)
        payload_path = str(payload)
        database_url = f"sqlite:///{db_file}"

    return Workspace


def json_output(out):
    return json.loads(out[out.index("{"):])


class TestParser:
    """Tests for build_parser."""

    def test_defaults(self):
        args = build_parser().parse_args([])

        assert args.config is None
        assert args.log_level is None
        assert args.validate_config is False
        assert args.seed is None
        assert args.replay is None
        assert args.match is None

    def test_replay_accepts_several_files(self):
        args = build_parser().parse_args(["--replay", "a.json", "b.json"])
        assert [str(path) for path in args.replay] == ["a.json", "b.json"]

    def test_match_needs_two_values(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--match", "post-1"])

    def test_invalid_log_level(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--log-level", "LOUD"])


class TestLoadRuntimeConfig:
    """Log level priority: CLI > environment > config file."""

    def test_config_level_used_when_nothing_else_set(self, workspace):
        app_config, env_config = load_runtime_config(Path(workspace.config()), None)
        assert env_config.log_level == "INFO"

    def test_environment_wins_over_config(self, workspace, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        _, env_config = load_runtime_config(Path(workspace.config()), None)
        assert env_config.log_level == "WARNING"

    def test_cli_wins_over_environment(self, workspace, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        _, env_config = load_runtime_config(Path(workspace.config()), "DEBUG")
        assert env_config.log_level == "DEBUG"

    def test_invalid_config_raises(self, tmp_path, workspace):
        path = tmp_path / "bad.yaml"
        path.write_text("queue:\n  max_retries: 99\n")

        with pytest.raises(ConfigurationError):
            load_runtime_config(path, None)


class TestMain:
    """Tests for main()."""

    def test_no_action_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_validate_config(self, workspace, capsys):
        assert main(["--validate-config", "--config", workspace.config()]) == 0
        assert "✓" in capsys.readouterr().out

    def test_validate_invalid_config(self, tmp_path, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text("queue:\n  timeout: forever\n")

        assert main(["--validate-config", "--config", str(path)]) == 1
        assert "✗" in capsys.readouterr().out

    def test_seed_and_match(self, workspace, capsys):
        exit_code = main(
            [
                "--config", workspace.config(),
                "--log-level", "CRITICAL",
                "--seed", workspace.seed_path,
                "--match", "post-1", "berapa harga?",
            ]
        )

        out = capsys.readouterr().out
        assert exit_code == 0
        assert "Seeded 1 post(s) and 1 rule(s)" in out
        outcome = json_output(out)
        assert outcome["success"] is True
        assert outcome["matches"][0]["keyword"] == "harga"

    def test_match_without_text_fails(self, workspace, capsys):
        exit_code = main(["--config", workspace.config(), "--log-level", "CRITICAL", "--match", "post-1", " "])

        assert exit_code == 1
        assert json_output(capsys.readouterr().out)["success"] is False

    def test_replay(self, workspace, capsys):
        exit_code = main(
            [
                "--config", workspace.config(maintenance="true"),
                "--log-level", "CRITICAL",
                "--seed", workspace.seed_path,
                "--replay", workspace.payload_path,
            ]
        )

        summary = json_output(capsys.readouterr().out)
        assert exit_code == 0
        assert summary["events"] == 2
        assert summary["failed_item_ids"] == []
        assert summary["outcomes"] == {"replied": 1, "no_match": 1}
        assert summary["queue"]["total_processed"] == 2

        init_database(workspace.database_url)
        with get_session() as session:
            assert ActivityRepository(session).count_by_status() == {"SUCCESS": 1, "NO_MATCH": 1}

    def test_replay_with_failed_deliveries(self, workspace, capsys):
        exit_code = main(
            [
                "--config", workspace.config(success_rate=0.0, max_retries=1),
                "--log-level", "CRITICAL",
                "--seed", workspace.seed_path,
                "--replay", workspace.payload_path,
            ]
        )

        summary = json_output(capsys.readouterr().out)
        assert exit_code == 1
        assert len(summary["failed_item_ids"]) == 1
        assert summary["queue"]["total_retries"] == 1

        init_database(workspace.database_url)
        with get_session() as session:
            assert ActivityRepository(session).count_by_status() == {"FAILED": 1, "NO_MATCH": 1}

    def test_unreadable_payload(self, workspace, tmp_path, capsys):
        broken = tmp_path / "broken.json"
        broken.write_text("{not json")

        exit_code = main(["--config", workspace.config(), "--log-level", "CRITICAL", "--replay", str(broken)])

        assert exit_code == 1
        assert "Failed to read webhook payload" in capsys.readouterr().err

    def test_missing_config_file(self, workspace, tmp_path, capsys):
        exit_code = main(["--config", str(tmp_path / "missing.yaml"), "--match", "post-1", "harga"])

        assert exit_code == 1
        assert "Configuration Error" in capsys.readouterr().err

    def test_database_failure(self, workspace, monkeypatch, capsys):
        monkeypatch.setenv("DATABASE_URL", "nosuchdialect://localhost/db")

        exit_code = main(["--config", workspace.config(), "--log-level", "CRITICAL", "--match", "post-1", "harga"])

        assert exit_code == 1
        assert "Failed to initialize database" in capsys.readouterr().err

    def test_unexpected_error_is_reported(self, workspace, capsys):
        with patch("autoreply.main.match_text", side_effect=RuntimeError("boom")):
            exit_code = main(["--config", workspace.config(), "--log-level", "CRITICAL", "--match", "post-1", "harga"])

        assert exit_code == 1
        assert "Fatal error: boom" in capsys.readouterr().err


def test_read_payload(tmp_path):
    path = tmp_path / "payload.json"
    path.write_text(json.dumps(PAYLOAD))

    assert read_payload(path) == PAYLOAD

    with pytest.raises(ValueError):
        read_payload(tmp_path / "missing.json")
