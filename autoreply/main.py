"""Main entry point for the keyword auto-responder."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import asyncio
import json
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from autoreply.config.environment import EnvironmentConfig
from autoreply.config.exceptions import ConfigurationError
from autoreply.config.loader import load_config, validate_config_file
from autoreply.config.models import AppConfig
from autoreply.logging import get_logger
from autoreply.logging.config import configure_logging
from autoreply.matching import MatchingEngine, MatchOptions, RuleCache
from autoreply.persistence import (
    PersistenceError,
    SqlActivitySink,
    SqlPostDirectory,
    SqlRuleStore,
    close_database,
    init_database,
    seed_from_file,
)
from autoreply.queue import EventQueue, QueueOptions
from autoreply.scheduler import MaintenanceScheduler
from autoreply.webhook import (
    ResponseComposer,
    SimulatedResponder,
    WebhookDispatcher,
    WebhookEventProcessor,
)

logger = get_logger(__name__, component="cli")


@dataclass
class Runtime:
    """Wired-up services for one CLI invocation."""

    engine: MatchingEngine
    queue: EventQueue
    dispatcher: WebhookDispatcher
    scheduler: Optional[MaintenanceScheduler]


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Log level priority: CLI > LOG_LEVEL environment variable > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def build_runtime(app_config: AppConfig) -> Runtime:
    """
    Wire the SQL adapters, matching engine, queue and dispatcher together.

    Must be called from within a running event loop when maintenance is
    enabled, since the scheduler attaches to it.
    """
    rule_store = SqlRuleStore()
    activity_sink = SqlActivitySink()

    match_options = MatchOptions.from_config(app_config.matching)
    rule_cache = RuleCache(rule_store, ttl_seconds=app_config.matching.cache_ttl_seconds)
    engine = MatchingEngine(rule_cache, default_options=match_options)

    queue = EventQueue(
        default_options=QueueOptions.from_config(app_config.queue),
        history_limit=app_config.queue.history_limit,
    )
    processor = WebhookEventProcessor(
        engine=engine,
        responder=SimulatedResponder(app_config.responder),
        post_directory=SqlPostDirectory(),
        composer=ResponseComposer(),
        match_options=match_options,
    )
    dispatcher = WebhookDispatcher(
        queue=queue,
        processor=processor,
        activity_sink=activity_sink,
        rule_store=rule_store,
        queue_config=app_config.queue,
    )

    scheduler = None
    if app_config.maintenance.enabled:
        scheduler = MaintenanceScheduler(
            queue, engine, interval_seconds=app_config.maintenance.interval_seconds
        )

    return Runtime(engine=engine, queue=queue, dispatcher=dispatcher, scheduler=scheduler)


def read_payload(path: Path) -> Any:
    """Parse one webhook payload file.

    Raises:
        ValueError: If the file cannot be read or is not valid JSON
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValueError(f"Failed to read webhook payload {path}: {e}") from e


async def replay_payloads(app_config: AppConfig, paths: Sequence[Path]) -> Dict[str, Any]:
    """
    Dispatch webhook payload files through the queue and wait until it drains.

    Returns:
        Summary with queue statistics, matching metrics and failed item ids
    """
    runtime = build_runtime(app_config)
    if runtime.scheduler:
        runtime.scheduler.start()

    failed_ids: List[str] = []
    outcomes: Dict[str, int] = {}

    def count_outcome(item) -> None:
        action = getattr(item.result, "action", None)
        if action is not None:
            outcomes[action.value] = outcomes.get(action.value, 0) + 1

    runtime.queue.subscribe("failed", lambda item: failed_ids.append(item.id))
    runtime.queue.subscribe("processed", count_outcome)

    try:
        item_ids: List[str] = []
        for path in paths:
            item_ids.extend(runtime.dispatcher.dispatch(read_payload(path)))

        await runtime.queue.join()

        return {
            "events": len(item_ids),
            "failed_item_ids": failed_ids,
            "outcomes": outcomes,
            "queue": runtime.queue.get_statistics(),
            "matching": runtime.engine.get_metrics(),
        }
    finally:
        if runtime.scheduler:
            await runtime.scheduler.shutdown(wait=False)
        runtime.dispatcher.close()
        await runtime.queue.stop()


async def match_text(app_config: AppConfig, resource_id: str, text: str) -> Dict[str, Any]:
    """Run one match against a resource's stored rules."""
    rule_cache = RuleCache(SqlRuleStore(), ttl_seconds=app_config.matching.cache_ttl_seconds)
    engine = MatchingEngine(rule_cache, default_options=MatchOptions.from_config(app_config.matching))
    outcome = await engine.match_one(resource_id, text)
    return outcome.to_dict()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Keyword auto-responder - match comments and DMs against per-post keyword rules and reply"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml if present, else built-in defaults)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    parser.add_argument(
        "--validate-config",
        action="store_true",
        help="Validate the configuration file and exit",
    )
    parser.add_argument(
        "--seed",
        type=Path,
        default=None,
        metavar="FILE",
        help="Load posts and keyword rules from a YAML seed file",
    )
    parser.add_argument(
        "--replay",
        type=Path,
        nargs="+",
        default=None,
        metavar="FILE",
        help="Process webhook payload JSON files through the event queue",
    )
    parser.add_argument(
        "--match",
        nargs=2,
        default=None,
        metavar=("RESOURCE_ID", "TEXT"),
        help="Match TEXT against the rules of RESOURCE_ID and print the outcome as JSON",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for the auto-responder.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.validate_config:
        return 0 if validate_config_file(args.config or Path("config.yaml")) else 1

    if not (args.seed or args.replay or args.match):
        parser.print_help()
        return 1

    database_ready = False
    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=env_config.environment,
        )

        logger.info(
            "Auto-responder starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
            },
        )

        init_database(env_config.database_url)
        database_ready = True

        if args.seed:
            posts, rules = seed_from_file(args.seed)
            print(f"Seeded {posts} post(s) and {rules} rule(s) from {args.seed}")

        exit_code = 0

        if args.match:
            resource_id, text = args.match
            outcome = asyncio.run(match_text(app_config, resource_id, text))
            print(json.dumps(outcome, indent=2, default=str))
            if not outcome["success"]:
                exit_code = 1

        if args.replay:
            summary = asyncio.run(replay_payloads(app_config, args.replay))
            logger.info(
                f"Replay completed: {summary['events']} event(s), "
                f"{len(summary['failed_item_ids'])} failed",
                extra={
                    "event": "service.replay.completed",
                    "events": summary["events"],
                    "failed": len(summary["failed_item_ids"]),
                    "outcomes": summary["outcomes"],
                },
            )
            print(json.dumps(summary, indent=2, default=str))
            if summary["failed_item_ids"]:
                exit_code = 1

        logger.info(
            "Auto-responder stopped",
            extra={
                "event": "service.stopping",
                "uptime_seconds": round(time.time() - start_time, 2),
            },
        )
        return exit_code

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except (PersistenceError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        logger.error(
            f"Run failed: {e}",
            extra={"event": "service.failed", "error_type": type(e).__name__},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            exc_info=True,
            extra={"event": "service.failed", "error_type": type(e).__name__},
        )
        return 1
    finally:
        if database_ready:
            close_database()


if __name__ == "__main__":
    sys.exit(main())
