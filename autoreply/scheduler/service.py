"""Scheduler service for periodic queue maintenance."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from autoreply.logging import get_logger
from autoreply.matching import MatchingEngine
from autoreply.queue import EventQueue

logger = get_logger(__name__, component="scheduler")

JOB_ID = "queue-maintenance"


class MaintenanceScheduler:
    """
    Wraps APScheduler to sweep the event queue at a fixed interval.

    Each run drops terminal items from the queue's history and logs queue
    statistics and matching engine metrics. Uses AsyncIOScheduler, so
    start() must be called from within the running event loop that owns
    the queue.
    """

    def __init__(
        self,
        queue: EventQueue,
        engine: Optional[MatchingEngine] = None,
        interval_seconds: float = 60,
    ):
        """
        Initialize the maintenance scheduler.

        Args:
            queue: EventQueue to sweep
            engine: Optional MatchingEngine whose metrics are logged
            interval_seconds: Interval between runs in seconds
        """
        self.queue = queue
        self.engine = engine
        self.interval_seconds = interval_seconds

        self.scheduler = AsyncIOScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": max(1, int(interval_seconds)),
            },
            timezone=timezone.utc,
        )

    def start(self) -> None:
        """Register the maintenance job and start the scheduler.

        The first run happens one interval after startup.
        """
        trigger = IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc)
        self.scheduler.add_job(
            func=self.run_now,
            trigger=trigger,
            id=JOB_ID,
            name="Event queue maintenance",
            replace_existing=True,
        )
        self.scheduler.start()

        next_run = self.get_next_run_time()
        logger.info(
            f"Maintenance scheduler started with interval: {self.interval_seconds} seconds",
            extra={
                "event": "scheduler.started",
                "interval_seconds": self.interval_seconds,
                "next_run_time": next_run.isoformat() if next_run else None,
            },
        )

    async def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler.

        AsyncIOScheduler may hand the stop to the event loop instead of
        stopping inline, so one loop turn is awaited before returning.

        Args:
            wait: If True, wait for a running maintenance job to complete
        """
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            await asyncio.sleep(0)
        logger.info("Maintenance scheduler stopped", extra={"event": "scheduler.stopped"})

    async def run_now(self) -> Dict[str, Any]:
        """
        Run one maintenance pass immediately.

        Returns:
            Summary with the number of history items cleared, queue
            statistics and (when an engine is attached) engine metrics
        """
        cleared = self.queue.clear_completed()
        summary: Dict[str, Any] = {
            "cleared": cleared,
            "queue": self.queue.get_statistics(),
            "status": self.queue.get_status(),
        }
        if self.engine is not None:
            summary["matching"] = self.engine.get_metrics()

        logger.info(
            f"Queue maintenance completed: {cleared} completed item(s) cleared",
            extra={
                "event": "scheduler.maintenance",
                "cleared": cleared,
                "queue_size": summary["status"]["size"],
                "total_processed": summary["queue"].get("total_processed"),
                "total_failed": summary["queue"].get("total_failed"),
            },
        )
        return summary

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        """
        Get the next scheduled run time.

        Returns:
            Next run time as a datetime, or None if not scheduled
        """
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None
