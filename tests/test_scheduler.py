"""Unit tests for the maintenance scheduler.

Covers:
- Job registration with max_instances=1, coalesce and misfire grace
- First run one interval after start
- Start/shutdown lifecycle inside the running event loop
- Maintenance pass clearing queue history and reporting statistics
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from autoreply.matching import MatchingEngine, RuleCache
from autoreply.queue import EventQueue, QueueOptions
from autoreply.scheduler import MaintenanceScheduler
from autoreply.scheduler.service import JOB_ID
from tests.helpers.fakes import FakeRuleStore, build_rule


async def fill_history(queue, count=2):
    for i in range(count):
        queue.enqueue(i, lambda data, item: data)
    await queue.join()


class TestMaintenanceScheduler:
    """Test suite for MaintenanceScheduler."""

    def test_scheduler_initialization(self):
        queue = EventQueue()
        scheduler = MaintenanceScheduler(queue, interval_seconds=60)

        assert scheduler.interval_seconds == 60
        assert scheduler.queue is queue
        assert scheduler.engine is None
        assert not scheduler.is_running()
        assert scheduler.get_next_run_time() is None

    def test_start_registers_job_and_shutdown_stops(self):
        async def scenario():
            scheduler = MaintenanceScheduler(EventQueue(), interval_seconds=300)
            before = datetime.now(timezone.utc)
            scheduler.start()
            running = scheduler.is_running()
            job = scheduler.scheduler.get_job(JOB_ID)
            next_run = scheduler.get_next_run_time()
            await scheduler.shutdown()
            return running, job, next_run, before, scheduler.is_running()

        running, job, next_run, before, still_running = asyncio.run(scenario())

        assert running is True
        assert still_running is False
        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.misfire_grace_time == 300
        assert before + timedelta(seconds=299) <= next_run <= before + timedelta(seconds=301)

    def test_start_twice_replaces_job(self):
        async def scenario():
            scheduler = MaintenanceScheduler(EventQueue(), interval_seconds=60)
            scheduler.start()
            scheduler.scheduler.add_job(
                scheduler.run_now, "interval", seconds=60, id=JOB_ID, replace_existing=True
            )
            jobs = scheduler.scheduler.get_jobs()
            await scheduler.shutdown()
            return jobs

        assert len(asyncio.run(scenario())) == 1

    def test_shutdown_without_start(self):
        scheduler = MaintenanceScheduler(EventQueue())
        asyncio.run(scheduler.shutdown())
        assert not scheduler.is_running()

    def test_run_now_clears_history(self):
        async def scenario():
            queue = EventQueue(default_options=QueueOptions(retry_delay_ms=10))
            await fill_history(queue, 3)
            scheduler = MaintenanceScheduler(queue)
            return await scheduler.run_now(), queue

        summary, queue = asyncio.run(scenario())

        assert summary["cleared"] == 3
        assert summary["queue"]["total_processed"] == 3
        assert summary["status"]["history_size"] == 0
        assert "matching" not in summary
        assert queue.get_items() == []

    def test_run_now_reports_engine_metrics(self):
        engine = MatchingEngine(RuleCache(FakeRuleStore([build_rule("harga")])))

        async def scenario():
            await engine.match_one("P1", "harga")
            return await MaintenanceScheduler(EventQueue(), engine=engine).run_now()

        summary = asyncio.run(scenario())

        assert summary["cleared"] == 0
        assert summary["matching"]["total_calls"] == 1

    def test_job_runs_on_interval(self):
        async def scenario():
            queue = EventQueue()
            await fill_history(queue)
            scheduler = MaintenanceScheduler(queue, interval_seconds=0.05)
            scheduler.start()
            await asyncio.sleep(0.3)
            await scheduler.shutdown()
            return queue.get_status()["history_size"]

        assert asyncio.run(scenario()) == 0

    def test_stopped_is_logged_after_scheduler_stops(self):
        seen = []

        async def scenario():
            scheduler = MaintenanceScheduler(EventQueue(), interval_seconds=60)
            scheduler.start()
            with patch("autoreply.scheduler.service.logger") as mock_logger:
                mock_logger.info.side_effect = lambda *args, **kwargs: seen.append(scheduler.is_running())
                await scheduler.shutdown()

        asyncio.run(scenario())

        assert seen == [False]
