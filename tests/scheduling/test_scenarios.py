"""End-to-end scheduler scenarios against a SQLite store."""

from __future__ import annotations

import asyncio

import pytest

from jobspine.core.errors import JobAlreadyRunningError
from jobspine.core.models import JobStatus, LogStatus
from jobspine.core.timestamps import utc_now
from jobspine.execution.retry import RetryConfig
from jobspine.scheduling.engine import INTERRUPTED_MESSAGE, JobScheduler
from jobspine.scheduling.registry import JobDefinition, JobRegistry
from jobspine.scheduling.store import SQLiteJobStore
from jobspine.scheduling.triggers import IntervalSchedule

ONCE = RetryConfig(max_attempts=1, delay_ms=1)


async def wait_until(predicate, timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    end = loop.time() + timeout
    while not predicate():
        if loop.time() > end:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


async def always_fails():
    raise RuntimeError("ping target unreachable")


@pytest.mark.integration
class TestScenarios:
    """Whole-engine behavior with real timers and a real database file."""

    @pytest.mark.asyncio
    async def test_failing_job_logs_every_fire_and_stays_scheduled(self, sqlite_store):
        registry = JobRegistry([JobDefinition("ping", IntervalSchedule.of(0.05), always_fails, retry=ONCE)])
        scheduler = JobScheduler(registry, sqlite_store, shutdown_grace_seconds=1)
        await scheduler.initialize()
        try:
            await wait_until(lambda: sqlite_store.count_logs("ping") >= 3)
        finally:
            await scheduler.stop()

        logs = sqlite_store.list_logs("ping")
        assert all(log.status == LogStatus.FAILED for log in logs)
        assert all(log.error_message == "ping target unreachable" for log in logs)
        row = sqlite_store.get_job("ping")
        assert row.status == JobStatus.FAILED
        assert row.is_enabled is True
        [status] = await scheduler.get_job_statuses()
        assert status.next_run > utc_now()

    @pytest.mark.asyncio
    async def test_disabling_stops_new_logs(self, sqlite_store):
        registry = JobRegistry([JobDefinition("ping", IntervalSchedule.of(0.05), always_fails, retry=ONCE)])
        scheduler = JobScheduler(registry, sqlite_store, shutdown_grace_seconds=1)
        await scheduler.initialize()
        try:
            await wait_until(lambda: sqlite_store.count_logs("ping") >= 1)
            await scheduler.disable_job("ping")
            # Let any execution that was already in flight finish
            await wait_until(lambda: not scheduler.health().in_flight)
            count = sqlite_store.count_logs("ping")

            skipped = scheduler.get_stats().skipped_disabled
            await wait_until(lambda: scheduler.get_stats().skipped_disabled >= skipped + 3)
            assert sqlite_store.count_logs("ping") == count
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_manual_run_conflicts_with_running_execution(self, sqlite_store, blocker):
        registry = JobRegistry([JobDefinition("backup", "0 3 * * *", blocker, retry=ONCE)])
        scheduler = JobScheduler(registry, sqlite_store, shutdown_grace_seconds=1)
        await scheduler.initialize()
        try:
            first = asyncio.create_task(scheduler.run_job_now("backup"))
            await blocker.started.wait()
            with pytest.raises(JobAlreadyRunningError):
                await scheduler.run_job_now("backup")
            blocker.release.set()
            assert (await first).status == LogStatus.SUCCESS
        finally:
            await scheduler.stop()

        assert sqlite_store.count_logs("backup") == 1

    @pytest.mark.asyncio
    async def test_next_run_is_in_the_future_after_startup(self, sqlite_store, recorder):
        registry = JobRegistry([
            JobDefinition("weekly-summary", "0 8 * * 1", recorder),
            JobDefinition("cleanup", "0 2 * * 0", recorder),
        ])
        scheduler = JobScheduler(registry, sqlite_store)
        started = utc_now()
        await scheduler.initialize()
        try:
            for status in await scheduler.get_job_statuses():
                assert status.next_run > started
                assert sqlite_store.get_job(status.name).next_run == status.next_run
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_state_survives_restart(self, sqlite_path, recorder):
        registry = JobRegistry([JobDefinition("backup", "0 3 * * *", recorder, retry=ONCE)])

        store = SQLiteJobStore.open(sqlite_path)
        scheduler = JobScheduler(registry, store)
        await scheduler.initialize()
        await scheduler.disable_job("backup")
        log = await scheduler.run_job_now("backup")
        await scheduler.stop()
        store.close()

        reopened = SQLiteJobStore.open(sqlite_path)
        restarted = JobScheduler(registry, reopened)
        await restarted.initialize()
        try:
            [status] = await restarted.get_job_statuses()
            assert status.is_enabled is False
            assert status.status == JobStatus.SUCCESS
            assert status.last_run == log.started_at
            assert [entry.id for entry in await restarted.get_job_logs("backup")] == [log.id]
        finally:
            await restarted.stop()
            reopened.close()

    @pytest.mark.asyncio
    async def test_interrupted_execution_reconciled_on_restart(self, sqlite_path, blocker):
        registry = JobRegistry([JobDefinition("backup", "0 3 * * *", blocker, retry=ONCE)])

        store = SQLiteJobStore.open(sqlite_path)
        scheduler = JobScheduler(registry, store, shutdown_grace_seconds=0)
        run = asyncio.create_task(scheduler.run_job_now("backup"))
        await blocker.started.wait()
        assert store.get_job("backup").status == JobStatus.RUNNING

        # A second process opening the same file sees the stale row
        other = SQLiteJobStore.open(sqlite_path)
        restarted = JobScheduler(registry, other)
        await restarted.initialize()
        try:
            row = other.get_job("backup")
            assert row.status == JobStatus.FAILED
            assert row.last_error == INTERRUPTED_MESSAGE
        finally:
            await restarted.stop()
            blocker.release.set()
            await run
            other.close()
            store.close()
