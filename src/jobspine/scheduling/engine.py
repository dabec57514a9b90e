"""Scheduler engine - runs registered jobs on their schedules.

Manifesto:
    The JobScheduler is the central coordinator. It combines the registry
    (what to run), the store (what happened) and the resilience primitives
    (how to run it) into one long-lived asyncio component. One job that
    hangs, fails or hammers a broken dependency must never stop the others
    from firing.

Tags:
    jobspine, scheduling, orchestrator, asyncio, engine

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER ENGINE ARCHITECTURE                                                │
│                                                                               │
│  initialize()                                                                 │
│   ├── ensure a state row per registered job                                  │
│   ├── reconcile rows left RUNNING by a dead process → FAILED                 │
│   └── compute next_run and arm one timer task per job                        │
│                                                                               │
│  timer task (one per job)              run_job_now(name)                      │
│   sleep until next_run                  │                                     │
│   ├── disabled?  skip                   │                                     │
│   ├── in flight? skip                   │                                     │
│   └── ─────────────────┬────────────────┘                                     │
│                        ▼                                                      │
│   ┌────────────────────────────────────────────────────────────────────┐     │
│   │ _start_execution()   in-flight guard, no await between check/add   │     │
│   │   └── _execute()     own task, awaited through asyncio.shield      │     │
│   │         ├── row → RUNNING, last_run                                 │     │
│   │         ├── _invoke()  retry( breaker( with_timeout( handler )))   │     │
│   │         │     └── every exception becomes an ExecutionOutcome      │     │
│   │         ├── row → SUCCESS / FAILED, last_error                      │     │
│   │         └── append one JobLog row (attempts, trigger)              │     │
│   └────────────────────────────────────────────────────────────────────┘     │
│   timer only: next_run recomputed, persisted, timer re-armed                 │
│                                                                               │
│  stop(): cancel timers, wait shutdown_grace_seconds for executions           │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, TypeVar

from jobspine.core.errors import JobAlreadyRunningError, categorize_error, error_message
from jobspine.core.logging import LogContext, get_logger
from jobspine.core.models import Job, JobLog, JobStatus, LogStatus, Trigger
from jobspine.core.settings import SchedulerSettings, get_settings
from jobspine.core.timestamps import generate_ulid, to_iso8601, utc_now
from jobspine.execution.retry import RetryState, retry
from jobspine.execution.timeout import with_timeout
from jobspine.scheduling.registry import JobDefinition, JobRegistry
from jobspine.scheduling.store import JobStore

logger = get_logger(__name__)

T = TypeVar("T")

INTERRUPTED_MESSAGE = "interrupted by restart"

# Pause after an unexpected timer error before the next iteration
TIMER_ERROR_BACKOFF_SECONDS = 1.0


@dataclass
class ExecutionOutcome:
    """Result of running a handler under its resilience policy."""

    succeeded: bool
    attempts: int
    duration_ms: int
    error: BaseException | None = None

    @property
    def error_message(self) -> str | None:
        if self.error is None:
            return None
        return error_message(self.error)


@dataclass
class SchedulerStats:
    """Statistics for the scheduler engine."""

    fires: int = 0
    manual_runs: int = 0
    skipped_disabled: int = 0
    skipped_running: int = 0
    succeeded: int = 0
    failed: int = 0
    store_errors: int = 0
    last_fire: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "fires": self.fires,
            "manual_runs": self.manual_runs,
            "skipped_disabled": self.skipped_disabled,
            "skipped_running": self.skipped_running,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "store_errors": self.store_errors,
            "last_fire": to_iso8601(self.last_fire),
            "last_error": self.last_error,
        }


@dataclass
class SchedulerHealth:
    """Health status for the scheduler engine."""

    healthy: bool
    running: bool
    scheduling_enabled: bool
    jobs_registered: int = 0
    timers_armed: int = 0
    in_flight: list[str] = field(default_factory=list)
    stats: SchedulerStats = field(default_factory=SchedulerStats)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "healthy": self.healthy,
            "running": self.running,
            "scheduling_enabled": self.scheduling_enabled,
            "jobs_registered": self.jobs_registered,
            "timers_armed": self.timers_armed,
            "in_flight": list(self.in_flight),
            "stats": self.stats.to_dict(),
        }


class JobScheduler:
    """Runs the jobs of a :class:`JobRegistry` on their schedules.

    Example:
        >>> store = SQLiteJobStore.open("jobs.db")
        >>> scheduler = JobScheduler(registry, store)
        >>> await scheduler.initialize()
        >>> log = await scheduler.run_job_now("backup")
        >>> log.status
        <LogStatus.SUCCESS: 'SUCCESS'>
        >>> await scheduler.stop()
    """

    def __init__(
        self,
        registry: JobRegistry,
        store: JobStore,
        *,
        enabled: bool = True,
        shutdown_grace_seconds: float = 30.0,
    ) -> None:
        """Initialize the engine.

        Args:
            registry: Jobs to run
            store: Where job state and execution logs are kept
            enabled: When False, ``initialize()`` arms no timers
            shutdown_grace_seconds: How long ``stop()`` waits for executions
        """
        if shutdown_grace_seconds < 0:
            raise ValueError("shutdown_grace_seconds must be non-negative")
        self.registry = registry
        self.store = store
        self.enabled = enabled
        self.shutdown_grace_seconds = shutdown_grace_seconds

        self._timers: dict[str, asyncio.Task[None]] = {}
        self._deadlines: dict[str, datetime] = {}
        self._in_flight: dict[str, asyncio.Task[JobLog]] = {}
        self._stats = SchedulerStats()
        self._running = False

    @classmethod
    def from_settings(
        cls,
        registry: JobRegistry,
        store: JobStore,
        settings: SchedulerSettings | None = None,
    ) -> JobScheduler:
        settings = settings or get_settings()
        return cls(
            registry,
            store,
            enabled=settings.enable_jobs,
            shutdown_grace_seconds=settings.shutdown_grace_seconds,
        )

    # === Lifecycle ===

    async def initialize(self) -> None:
        """Create state rows and arm one timer per registered job.

        Idempotent: a second call while running does nothing.
        """
        if not self.enabled:
            logger.info("job scheduling is disabled", jobs=len(self.registry))
            return
        if self._running:
            logger.warning("scheduler_already_running")
            return

        # Every schedule must resolve before any timer is armed
        now = utc_now()
        planned = {definition.name: definition.schedule.next_after(now) for definition in self.registry}

        for definition in self.registry:
            name = definition.name
            job = self._store_call("initialize", self.store.ensure_job, name)
            if job is not None and job.status == JobStatus.RUNNING and name not in self._in_flight:
                logger.warning("job_reconciled", job_name=name, last_run=to_iso8601(job.last_run))
                job = self._store_call(
                    "reconcile",
                    self.store.save_job,
                    job.evolve(status=JobStatus.FAILED, last_error=INTERRUPTED_MESSAGE),
                )

            next_run = planned[name]
            self._deadlines[name] = next_run
            self._persist_next_run(name, next_run)
            self._timers[name] = asyncio.create_task(
                self._timer_loop(definition), name=f"jobspine-timer:{name}"
            )

        self._running = True
        logger.info(
            "scheduler_started",
            jobs=self.registry.names(),
            shutdown_grace_seconds=self.shutdown_grace_seconds,
        )

    async def stop(self) -> None:
        """Stop firing jobs and wait briefly for running executions.

        Executions still running after ``shutdown_grace_seconds`` are
        abandoned: they are not cancelled and may still finish. Safe to
        call at any time, any number of times.
        """
        timers = list(self._timers.values())
        self._timers.clear()
        for task in timers:
            task.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)

        in_flight = dict(self._in_flight)
        if in_flight:
            logger.info("scheduler_draining", jobs=sorted(in_flight))
            _, pending = await asyncio.wait(in_flight.values(), timeout=self.shutdown_grace_seconds)
            abandoned = sorted(name for name, task in in_flight.items() if task in pending)
            if abandoned:
                logger.warning(
                    "jobs_abandoned_on_shutdown",
                    jobs=abandoned,
                    grace_seconds=self.shutdown_grace_seconds,
                )

        was_running = self._running
        self._running = False
        self._deadlines.clear()
        if was_running:
            logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        """True between a successful ``initialize()`` and ``stop()``."""
        return self._running

    def get_is_running(self) -> bool:
        return self._running

    # === Control operations ===

    async def run_job_now(self, name: str) -> JobLog:
        """Run a job immediately and return its log row.

        Handler failures are recorded in the returned row, not raised. The
        job's timer and stored ``next_run`` are left alone.

        Raises:
            JobNotFoundError: If ``name`` is not registered
            JobAlreadyRunningError: If an execution of ``name`` is in flight
        """
        definition = self.registry.get(name)
        task = self._start_execution(definition, Trigger.MANUAL)
        self._stats.manual_runs += 1
        return await asyncio.shield(task)

    async def enable_job(self, name: str) -> Job:
        """Let future fires of ``name`` execute."""
        return self._set_enabled(name, True)

    async def disable_job(self, name: str) -> Job:
        """Skip future fires of ``name``; its timer keeps ticking."""
        return self._set_enabled(name, False)

    async def get_job_statuses(self) -> list[Job]:
        """One row per registered job, in registry order.

        ``next_run`` is resolved on read and is always in the future.
        """
        now = utc_now()
        stored = {job.name: job for job in self.store.list_jobs()}
        statuses = []
        for definition in self.registry:
            job = stored.get(definition.name) or Job(name=definition.name)
            statuses.append(replace(job, next_run=self._resolve_next_run(definition, job, now)))
        return statuses

    async def get_job_logs(self, name: str, limit: int = 10) -> list[JobLog]:
        """Most recent executions of ``name``, newest first.

        Raises:
            ValueError: If ``limit < 1``
            JobNotFoundError: If ``name`` is not registered
        """
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        self.registry.get(name)
        return self.store.list_logs(name, limit)

    # === Health & Stats ===

    def health(self) -> SchedulerHealth:
        """Get engine health status.

        Healthy when scheduling is switched off on purpose, or when the
        engine is running with a live timer for every registered job.
        """
        live_timers = sum(1 for task in self._timers.values() if not task.done())
        healthy = not self.enabled or (self._running and live_timers == len(self.registry))
        return SchedulerHealth(
            healthy=healthy,
            running=self._running,
            scheduling_enabled=self.enabled,
            jobs_registered=len(self.registry),
            timers_armed=live_timers,
            in_flight=sorted(self._in_flight),
            stats=self._stats,
        )

    def get_stats(self) -> SchedulerStats:
        return self._stats

    def reset_stats(self) -> None:
        self._stats = SchedulerStats()

    # === Timers ===

    async def _timer_loop(self, definition: JobDefinition) -> None:
        """Sleep until the job's deadline, fire, repeat until cancelled."""
        name = definition.name
        while True:
            try:
                deadline = self._deadlines.get(name)
                if deadline is None:
                    deadline = definition.schedule.next_after(utc_now())
                    self._deadlines[name] = deadline
                delay = (deadline - utc_now()).total_seconds()
                # Yield even when late so one job cannot starve the loop
                await asyncio.sleep(max(delay, 0))
                await self._fire(definition, deadline)
            except asyncio.CancelledError:
                raise
            except Exception:
                self._stats.last_error = f"timer error in {name}"
                logger.exception("job_timer_error", job_name=name)
                await asyncio.sleep(TIMER_ERROR_BACKOFF_SECONDS)

    async def _fire(self, definition: JobDefinition, deadline: datetime) -> None:
        name = definition.name
        self._stats.fires += 1
        self._stats.last_fire = utc_now()

        job = self._store_call("load", self.store.ensure_job, name)
        if job is None:
            logger.warning("job_skipped_store_unavailable", job_name=name)
        elif not job.is_enabled:
            self._stats.skipped_disabled += 1
            logger.info("job_skipped_disabled", job_name=name)
        else:
            try:
                task = self._start_execution(definition, Trigger.SCHEDULE)
            except JobAlreadyRunningError:
                self._stats.skipped_running += 1
                logger.warning("job_skipped_running", job_name=name)
            else:
                try:
                    await asyncio.shield(task)
                except asyncio.CancelledError:
                    if _being_cancelled():
                        raise
                    logger.error("job_execution_cancelled", job_name=name)

        self._arm_next(definition, deadline)

    def _arm_next(self, definition: JobDefinition, previous: datetime) -> None:
        """Compute, record and persist the next deadline after a fire."""
        now = utc_now()
        next_run = definition.schedule.next_after(previous)
        if next_run <= now:
            next_run = definition.schedule.next_after(now)
        self._deadlines[definition.name] = next_run
        self._persist_next_run(definition.name, next_run)

    def _resolve_next_run(self, definition: JobDefinition, job: Job, now: datetime) -> datetime:
        armed = self._deadlines.get(definition.name)
        if armed is not None and armed > now:
            return armed
        if job.next_run is not None and job.next_run > now:
            return job.next_run
        return definition.schedule.next_after(now)

    # === Execution path ===

    def _start_execution(self, definition: JobDefinition, trigger: Trigger) -> asyncio.Task[JobLog]:
        """Claim the job's slot and start its execution task.

        Raises:
            JobAlreadyRunningError: If the slot is taken
        """
        name = definition.name
        if name in self._in_flight:
            raise JobAlreadyRunningError(name)
        task = asyncio.create_task(
            self._execute(definition, trigger), name=f"jobspine-run:{name}"
        )
        self._in_flight[name] = task
        return task

    async def _execute(self, definition: JobDefinition, trigger: Trigger) -> JobLog:
        name = definition.name
        try:
            async with LogContext(job_name=name, trigger=trigger.value):
                started_at = utc_now()
                self._update_job(name, status=JobStatus.RUNNING, last_run=started_at)
                logger.info("job_started")

                outcome = await self._invoke(definition)

                log = JobLog(
                    id=generate_ulid(),
                    job_name=name,
                    started_at=started_at,
                    finished_at=utc_now(),
                    status=LogStatus.SUCCESS if outcome.succeeded else LogStatus.FAILED,
                    error_message=outcome.error_message,
                    duration_ms=outcome.duration_ms,
                    attempts=outcome.attempts,
                    trigger=trigger,
                )
                self._record(log, outcome)
                return log
        finally:
            self._in_flight.pop(name, None)

    async def _invoke(self, definition: JobDefinition) -> ExecutionOutcome:
        """Run the handler under its policy; never raises ``Exception``."""
        state = RetryState()
        start = time.monotonic()
        try:
            # The per-attempt deadline is applied inside the breaker
            await retry(
                lambda: self._attempt(definition),
                definition.retry,
                state=state,
                label=definition.name,
                timeout_ms=None,
            )
        except asyncio.CancelledError as e:
            # A handler that raises CancelledError on its own is a failure;
            # only cancellation of this task propagates
            if _being_cancelled():
                raise
            return ExecutionOutcome(
                succeeded=False,
                attempts=state.attempts,
                duration_ms=_elapsed_ms(start),
                error=e,
            )
        except Exception as e:
            return ExecutionOutcome(
                succeeded=False,
                attempts=state.attempts,
                duration_ms=_elapsed_ms(start),
                error=e,
            )
        return ExecutionOutcome(
            succeeded=True,
            attempts=state.attempts,
            duration_ms=_elapsed_ms(start),
        )

    async def _attempt(self, definition: JobDefinition) -> Any:
        async def guarded() -> Any:
            timeout_ms = definition.attempt_timeout_ms
            if timeout_ms is None:
                return await definition.handler()
            return await with_timeout(definition.handler(), timeout_ms, definition.name)

        if definition.breaker is None:
            return await guarded()
        return await definition.breaker.call(guarded)

    def _record(self, log: JobLog, outcome: ExecutionOutcome) -> None:
        if outcome.succeeded:
            self._stats.succeeded += 1
            self._update_job(log.job_name, status=JobStatus.SUCCESS, last_error=None)
            logger.info(
                "job_succeeded",
                attempts=outcome.attempts,
                duration_ms=outcome.duration_ms,
            )
        else:
            self._stats.failed += 1
            self._stats.last_error = f"{log.job_name}: {outcome.error_message}"
            self._update_job(log.job_name, status=JobStatus.FAILED, last_error=outcome.error_message)
            logger.error(
                "job_failed",
                attempts=outcome.attempts,
                duration_ms=outcome.duration_ms,
                error=outcome.error_message,
                error_type=type(outcome.error).__name__,
                error_category=categorize_error(outcome.error).value,
            )
        self._store_call("append_log", self.store.append_log, log)

    # === Store access ===

    def _set_enabled(self, name: str, enabled: bool) -> Job:
        definition = self.registry.get(name)
        job = self.store.get_job(name) or self.store.ensure_job(name)
        job = self.store.save_job(job.evolve(is_enabled=enabled))
        logger.info("job_enabled" if enabled else "job_disabled", job_name=name)
        return replace(job, next_run=self._resolve_next_run(definition, job, utc_now()))

    def _update_job(self, name: str, **changes: Any) -> None:
        """Read-modify-write a state row; no await in between."""
        job = self._store_call("load", self.store.ensure_job, name)
        if job is not None:
            self._store_call("save", self.store.save_job, job.evolve(**changes))

    def _persist_next_run(self, name: str, next_run: datetime) -> None:
        self._update_job(name, next_run=next_run)

    def _store_call(self, action: str, func: Callable[..., T], *args: Any) -> T | None:
        """Call the store, logging and counting failures instead of raising."""
        try:
            return func(*args)
        except Exception as e:
            self._stats.store_errors += 1
            self._stats.last_error = f"store {action}: {e}"
            logger.error("job_store_error", action=action, error=str(e), exc_info=True)
            return None


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _being_cancelled() -> bool:
    """True when the running task itself has a pending cancellation request."""
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


__all__ = [
    "ExecutionOutcome",
    "INTERRUPTED_MESSAGE",
    "JobScheduler",
    "SchedulerHealth",
    "SchedulerStats",
]
