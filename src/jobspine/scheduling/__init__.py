"""Recurring job scheduling.

Components:
    - triggers: IntervalSchedule, CronSchedule, parse_schedule
    - registry: JobDefinition, JobRegistry
    - store: JobStore protocol with in-memory and SQLite implementations
    - engine: JobScheduler, the asyncio engine that runs it all

Example:
    >>> from jobspine.scheduling import JobDefinition, JobRegistry, JobScheduler, InMemoryJobStore
    >>>
    >>> registry = JobRegistry([JobDefinition("ping", "every 30s", ping)])
    >>> scheduler = JobScheduler(registry, InMemoryJobStore())
    >>> await scheduler.initialize()
"""

from jobspine.scheduling.engine import (
    ExecutionOutcome,
    JobScheduler,
    SchedulerHealth,
    SchedulerStats,
)
from jobspine.scheduling.registry import JobDefinition, JobHandler, JobRegistry
from jobspine.scheduling.store import InMemoryJobStore, JobStore, SQLiteJobStore, open_store
from jobspine.scheduling.triggers import CronSchedule, IntervalSchedule, Schedule, parse_schedule

__all__ = [
    "CronSchedule",
    "ExecutionOutcome",
    "InMemoryJobStore",
    "IntervalSchedule",
    "JobDefinition",
    "JobHandler",
    "JobRegistry",
    "JobScheduler",
    "JobStore",
    "SQLiteJobStore",
    "Schedule",
    "SchedulerHealth",
    "SchedulerStats",
    "open_store",
    "parse_schedule",
]
