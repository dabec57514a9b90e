"""jobspine - recurring job scheduler with resilient execution.

Example:
    >>> from jobspine import JobDefinition, JobRegistry, JobScheduler, InMemoryJobStore
    >>>
    >>> registry = JobRegistry([JobDefinition("ping", "every 30s", ping)])
    >>> scheduler = JobScheduler(registry, InMemoryJobStore())
    >>> await scheduler.initialize()
"""

__version__ = "0.1.0"

from jobspine.core.errors import (
    CircuitOpenError,
    ConfigError,
    JobAlreadyRunningError,
    JobNotFoundError,
    JobspineError,
    StoreError,
    TimeoutExpired,
    TransientError,
)
from jobspine.core.models import Job, JobLog, JobStatus, LogStatus, Trigger
from jobspine.execution import CircuitBreaker, CircuitBreakerRegistry, RetryConfig, retry, with_timeout
from jobspine.scheduling import (
    CronSchedule,
    InMemoryJobStore,
    IntervalSchedule,
    JobDefinition,
    JobRegistry,
    JobScheduler,
    SQLiteJobStore,
    parse_schedule,
)

__all__ = [
    "__version__",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitOpenError",
    "ConfigError",
    "CronSchedule",
    "InMemoryJobStore",
    "IntervalSchedule",
    "Job",
    "JobAlreadyRunningError",
    "JobDefinition",
    "JobLog",
    "JobNotFoundError",
    "JobRegistry",
    "JobScheduler",
    "JobStatus",
    "JobspineError",
    "LogStatus",
    "RetryConfig",
    "SQLiteJobStore",
    "StoreError",
    "TimeoutExpired",
    "TransientError",
    "Trigger",
    "parse_schedule",
    "retry",
    "with_timeout",
]
