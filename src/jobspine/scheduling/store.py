"""Job state store - persistence for job rows and execution logs.

Manifesto:
    Job state must survive restarts: operators disable a job and expect
    it to stay disabled, and the execution history is the audit trail of
    what ran. The store owns that state behind a small synchronous
    protocol so the engine never knows which backend it talks to.

Tags:
    jobspine, scheduling, repository, sqlite, persistence

Doc-Types:
    api-reference, data-model


┌──────────────────────────────────────────────────────────────────────────────┐
│  JOB STORE                                                                    │
│                                                                               │
│  JobStore (protocol)                                                          │
│  ├── ensure_job(name)        insert-if-absent, returns the row               │
│  ├── get_job / list_jobs     read state rows                                 │
│  ├── save_job(job)           write a full state row                          │
│  ├── append_log(log)         append one execution record                     │
│  ├── list_logs(name, limit)  newest first                                    │
│  └── prune_logs(before)      retention, never called by the engine           │
│                                                                               │
│  InMemoryJobStore   dict-backed, for tests and ephemeral runs                │
│  SQLiteJobStore     tables ``jobs`` and ``job_logs``                         │
│                                                                               │
│  Every backend failure surfaces as StoreError.                               │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any, Protocol, TypeVar, runtime_checkable

from jobspine.core.errors import StoreError
from jobspine.core.models import Job, JobLog, JobStatus, LogStatus, Trigger
from jobspine.core.timestamps import ensure_utc, from_iso8601, to_iso8601, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS jobs (
    name TEXT PRIMARY KEY,
    is_enabled INTEGER NOT NULL DEFAULT 1,
    status TEXT NOT NULL DEFAULT 'IDLE',
    last_run TEXT,
    next_run TEXT,
    last_error TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS job_logs (
    id TEXT PRIMARY KEY,
    job_name TEXT NOT NULL,
    started_at TEXT NOT NULL,
    finished_at TEXT NOT NULL,
    status TEXT NOT NULL,
    error_message TEXT,
    duration_ms INTEGER NOT NULL DEFAULT 0,
    attempts INTEGER NOT NULL DEFAULT 1,
    trigger TEXT NOT NULL DEFAULT 'schedule'
);

CREATE INDEX IF NOT EXISTS idx_job_logs_job_started
    ON job_logs (job_name, started_at DESC);
"""

JOB_COLUMNS = [
    "name",
    "is_enabled",
    "status",
    "last_run",
    "next_run",
    "last_error",
    "created_at",
    "updated_at",
]

LOG_COLUMNS = [
    "id",
    "job_name",
    "started_at",
    "finished_at",
    "status",
    "error_message",
    "duration_ms",
    "attempts",
    "trigger",
]


@runtime_checkable
class JobStore(Protocol):
    """Durable record store for job state and execution history."""

    def ensure_job(self, name: str) -> Job:
        """Insert a default row (enabled, IDLE) if absent; return the stored row."""
        ...

    def get_job(self, name: str) -> Job | None:
        ...

    def list_jobs(self) -> list[Job]:
        ...

    def save_job(self, job: Job) -> Job:
        """Write every field of ``job``, creating the row if needed."""
        ...

    def append_log(self, log: JobLog) -> JobLog:
        ...

    def list_logs(self, job_name: str, limit: int = 10) -> list[JobLog]:
        """Most recent executions first."""
        ...

    def count_logs(self, job_name: str | None = None) -> int:
        ...

    def prune_logs(self, before: datetime) -> int:
        """Delete log rows that started before ``before``; return how many."""
        ...

    def close(self) -> None:
        ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryJobStore:
    """Dict-backed store. State is lost when the process exits."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._logs: list[JobLog] = []
        self._lock = threading.RLock()

    def ensure_job(self, name: str) -> Job:
        with self._lock:
            if name not in self._jobs:
                self._jobs[name] = Job(name=name)
            return self._jobs[name]

    def get_job(self, name: str) -> Job | None:
        with self._lock:
            return self._jobs.get(name)

    def list_jobs(self) -> list[Job]:
        with self._lock:
            return sorted(self._jobs.values(), key=lambda job: job.name)

    def save_job(self, job: Job) -> Job:
        with self._lock:
            self._jobs[job.name] = job
            return job

    def append_log(self, log: JobLog) -> JobLog:
        with self._lock:
            self._logs.append(log)
            return log

    def list_logs(self, job_name: str, limit: int = 10) -> list[JobLog]:
        with self._lock:
            logs = [log for log in self._logs if log.job_name == job_name]
        # Stable sort keeps insertion order for identical start times
        logs.reverse()
        logs.sort(key=lambda log: log.started_at, reverse=True)
        return logs[:limit]

    def count_logs(self, job_name: str | None = None) -> int:
        with self._lock:
            if job_name is None:
                return len(self._logs)
            return sum(1 for log in self._logs if log.job_name == job_name)

    def prune_logs(self, before: datetime) -> int:
        cutoff = ensure_utc(before)
        with self._lock:
            kept = [log for log in self._logs if log.started_at >= cutoff]
            removed = len(self._logs) - len(kept)
            self._logs = kept
        return removed

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# SQLite implementation
# ---------------------------------------------------------------------------


def _wrap_errors(method: Callable[..., T]) -> Callable[..., T]:
    """Serialize access to the connection and turn sqlite errors into StoreError."""

    @wraps(method)
    def wrapper(self: SQLiteJobStore, *args: Any, **kwargs: Any) -> T:
        with self._lock:
            try:
                return method(self, *args, **kwargs)
            except sqlite3.Error as e:
                logger.error("Job store %s failed: %s", method.__name__, e)
                raise StoreError(f"Job store {method.__name__} failed: {e}", cause=e) from e

    return wrapper


class SQLiteJobStore:
    """SQLite-backed store.

    Example:
        >>> store = SQLiteJobStore.open("jobs.db")
        >>> store.ensure_job("backup").status
        <JobStatus.IDLE: 'IDLE'>
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialize store with an open connection and create the schema."""
        self.conn = conn
        self._lock = threading.RLock()
        self.initialize_schema()

    @classmethod
    def open(cls, path: str | Path = ":memory:") -> SQLiteJobStore:
        """Open (or create) a database file.

        The connection may be used from worker threads; access is
        serialized by the store.
        """
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(str(path), check_same_thread=False)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open job store at {path}: {e}", cause=e) from e
        return cls(conn)

    @_wrap_errors
    def initialize_schema(self) -> None:
        self.conn.executescript(SCHEMA_SQL)
        self.conn.commit()

    # === Job rows ===

    @_wrap_errors
    def ensure_job(self, name: str) -> Job:
        now = to_iso8601(utc_now())
        self.conn.execute(
            """
            INSERT OR IGNORE INTO jobs (name, is_enabled, status, created_at, updated_at)
            VALUES (?, 1, ?, ?, ?)
            """,
            (name, JobStatus.IDLE.value, now, now),
        )
        self.conn.commit()
        job = self._fetch_job(name)
        if job is None:
            raise StoreError(f"Job row {name!r} missing after insert")
        return job

    @_wrap_errors
    def get_job(self, name: str) -> Job | None:
        return self._fetch_job(name)

    @_wrap_errors
    def list_jobs(self) -> list[Job]:
        cursor = self.conn.execute(f"SELECT {', '.join(JOB_COLUMNS)} FROM jobs ORDER BY name")
        return [self._row_to_job(row) for row in cursor.fetchall()]

    @_wrap_errors
    def save_job(self, job: Job) -> Job:
        self.conn.execute(
            f"""
            INSERT INTO jobs ({', '.join(JOB_COLUMNS)})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(name) DO UPDATE SET
                is_enabled = excluded.is_enabled,
                status = excluded.status,
                last_run = excluded.last_run,
                next_run = excluded.next_run,
                last_error = excluded.last_error,
                updated_at = excluded.updated_at
            """,
            (
                job.name,
                1 if job.is_enabled else 0,
                job.status.value,
                to_iso8601(job.last_run),
                to_iso8601(job.next_run),
                job.last_error,
                to_iso8601(job.created_at),
                to_iso8601(job.updated_at),
            ),
        )
        self.conn.commit()
        return job

    def _fetch_job(self, name: str) -> Job | None:
        cursor = self.conn.execute(
            f"SELECT {', '.join(JOB_COLUMNS)} FROM jobs WHERE name = ?",
            (name,),
        )
        row = cursor.fetchone()
        if not row:
            return None
        return self._row_to_job(row)

    # === Execution logs ===

    @_wrap_errors
    def append_log(self, log: JobLog) -> JobLog:
        self.conn.execute(
            f"INSERT INTO job_logs ({', '.join(LOG_COLUMNS)}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                log.id,
                log.job_name,
                to_iso8601(log.started_at),
                to_iso8601(log.finished_at),
                log.status.value,
                log.error_message,
                log.duration_ms,
                log.attempts,
                log.trigger.value,
            ),
        )
        self.conn.commit()
        return log

    @_wrap_errors
    def list_logs(self, job_name: str, limit: int = 10) -> list[JobLog]:
        cursor = self.conn.execute(
            f"""
            SELECT {', '.join(LOG_COLUMNS)} FROM job_logs
            WHERE job_name = ?
            ORDER BY started_at DESC, rowid DESC
            LIMIT ?
            """,
            (job_name, limit),
        )
        return [self._row_to_log(row) for row in cursor.fetchall()]

    @_wrap_errors
    def count_logs(self, job_name: str | None = None) -> int:
        if job_name is None:
            cursor = self.conn.execute("SELECT COUNT(*) FROM job_logs")
        else:
            cursor = self.conn.execute("SELECT COUNT(*) FROM job_logs WHERE job_name = ?", (job_name,))
        return cursor.fetchone()[0]

    @_wrap_errors
    def prune_logs(self, before: datetime) -> int:
        cursor = self.conn.execute(
            "DELETE FROM job_logs WHERE started_at < ?",
            (to_iso8601(before),),
        )
        self.conn.commit()
        removed = cursor.rowcount
        logger.info("Pruned %d job log row(s) older than %s", removed, to_iso8601(before))
        return removed

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    # === Row mapping ===

    def _row_to_job(self, row: tuple) -> Job:
        """Convert database row to Job model."""
        data = dict(zip(JOB_COLUMNS, row, strict=False))
        return Job(
            name=data["name"],
            is_enabled=bool(data["is_enabled"]),
            status=JobStatus(data["status"]),
            last_run=from_iso8601(data["last_run"]),
            next_run=from_iso8601(data["next_run"]),
            last_error=data["last_error"],
            created_at=from_iso8601(data["created_at"]),
            updated_at=from_iso8601(data["updated_at"]),
        )

    def _row_to_log(self, row: tuple) -> JobLog:
        """Convert database row to JobLog model."""
        data = dict(zip(LOG_COLUMNS, row, strict=False))
        return JobLog(
            id=data["id"],
            job_name=data["job_name"],
            started_at=from_iso8601(data["started_at"]),
            finished_at=from_iso8601(data["finished_at"]),
            status=LogStatus(data["status"]),
            error_message=data["error_message"],
            duration_ms=data["duration_ms"],
            attempts=data["attempts"],
            trigger=Trigger(data["trigger"]),
        )


def open_store(database_path: str | Path | None) -> JobStore:
    """Open the store configured by ``database_path`` (None = in memory)."""
    if database_path is None:
        return InMemoryJobStore()
    return SQLiteJobStore.open(database_path)


__all__ = [
    "InMemoryJobStore",
    "JobStore",
    "SCHEMA_SQL",
    "SQLiteJobStore",
    "open_store",
]
