"""Tests for the job state stores.

Every behavior is checked against both backends through the ``store``
fixture; SQLite-only behavior (durability, error mapping) has its own class.
"""

import sqlite3
from datetime import UTC, datetime, timedelta

import pytest

from jobspine.core.errors import ErrorCategory, StoreError
from jobspine.core.models import Job, JobLog, JobStatus, LogStatus, Trigger
from jobspine.core.timestamps import generate_ulid
from jobspine.scheduling.store import (
    InMemoryJobStore,
    JobStore,
    SQLiteJobStore,
    open_store,
)

T0 = datetime(2026, 3, 2, 8, 0, tzinfo=UTC)


def make_log(job_name="backup", started_at=T0, status=LogStatus.SUCCESS, **kwargs):
    return JobLog(
        id=kwargs.pop("id", generate_ulid()),
        job_name=job_name,
        started_at=started_at,
        finished_at=started_at + timedelta(milliseconds=250),
        status=status,
        duration_ms=250,
        **kwargs,
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        store = InMemoryJobStore()
    else:
        store = SQLiteJobStore.open(tmp_path / "store.db")
    yield store
    store.close()


class TestJobRows:
    """Test the jobs table."""

    def test_satisfies_protocol(self, store):
        assert isinstance(store, JobStore)

    def test_ensure_job_creates_default_row(self, store):
        job = store.ensure_job("backup")
        assert job.name == "backup"
        assert job.is_enabled is True
        assert job.status == JobStatus.IDLE
        assert job.last_run is None
        assert job.next_run is None
        assert job.last_error is None

    def test_ensure_job_keeps_existing_row(self, store):
        store.save_job(store.ensure_job("backup").evolve(is_enabled=False))
        assert store.ensure_job("backup").is_enabled is False

    def test_get_missing(self, store):
        assert store.get_job("nope") is None

    def test_save_round_trip(self, store):
        job = store.ensure_job("backup").evolve(
            status=JobStatus.FAILED,
            last_run=T0,
            next_run=T0 + timedelta(days=1),
            last_error="disk full",
        )
        store.save_job(job)
        loaded = store.get_job("backup")
        assert loaded.status == JobStatus.FAILED
        assert loaded.last_run == T0
        assert loaded.next_run == T0 + timedelta(days=1)
        assert loaded.last_error == "disk full"

    def test_save_creates_missing_row(self, store):
        store.save_job(Job(name="cleanup", is_enabled=False))
        assert store.get_job("cleanup").is_enabled is False

    def test_list_jobs_sorted_by_name(self, store):
        for name in ("cleanup", "backup", "weekly-summary"):
            store.ensure_job(name)
        assert [job.name for job in store.list_jobs()] == ["backup", "cleanup", "weekly-summary"]


class TestLogs:
    """Test the job_logs table."""

    def test_append_and_list_newest_first(self, store):
        for minutes in (0, 2, 1):
            store.append_log(make_log(started_at=T0 + timedelta(minutes=minutes)))
        started = [log.started_at for log in store.list_logs("backup")]
        assert started == [T0 + timedelta(minutes=m) for m in (2, 1, 0)]

    def test_limit(self, store):
        for minutes in range(15):
            store.append_log(make_log(started_at=T0 + timedelta(minutes=minutes)))
        assert len(store.list_logs("backup")) == 10
        assert len(store.list_logs("backup", limit=3)) == 3
        assert store.list_logs("backup", limit=1)[0].started_at == T0 + timedelta(minutes=14)

    def test_filters_by_job(self, store):
        store.append_log(make_log("backup"))
        store.append_log(make_log("cleanup"))
        assert [log.job_name for log in store.list_logs("cleanup")] == ["cleanup"]
        assert store.list_logs("nope") == []

    def test_same_start_time_latest_insert_first(self, store):
        store.append_log(make_log(id="first"))
        store.append_log(make_log(id="second"))
        assert [log.id for log in store.list_logs("backup")] == ["second", "first"]

    def test_fields_round_trip(self, store):
        log = make_log(
            status=LogStatus.FAILED,
            error_message="timed out",
            attempts=3,
            trigger=Trigger.MANUAL,
        )
        store.append_log(log)
        assert store.list_logs("backup") == [log]

    def test_count_logs(self, store):
        store.append_log(make_log("backup"))
        store.append_log(make_log("backup"))
        store.append_log(make_log("cleanup"))
        assert store.count_logs() == 3
        assert store.count_logs("backup") == 2
        assert store.count_logs("nope") == 0

    def test_prune_logs(self, store):
        for days in (0, 10, 40):
            store.append_log(make_log(started_at=T0 - timedelta(days=days)))
        removed = store.prune_logs(T0 - timedelta(days=30))
        assert removed == 1
        assert store.count_logs() == 2


class TestSQLiteJobStore:
    """Test SQLite-specific behavior."""

    def test_state_survives_reopen(self, sqlite_path):
        store = SQLiteJobStore.open(sqlite_path)
        store.save_job(store.ensure_job("backup").evolve(is_enabled=False, next_run=T0))
        store.append_log(make_log())
        store.close()

        reopened = SQLiteJobStore.open(sqlite_path)
        try:
            job = reopened.get_job("backup")
            assert job.is_enabled is False
            assert job.next_run == T0
            assert reopened.count_logs("backup") == 1
        finally:
            reopened.close()

    def test_creates_parent_directories(self, tmp_path):
        store = SQLiteJobStore.open(tmp_path / "nested" / "dir" / "jobs.db")
        store.ensure_job("backup")
        store.close()
        assert (tmp_path / "nested" / "dir" / "jobs.db").exists()

    def test_sqlite_errors_become_store_errors(self, sqlite_store):
        sqlite_store.conn.execute("DROP TABLE job_logs")
        with pytest.raises(StoreError) as exc_info:
            sqlite_store.count_logs()
        assert isinstance(exc_info.value.cause, sqlite3.Error)
        assert exc_info.value.category == ErrorCategory.DATABASE

    def test_missing_row_after_insert_is_a_store_error(self, sqlite_store, monkeypatch):
        monkeypatch.setattr(sqlite_store, "_fetch_job", lambda name: None)
        with pytest.raises(StoreError, match="missing after insert"):
            sqlite_store.ensure_job("backup")

    def test_closed_connection_raises_store_error(self, sqlite_path):
        store = SQLiteJobStore.open(sqlite_path)
        store.close()
        with pytest.raises(StoreError):
            store.get_job("backup")

    def test_memory_database(self):
        store = SQLiteJobStore.open()
        try:
            assert store.ensure_job("backup").name == "backup"
        finally:
            store.close()


class TestOpenStore:
    def test_none_gives_memory_store(self):
        assert isinstance(open_store(None), InMemoryJobStore)

    def test_path_gives_sqlite_store(self, sqlite_path):
        store = open_store(sqlite_path)
        try:
            assert isinstance(store, SQLiteJobStore)
        finally:
            store.close()
