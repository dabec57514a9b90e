"""
Shared pytest fixtures for jobspine tests.

This module provides:
- In-memory and SQLite job stores
- A settings cache reset for environment-driven tests
- Small handler factories for building job registries
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
import structlog

from jobspine.core.errors import TransientError
from jobspine.core.settings import get_settings
from jobspine.scheduling.store import InMemoryJobStore, SQLiteJobStore


@pytest.fixture(autouse=True)
def _plain_logging() -> Generator[None, None, None]:
    """Render logs as key=value lines so output does not depend on the installed renderer."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["event"]),
        ],
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Generator[None, None, None]:
    """Settings are cached per process; tests that touch env vars need a fresh read."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def memory_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def sqlite_path(tmp_path: Path) -> Path:
    return tmp_path / "jobs.db"


@pytest.fixture
def sqlite_store(sqlite_path: Path) -> Generator[SQLiteJobStore, None, None]:
    store = SQLiteJobStore.open(sqlite_path)
    yield store
    store.close()


class Recorder:
    """Async handler that counts its calls and can be told to fail."""

    def __init__(self, failures: int = 0, error: Callable[[], Exception] | None = None):
        self.calls = 0
        self.failures = failures
        self.error = error or (lambda: TransientError("upstream unavailable"))

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error()
        return "done"


class Blocker:
    """Async handler that blocks until released."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def __call__(self) -> None:
        self.calls += 1
        self.started.set()
        await self.release.wait()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def make_recorder() -> Callable[..., Recorder]:
    return Recorder


@pytest.fixture
def blocker() -> Blocker:
    return Blocker()
