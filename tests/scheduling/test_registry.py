"""Tests for job definitions and the registry."""

from datetime import timedelta

import pytest

from jobspine.core.errors import ConfigError, JobNotFoundError
from jobspine.execution.circuit_breaker import CircuitBreaker
from jobspine.execution.retry import RetryConfig
from jobspine.scheduling.registry import JobDefinition, JobRegistry
from jobspine.scheduling.triggers import CronSchedule, IntervalSchedule


async def noop():
    return None


class TestJobDefinition:
    def test_schedule_text_is_parsed(self):
        definition = JobDefinition("backup", "0 3 * * *", noop)
        assert definition.schedule == CronSchedule("0 3 * * *")

    def test_timedelta_schedule(self):
        definition = JobDefinition("ping", timedelta(seconds=30), noop)
        assert definition.schedule == IntervalSchedule.of(30)

    def test_defaults(self):
        definition = JobDefinition("ping", "every 30s", noop)
        assert definition.retry == RetryConfig()
        assert definition.timeout_ms is None
        assert definition.breaker is None
        assert definition.attempt_timeout_ms is None

    def test_attempt_timeout_prefers_job_timeout(self):
        retry = RetryConfig(timeout_ms=500)
        assert JobDefinition("a", "every 1s", noop, retry=retry).attempt_timeout_ms == 500
        assert JobDefinition("a", "every 1s", noop, retry=retry, timeout_ms=50).attempt_timeout_ms == 50

    def test_breaker_kept(self):
        breaker = CircuitBreaker(name="notifications")
        assert JobDefinition("a", "every 1s", noop, breaker=breaker).breaker is breaker

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"name": ""},
            {"name": "   "},
            {"handler": "not callable"},
            {"timeout_ms": 0},
        ],
    )
    def test_invalid(self, kwargs):
        fields = {"name": "job", "schedule": "every 1s", "handler": noop, **kwargs}
        with pytest.raises(ConfigError):
            JobDefinition(**fields)


class TestJobRegistry:
    """Test lookup and iteration."""

    @pytest.fixture
    def registry(self):
        return JobRegistry([
            JobDefinition("weekly-summary", "0 8 * * 1", noop),
            JobDefinition("backup", "0 3 * * *", noop),
            JobDefinition("ping", "every 30s", noop),
        ])

    def test_get(self, registry):
        assert registry.get("backup").name == "backup"

    def test_get_unknown_raises(self, registry):
        with pytest.raises(JobNotFoundError) as exc_info:
            registry.get("nope")
        assert exc_info.value.job_name == "nope"

    def test_registration_order(self, registry):
        assert registry.names() == ["weekly-summary", "backup", "ping"]
        assert [d.name for d in registry] == ["weekly-summary", "backup", "ping"]

    def test_container_protocol(self, registry):
        assert len(registry) == 3
        assert "ping" in registry
        assert "nope" not in registry
        assert "ping" in repr(registry)

    def test_duplicate_names_rejected(self):
        with pytest.raises(ConfigError, match="Duplicate"):
            JobRegistry([JobDefinition("a", "every 1s", noop), JobDefinition("a", "every 2s", noop)])

    def test_empty_registry(self):
        assert len(JobRegistry()) == 0
