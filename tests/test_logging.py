"""Tests for structured logging configuration."""

import json

import structlog

from jobspine.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


class TestConfigureLogging:
    """Test the structlog processor chain."""

    def teardown_method(self):
        clear_context()
        structlog.reset_defaults()

    def test_json_output_uses_ecs_fields(self, capsys):
        """JSON logs carry @timestamp, log.level and service.name."""
        configure_logging(level="INFO", json_format=True, service="jobspine-test")
        get_logger("test").info("job_started", job_name="backup")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "job_started"
        assert record["job_name"] == "backup"
        assert record["log.level"] == "info"
        assert record["service.name"] == "jobspine-test"
        assert "@timestamp" in record

    def test_level_filters_debug(self, capsys):
        """Debug events are dropped at INFO level."""
        configure_logging(level="INFO", json_format=True)
        get_logger("test").debug("noise")
        assert "noise" not in capsys.readouterr().out

    def test_bound_context_is_merged(self, capsys):
        """bind_context values appear on later events."""
        configure_logging(level="INFO", json_format=True)
        bind_context(trigger="manual")
        get_logger("test").info("job_succeeded")

        record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert record["trigger"] == "manual"


class TestLogContext:
    """Test scoped logging context."""

    def teardown_method(self):
        clear_context()
        structlog.reset_defaults()

    def test_context_removed_on_exit(self, capsys):
        configure_logging(level="INFO", json_format=True)
        logger = get_logger("test")

        with LogContext(job_name="cleanup"):
            logger.info("inside")
        logger.info("outside")

        inside, outside = (json.loads(line) for line in capsys.readouterr().out.strip().splitlines()[-2:])
        assert inside["job_name"] == "cleanup"
        assert "job_name" not in outside
