"""Tests for retry with exponential backoff."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from jobspine.core.errors import ConfigError, TimeoutExpired, TransientError
from jobspine.execution.retry import RetryConfig, RetryState, retry, retry_linear, with_retry


class Flaky:
    """Fails ``failures`` times with ``error``, then returns ``result``."""

    def __init__(self, failures, error=None, result="ok"):
        self.failures = failures
        self.error = error or TransientError("flaky")
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


FAST = RetryConfig(max_attempts=3, delay_ms=1, max_delay_ms=5)


class TestRetryConfig:
    """Test delay computation."""

    def test_exponential_delays(self):
        config = RetryConfig(delay_ms=100, backoff_multiplier=2, max_delay_ms=10_000)
        assert [config.next_delay_ms(n) for n in (1, 2, 3, 4)] == [100, 200, 400, 800]

    def test_delay_capped(self):
        config = RetryConfig(delay_ms=1000, backoff_multiplier=10, max_delay_ms=5000)
        assert config.next_delay_ms(3) == 5000

    def test_jitter_adds_up_to_fraction(self):
        config = RetryConfig(delay_ms=100, jitter=0.5)
        for _ in range(20):
            assert 100 <= config.next_delay_ms(1) <= 150

    def test_defaults(self):
        config = RetryConfig()
        assert config.max_attempts == 3
        assert config.delay_ms == 1000
        assert config.backoff_multiplier == 2
        assert config.max_delay_ms == 30000
        assert config.timeout_ms is None

    @pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"delay_ms": -1}, {"jitter": 2.0}])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            RetryConfig(**kwargs)


class TestRetry:
    """Test the retry loop."""

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        op = Flaky(0)
        state = RetryState()
        assert await retry(op, FAST, state=state) == "ok"
        assert op.calls == 1
        assert state.attempts == 1

    @pytest.mark.asyncio
    async def test_fail_fail_succeed_calls_on_retry_twice(self):
        op = Flaky(2)
        seen = []
        config = RetryConfig(max_attempts=3, delay_ms=1, on_retry=lambda e, n: seen.append((str(e), n)))

        assert await retry(op, config) == "ok"
        assert op.calls == 3
        assert seen == [("flaky", 1), ("flaky", 2)]

    @pytest.mark.asyncio
    async def test_exhausted_reraises_last_error_unchanged(self):
        error = TransientError("still down")
        op = Flaky(5, error=error)
        state = RetryState()
        with pytest.raises(TransientError) as exc_info:
            await retry(op, FAST, state=state)
        assert exc_info.value is error
        assert op.calls == 3
        assert state.attempts == 3
        assert len(state.errors) == 3

    @pytest.mark.asyncio
    async def test_non_retryable_stops_immediately(self):
        op = Flaky(5, error=ConfigError("bad config"))
        seen = []
        with pytest.raises(ConfigError):
            await retry(op, FAST, on_retry=lambda e, n: seen.append(n))
        assert op.calls == 1
        assert seen == []

    @pytest.mark.asyncio
    async def test_plain_value_error_not_retried_by_default(self):
        op = Flaky(5, error=ValueError("bad input"))
        with pytest.raises(ValueError):
            await retry(op, FAST)
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_custom_should_retry(self):
        op = Flaky(2, error=ValueError("retry me"))
        assert await retry(op, FAST, should_retry=lambda e: True) == "ok"
        assert op.calls == 3

    @pytest.mark.asyncio
    async def test_sleeps_follow_backoff(self):
        op = Flaky(3)
        config = RetryConfig(max_attempts=4, delay_ms=100, backoff_multiplier=2)
        with patch("jobspine.execution.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await retry(op, config)
        assert [call.args[0] for call in sleep.call_args_list] == [0.1, 0.2, 0.4]

    @pytest.mark.asyncio
    async def test_per_attempt_timeout_is_retried(self):
        calls = 0

        async def slow_then_fast():
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(1)
            return "fast"

        result = await retry(slow_then_fast, FAST, timeout_ms=20, label="slow")
        assert result == "fast"
        assert calls == 2

    @pytest.mark.asyncio
    async def test_per_attempt_timeout_exhausted(self):
        async def always_slow():
            await asyncio.sleep(1)

        with pytest.raises(TimeoutExpired) as exc_info:
            await retry(always_slow, RetryConfig(max_attempts=2, delay_ms=1, timeout_ms=10), label="slow")
        assert exc_info.value.label == "slow"


class TestRetryHelpers:
    @pytest.mark.asyncio
    async def test_retry_linear(self):
        op = Flaky(1)
        assert await retry_linear(op, max_attempts=2, delay_ms=1) == "ok"
        assert op.calls == 2

    @pytest.mark.asyncio
    async def test_with_retry_decorator(self):
        calls = []

        @with_retry(RetryConfig(max_attempts=3, delay_ms=1))
        async def send(invoice_id):
            calls.append(invoice_id)
            if len(calls) < 2:
                raise TransientError("smtp busy")
            return f"sent {invoice_id}"

        assert await send("inv-1") == "sent inv-1"
        assert calls == ["inv-1", "inv-1"]
        assert send.__name__ == "send"

    def test_with_retry_rejects_sync_function(self):
        with pytest.raises(TypeError):

            @with_retry()
            def not_async():
                pass
