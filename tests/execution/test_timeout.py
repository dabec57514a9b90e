"""Tests for timeout enforcement."""

import asyncio

import pytest

from jobspine.core.errors import TimeoutExpired, TransientError
from jobspine.execution.timeout import deadline, timeout, with_timeout


class TestWithTimeout:
    """Test with_timeout."""

    @pytest.mark.asyncio
    async def test_returns_result_in_time(self):
        async def quick():
            return 42

        assert await with_timeout(quick(), 1000) == 42

    @pytest.mark.asyncio
    async def test_expiry_raises_timeout_expired(self):
        with pytest.raises(TimeoutExpired) as exc_info:
            await with_timeout(asyncio.sleep(1), 20, "backup")
        error = exc_info.value
        assert error.label == "backup"
        assert error.timeout_ms == 20
        assert "backup" in str(error)
        assert "20ms" in str(error)
        assert error.retryable is True

    @pytest.mark.asyncio
    async def test_loser_is_cancelled(self):
        cancelled = asyncio.Event()

        async def slow():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with pytest.raises(TimeoutExpired):
            await with_timeout(slow(), 10)
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_operation_errors_pass_through(self):
        async def broken():
            raise TransientError("upstream 503")

        with pytest.raises(TransientError, match="upstream 503"):
            await with_timeout(broken(), 1000)

    @pytest.mark.asyncio
    async def test_operation_own_timeout_error_not_relabelled(self):
        async def raises_timeout():
            raise TimeoutError("socket read")

        with pytest.raises(TimeoutError) as exc_info:
            await with_timeout(raises_timeout(), 1000)
        assert not isinstance(exc_info.value, TimeoutExpired)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad", [0, -5])
    async def test_non_positive_timeout_rejected(self, bad):
        async def never():
            return None

        with pytest.raises(ValueError):
            await with_timeout(never(), bad)


class TestDeadline:
    @pytest.mark.asyncio
    async def test_context_manager(self):
        with pytest.raises(TimeoutExpired):
            async with deadline(10, "block"):
                await asyncio.sleep(1)

    @pytest.mark.asyncio
    async def test_context_manager_completes(self):
        async with deadline(1000):
            await asyncio.sleep(0)


class TestTimeoutDecorator:
    @pytest.mark.asyncio
    async def test_decorated_function(self):
        @timeout(10)
        async def hang():
            await asyncio.sleep(1)

        with pytest.raises(TimeoutExpired) as exc_info:
            await hang()
        assert exc_info.value.label == "hang"

    def test_rejects_sync_function(self):
        with pytest.raises(TypeError):

            @timeout(10)
            def not_async():
                pass
