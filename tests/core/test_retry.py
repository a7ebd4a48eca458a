"""Tests for the retry decorator."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import pytest

from europa_agent.core.exceptions import RetryExhaustedError
from europa_agent.core.retry import RetryConfig, async_retry


class TestRetryConfig:
    def test_exponential_delay_is_capped(self):
        config = RetryConfig(initial_delay=1.0, max_delay=5.0, jitter=False)

        assert [config.calculate_delay(i) for i in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_within_half_to_full_delay(self):
        config = RetryConfig(initial_delay=2.0, jitter=True)

        for _ in range(20):
            assert 1.0 <= config.calculate_delay(0) <= 2.0

    def test_from_settings(self):
        settings = SimpleNamespace(LLM_MAX_RETRIES=0, LLM_RETRY_INITIAL_DELAY=0.5, LLM_RETRY_MAX_DELAY=10.0)

        config = RetryConfig.from_settings(settings)

        assert config.enabled is False
        assert config.initial_delay == 0.5


class TestAsyncRetry:
    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self):
        func = AsyncMock(side_effect=[ConnectionError("a"), ConnectionError("b"), "ok"])
        on_retry = Mock()
        wrapped = async_retry(RetryConfig(max_retries=3, jitter=False), on_retry=on_retry)(func)

        with patch("europa_agent.core.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await wrapped()

        assert result == "ok"
        assert func.await_count == 3
        assert [c.args[0] for c in on_retry.call_args_list] == [1, 2]
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted(self):
        func = AsyncMock(side_effect=TimeoutError("slow"))
        wrapped = async_retry(RetryConfig(max_retries=2, jitter=False))(func)

        with patch("europa_agent.core.retry.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(RetryExhaustedError) as exc_info:
                await wrapped()

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_exception, TimeoutError)

    @pytest.mark.asyncio
    async def test_non_retryable_exception_propagates(self):
        func = AsyncMock(side_effect=ValueError("bad request"))
        config = RetryConfig(max_retries=3, retryable_exceptions=(ConnectionError,))

        with pytest.raises(ValueError):
            await async_retry(config)(func)()

        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_disabled_calls_once(self):
        func = AsyncMock(side_effect=ConnectionError("down"))

        with pytest.raises(ConnectionError):
            await async_retry(RetryConfig(enabled=False))(func)()

        assert func.await_count == 1
