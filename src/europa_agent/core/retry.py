"""Retry of model calls with exponential backoff.

Usage:
    config = RetryConfig(max_retries=3, initial_delay=1.0)

    @async_retry(config)
    async def call_model():
        ...
"""
import asyncio
import functools
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from europa_agent.core.exceptions import RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Retry configuration.

    Attributes:
        enabled: Whether retry is enabled
        max_retries: Maximum number of retries after the first attempt
        initial_delay: Delay before the first retry, in seconds
        max_delay: Upper bound of a single delay, in seconds
        exponential_base: Backoff multiplier
        jitter: Randomize delays to avoid thundering herd
        retryable_exceptions: Exception types worth retrying
    """

    enabled: bool = True
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_exceptions: tuple[type[BaseException], ...] = field(default=(Exception,))

    def calculate_delay(self, attempt: int) -> float:
        delay = min(self.initial_delay * (self.exponential_base**attempt), self.max_delay)
        if self.jitter:
            delay = delay * (0.5 + random.random() * 0.5)
        return delay

    @classmethod
    def from_settings(cls, settings: Any) -> "RetryConfig":
        return cls(
            enabled=settings.LLM_MAX_RETRIES > 0,
            max_retries=settings.LLM_MAX_RETRIES,
            initial_delay=settings.LLM_RETRY_INITIAL_DELAY,
            max_delay=settings.LLM_RETRY_MAX_DELAY,
        )


def async_retry(
    config: RetryConfig,
    on_retry: Callable[[int, Exception], None] | None = None,
) -> Callable:
    """Decorator for retrying async functions with exponential backoff.

    Args:
        config: Retry configuration
        on_retry: Optional callback called before each retry with
                  (retry_count, exception)

    Raises:
        RetryExhaustedError: when every attempt failed
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            if not config.enabled:
                return await func(*args, **kwargs)

            last_exception: Exception | None = None

            for attempt in range(config.max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except config.retryable_exceptions as e:
                    last_exception = e

                    if attempt == config.max_retries:
                        break

                    if on_retry:
                        on_retry(attempt + 1, e)

                    delay = config.calculate_delay(attempt)
                    logger.warning(
                        f"Retry {attempt + 1}/{config.max_retries} after {delay:.2f}s: {e}"
                    )
                    await asyncio.sleep(delay)

            assert last_exception is not None
            raise RetryExhaustedError(last_exception, config.max_retries + 1)

        return wrapper

    return decorator
