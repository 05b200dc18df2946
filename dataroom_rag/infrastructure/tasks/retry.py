"""Retry with exponential backoff and jitter for coroutines."""

import asyncio
import functools
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from ...modules.common.exceptions import IndexingError, ValidationError
from ..config.settings import Settings
from ..logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RetryExhausted(Exception):
    """Raised when all attempts have failed."""

    def __init__(self, message: str, attempts: int, last_exception: Exception):
        super().__init__(message)
        self.attempts = attempts
        self.last_exception = last_exception


@dataclass(frozen=True)
class RetryConfig:
    """Backoff policy.

    Attributes:
        max_attempts: Total attempts, including the first one.
        initial_backoff: Delay before the second attempt, in seconds.
        backoff_multiplier: Growth factor per attempt.
        max_backoff: Cap on a single delay, in seconds.
        jitter_percent: Random jitter range (0.1 = ±10%).
    """

    max_attempts: int = 3
    initial_backoff: float = 1.0
    backoff_multiplier: float = 2.0
    max_backoff: float = 30.0
    jitter_percent: float = 0.1

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.initial_backoff < 0 or self.max_backoff < 0:
            raise ValueError("Backoff delays cannot be negative")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryConfig":
        return cls(
            max_attempts=settings.RAG_TASK_MAX_ATTEMPTS,
            initial_backoff=settings.RAG_TASK_RETRY_MIN_SECONDS,
            backoff_multiplier=settings.RAG_TASK_RETRY_FACTOR,
            max_backoff=settings.RAG_TASK_RETRY_MAX_SECONDS,
        )


def calculate_backoff(attempt: int, config: RetryConfig) -> float:
    """Backoff before retry number ``attempt`` (0-indexed), with jitter."""
    backoff = min(config.initial_backoff * (config.backoff_multiplier**attempt), config.max_backoff)
    jitter_range = backoff * config.jitter_percent
    backoff += random.uniform(-jitter_range, jitter_range)
    return max(0.0, backoff)


def is_retryable_error(error: Exception) -> bool:
    """Validation failures never succeed on retry; indexing errors say for themselves."""
    if isinstance(error, ValidationError):
        return False
    if isinstance(error, IndexingError):
        return error.retryable
    return True


async def retry_async(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig,
    is_retryable: Callable[[Exception], bool] = is_retryable_error,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
) -> T:
    """Await ``func()`` until it succeeds or the attempts run out.

    Args:
        func: Zero-argument callable returning a fresh awaitable per attempt
        config: Backoff policy
        is_retryable: Predicate deciding whether an exception is worth retrying
        on_retry: Optional callback(attempt, exception, backoff) before each retry

    Returns:
        The first successful result

    Raises:
        RetryExhausted: If every attempt failed
        Exception: A non-retryable exception, unchanged
    """
    last_exception: Exception = RuntimeError("No attempt was made")

    for attempt in range(config.max_attempts):
        try:
            return await func()
        except Exception as e:
            last_exception = e

            if not is_retryable(e):
                logger.warning(f"Non-retryable error on attempt {attempt + 1}: {e}")
                raise

            if attempt + 1 >= config.max_attempts:
                break

            backoff = calculate_backoff(attempt, config)
            logger.warning(
                f"Retryable error on attempt {attempt + 1}/{config.max_attempts}: {e}. Retrying in {backoff:.2f}s"
            )
            if on_retry:
                on_retry(attempt, e, backoff)
            await asyncio.sleep(backoff)

    raise RetryExhausted(
        f"All {config.max_attempts} attempts failed. Last error: {last_exception}",
        attempts=config.max_attempts,
        last_exception=last_exception,
    )


def with_retry(config: RetryConfig, is_retryable: Callable[[Exception], bool] = is_retryable_error):
    """Decorator form of ``retry_async`` for coroutine functions."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await retry_async(lambda: func(*args, **kwargs), config=config, is_retryable=is_retryable)

        return wrapper

    return decorator
