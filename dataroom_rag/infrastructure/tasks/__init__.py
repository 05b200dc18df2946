"""Background task execution and retry helpers."""

from .retry import RetryConfig, RetryExhausted, calculate_backoff, is_retryable_error, retry_async, with_retry
from .runner import RunStatus, TaskDefinition, TaskHandle, TaskRun, TaskRunner, UnknownTaskError

__all__ = [
    "RetryConfig",
    "RetryExhausted",
    "RunStatus",
    "TaskDefinition",
    "TaskHandle",
    "TaskRun",
    "TaskRunner",
    "UnknownTaskError",
    "calculate_backoff",
    "is_retryable_error",
    "retry_async",
    "with_retry",
]
