"""Caller-side resilience helpers for retryable engine errors"""

from hunter_engine.resilience.retry import (
    calculate_backoff,
    is_retryable_error,
    retry_with_backoff,
    with_retry,
)

__all__ = [
    "calculate_backoff",
    "is_retryable_error",
    "retry_with_backoff",
    "with_retry",
]
