"""Caller-side retry with exponential backoff and jitter

The engine never retries internally. Callers that want to re-drive an
operation after a ConcurrencyConflictError or CollaboratorUnavailableError
wrap the call here:
1. Only errors flagged retryable are retried
2. Exponential backoff with jitter spreads out competing writers
3. Gives up after max retries and re-raises the last error

Amount-based operations (e.g. "add 10 reps") are only safe to re-drive
when the caller deduplicates them by request id.
"""

import asyncio
import random
import logging
from typing import Callable, Any, TypeVar
from functools import wraps

from hunter_engine.config import RETRY_BASE_DELAY, RETRY_MAX_ATTEMPTS
from hunter_engine.exceptions import HunterEngineError
from hunter_engine.monitoring import record_retry

logger = logging.getLogger(__name__)

T = TypeVar('T')

MAX_DELAY = 5.0  # seconds
JITTER = 0.1  # 10% random jitter


def is_retryable_error(exc: Exception) -> bool:
    """
    Whether re-driving the same logical operation may succeed

    Retryable: ConcurrencyConflictError, CollaboratorUnavailableError
    (including RewardPendingError). Everything else is terminal.
    """
    return isinstance(exc, HunterEngineError) and exc.retryable


def calculate_backoff(attempt: int, base_delay: float = RETRY_BASE_DELAY) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Formula: delay = min(base_delay * (2 ** attempt), MAX_DELAY) +/- 10%

    Args:
        attempt: The retry attempt number (0-indexed)
        base_delay: Delay before the first retry

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (2 ** attempt), MAX_DELAY)
    jitter_amount = random.uniform(-JITTER * delay, JITTER * delay)
    return max(delay + jitter_amount, 0.0)


async def retry_with_backoff(
    func: Callable[..., T],
    *args: Any,
    max_retries: int = RETRY_MAX_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY,
    **kwargs: Any
) -> T:
    """
    Re-drive an async engine call while it fails with a retryable error

    Args:
        func: Async function to call
        max_retries: Maximum number of retry attempts
        base_delay: Delay before the first retry
        *args, **kwargs: Arguments to pass to func

    Returns:
        Result from func

    Raises:
        The last exception once retries are exhausted, or the first
        non-retryable one

    Example:
        result = await retry_with_backoff(service.complete_mission, user_id, mission_id)
    """
    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)

        except Exception as e:
            if not is_retryable_error(e):
                raise

            if attempt == max_retries:
                logger.error(f"[RETRY] All {max_retries} retries exhausted for {func.__name__}")
                raise

            backoff = calculate_backoff(attempt, base_delay)
            record_retry(func.__name__)
            logger.info(
                f"[RETRY] Attempt {attempt + 1}/{max_retries} for {func.__name__} "
                f"after {backoff:.2f}s (error: {type(e).__name__})"
            )
            await asyncio.sleep(backoff)


def with_retry(max_retries: int = RETRY_MAX_ATTEMPTS, base_delay: float = RETRY_BASE_DELAY) -> Callable:
    """
    Decorator form of retry_with_backoff

    Example:
        @with_retry(max_retries=3)
        async def finish_pushups(service, user_id, mission_id):
            return await service.complete_mission(user_id, mission_id)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await retry_with_backoff(
                func, *args, max_retries=max_retries, base_delay=base_delay, **kwargs
            )
        return wrapper
    return decorator
