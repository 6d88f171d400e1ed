"""
Bounded exponential backoff with jitter for fallible async operations.

Every transient call site (object fetch, connection acquisition) composes
with ``with_retry`` instead of running its own backoff loop.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from core.exceptions import NonRetryableError

T = TypeVar("T")
logger = logging.getLogger(__name__)

# Jitter adds up to this fraction of the computed delay
JITTER_RATIO = 0.25


def backoff_delay(attempt: int, base_delay: float, jitter: bool = True) -> float:
    """Delay before retrying after failed ``attempt`` (1-based): base * 2^(attempt-1)."""
    delay = base_delay * (2 ** (attempt - 1))
    if jitter:
        delay += random.uniform(0, delay * JITTER_RATIO)
    return delay


def is_retryable_error(exc: Exception) -> bool:
    """Default policy: everything except explicit non-retryable errors."""
    return not isinstance(exc, NonRetryableError)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    *,
    jitter: bool = True,
    is_retryable: Optional[Callable[[Exception], bool]] = None,
    description: str = "operation",
) -> T:
    """
    Await ``operation()`` up to ``max_attempts`` times.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        max_attempts: Total attempts including the first one
        base_delay: Delay in seconds after the first failure, doubled each time
        jitter: Add random jitter to each delay
        is_retryable: Predicate deciding whether a failure may be retried.
            Defaults to rejecting ``NonRetryableError``.
        description: Label used in log lines

    Returns:
        The operation's result

    Raises:
        The last error once attempts are exhausted, or the first
        non-retryable error immediately.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    should_retry = is_retryable or is_retryable_error

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not should_retry(e):
                logger.debug(f"{description} failed with non-retryable {type(e).__name__}")
                raise

            if attempt == max_attempts:
                logger.error(
                    f"{description} failed after {max_attempts} attempts: "
                    f"{type(e).__name__}: {e}"
                )
                raise

            delay = backoff_delay(attempt, base_delay, jitter)
            logger.warning(
                f"{description} failed (attempt {attempt}/{max_attempts}): "
                f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")
