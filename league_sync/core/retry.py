"""
Retry with exponential backoff for calls to the external platform.

The delay before attempt n (n >= 2) is base_delay * 2 ** (n - 2), capped at
max_delay; the attempt count is a hard upper bound.
"""
import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from league_sync.exceptions import ExternalSourceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    ExternalSourceError,
    httpx.HTTPStatusError,
    httpx.RequestError,
    httpx.TimeoutException,
)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        f"Attempt {retry_state.attempt_number} failed ({exc}); "
        f"retrying in {retry_state.next_action.sleep:.2f}s"
    )


def backoff_retrying(
    attempts: int,
    base_delay: float,
    max_delay: float,
    retry_on: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS,
) -> AsyncRetrying:
    """
    Build a tenacity AsyncRetrying with the service's backoff policy.

    Args:
        attempts: Maximum number of attempts (at least 1)
        base_delay: Delay in seconds before the first retry
        max_delay: Upper bound on any single delay in seconds
        retry_on: Exception types that count as transient

    Returns:
        Configured AsyncRetrying that re-raises the last error
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential(multiplier=base_delay, min=0, max=max_delay),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_retry,
        reraise=True,
    )


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
) -> T:
    """
    Await `operation()` until it succeeds or the attempts run out.

    Non-transient exceptions propagate immediately. After the last attempt
    the final transient error is raised unchanged.
    """
    async for attempt in backoff_retrying(attempts, base_delay, max_delay):
        with attempt:
            return await operation()
    raise RuntimeError("retry loop exited without a result")  # pragma: no cover
