"""Connection retry helper.

Only connection establishment is retried. NAT commands are never resent
automatically. The policy comes from each device's ``retries`` and
``retry_delay`` settings.
"""
import logging
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Upper bound for the backoff between connection attempts (seconds)
MAX_RETRY_WAIT = 30

# Common network exceptions to retry on
RETRYABLE_EXCEPTIONS = (
    ConnectionRefusedError,
    ConnectionResetError,
    TimeoutError,
    OSError,
    EOFError,
)


def retry_policy(
    attempts: int = 3,
    delay: float = 2,
    exceptions: tuple = RETRYABLE_EXCEPTIONS,
) -> AsyncRetrying:
    """Build an exponential-backoff policy.

    Args:
        attempts: Total attempts, at least one
        delay: Wait before the first retry; doubles after each failure
        exceptions: Exception types worth another attempt
    """
    delay = max(float(delay), 0)
    return AsyncRetrying(
        stop=stop_after_attempt(max(int(attempts), 1)),
        wait=wait_exponential(multiplier=delay, min=delay, max=max(delay, MAX_RETRY_WAIT)),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


async def with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    attempts: int = 3,
    delay: float = 2,
    exceptions: tuple = RETRYABLE_EXCEPTIONS,
    **kwargs: Any,
) -> T:
    """Await ``func(*args, **kwargs)``, retrying on transient network errors.

    The last error is re-raised once attempts are exhausted; errors outside
    ``exceptions`` propagate immediately.
    """
    async for attempt in retry_policy(attempts, delay, exceptions):
        with attempt:
            return await func(*args, **kwargs)
