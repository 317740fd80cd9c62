"""
Backoff and retry helpers.

Rate-limit backoff for remote fetches uses ``calculate_backoff``; batch
writes to the store are retried with tenacity before being dead-lettered.
"""

import logging
import random

from sqlalchemy.exc import DBAPIError, OperationalError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


def calculate_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True
) -> float:
    """
    Seconds to wait before 429 retry number ``attempt`` (0-based).

    Grows as ``base_delay * exponential_base ** attempt`` up to ``max_delay``;
    with ``jitter`` the result is scaled into [0.5, 1.0] of that value so
    concurrent stages do not retry in lockstep.

    Example:
        >>> calculate_backoff(0, jitter=False)
        1.0
        >>> calculate_backoff(3, jitter=False)
        8.0
    """
    delay = min(base_delay * (exponential_base ** attempt), max_delay)

    if jitter:
        delay = delay * (0.5 + random.random() * 0.5)

    return delay


def is_transient_write_error(exception: BaseException) -> bool:
    """
    Whether a failed store write is worth retrying.

    Operational errors (lock timeouts, serialization failures, dropped
    connections that the pool can replace) are transient; integrity and
    programming errors are not.
    """
    if isinstance(exception, OperationalError):
        return True
    if isinstance(exception, DBAPIError) and exception.connection_invalidated:
        return True
    return False


def write_retrying(attempts: int, max_wait: float = 10.0) -> AsyncRetrying:
    """
    Build the retry policy used around batch writes.

    Example:
        async for attempt in write_retrying(3):
            with attempt:
                await repo.upsert_many(rows)
    """
    return AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.5, min=0, max=max_wait),
        retry=retry_if_exception(is_transient_write_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
