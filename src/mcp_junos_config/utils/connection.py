"""Retry helpers with exponential backoff."""
import logging
from typing import Callable

from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
)

from ..errors import TransportError

logger = logging.getLogger(__name__)


def is_transient(error: BaseException) -> bool:
    """Transport failures worth another attempt (timeouts, dropped connections)."""
    return isinstance(error, TransportError) and error.transient


def backoff_retrying(
    max_attempts: int,
    should_retry: Callable[[BaseException], bool] = is_transient,
    min_wait: float = 0.5,
    max_wait: float = 10,
) -> AsyncRetrying:
    """Build an AsyncRetrying loop for call sites that retry a whole block.

    Usage:
        async for attempt in backoff_retrying(3, is_transient):
            with attempt:
                await run_once()

    Args:
        max_attempts: Total attempts including the first
        should_retry: Predicate deciding whether an exception is retryable
        min_wait: Minimum wait between attempts (seconds)
        max_wait: Maximum wait between attempts (seconds)
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
        retry=retry_if_exception(should_retry),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
