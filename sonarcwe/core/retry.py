"""Bounded retry for primary fetches."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..constants import PRIMARY_FETCH_RETRIES, RETRY_BACKOFF_SECONDS
from .exceptions import RETRYABLE_ERRORS, APIError, AuthenticationError, RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Longer Retry-After hints are not worth waiting for inside one request
MAX_RETRY_AFTER_SECONDS = 5.0


def is_transient(error: BaseException) -> bool:
    """Network trouble, timeouts, throttling and 5xx responses."""
    if isinstance(error, AuthenticationError):
        return False
    if isinstance(error, RETRYABLE_ERRORS):
        return True
    return isinstance(error, APIError) and (error.status_code or 0) >= 500


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    description: str,
    retries: int = PRIMARY_FETCH_RETRIES,
    backoff: float = RETRY_BACKOFF_SECONDS,
) -> T:
    """Await func(), retrying up to `retries` times on transient errors.

    Non-transient errors and the last transient error propagate unchanged.
    """
    attempt = 0
    while True:
        try:
            return await func()
        except Exception as e:
            if attempt >= retries or not is_transient(e):
                raise
            attempt += 1
            delay = backoff * attempt
            if isinstance(e, RateLimitError) and e.retry_after:
                delay = max(delay, min(e.retry_after, MAX_RETRY_AFTER_SECONDS))
            logger.warning(f"{description} failed ({e}); retry {attempt}/{retries} in {delay}s")
            await asyncio.sleep(delay)
