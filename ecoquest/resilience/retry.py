"""Retry logic with exponential backoff and jitter

Implements retry logic that:
1. Only retries transient errors (timeouts, rate limits, 5xx, dropped DB connections)
2. Uses exponential backoff with jitter to prevent thundering herd
3. Gives up after max retries to avoid infinite loops
"""

import asyncio
import random
import logging
from typing import Callable, Any, TypeVar
import httpx
import psycopg

from ecoquest.exceptions import ConnectionError, StorageError
from ecoquest.observability.metrics import record_retry

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Retry configuration
MAX_RETRIES = 3
BASE_DELAY = 0.5  # seconds
MAX_DELAY = 10.0  # seconds
JITTER = 0.1  # 10% random jitter

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)


def is_retryable_error(exc: Exception) -> bool:
    """
    Determine if error is transient and should be retried.

    Retryable errors:
    - Network timeouts
    - HTTP 429 (rate limit)
    - HTTP 500/502/503/504 (server errors)
    - Dropped or refused database connections

    Non-retryable errors:
    - HTTP 4xx client errors
    - Query errors (constraint violations, bad SQL)
    - Missing records

    Args:
        exc: The exception to check

    Returns:
        True if error should be retried, False otherwise
    """
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES

    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return True

    if isinstance(exc, psycopg.OperationalError):
        return True

    # Our wrapped errors
    if isinstance(exc, ConnectionError):
        return True

    if isinstance(exc, StorageError):
        if exc.status_code is not None:
            return exc.status_code in RETRYABLE_STATUS_CODES
        return isinstance(exc.cause, (httpx.TimeoutException, httpx.NetworkError))

    # Default: don't retry unknown errors
    return False


def calculate_backoff(attempt: int) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Formula: delay = min(BASE_DELAY * (2 ** attempt), MAX_DELAY) + jitter
    Jitter is random value between -10% and +10% of delay

    Args:
        attempt: The retry attempt number (0-indexed)

    Returns:
        Delay in seconds

    Example:
        Attempt 0: ~0.5s
        Attempt 1: ~1s
        Attempt 2: ~2s
    """
    delay = min(BASE_DELAY * (2 ** attempt), MAX_DELAY)

    jitter_amount = random.uniform(-JITTER * delay, JITTER * delay)
    final_delay = delay + jitter_amount

    return max(final_delay, 0.0)


async def retry_with_backoff(
    func: Callable[..., T],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    target: str = "ledger",
    **kwargs: Any
) -> T:
    """
    Retry async function with exponential backoff.

    Only retries transient errors. Gives up after max_retries attempts.

    Args:
        func: Async function to retry
        max_retries: Maximum number of retry attempts (default: 3)
        target: Metrics label for the backend being retried
        *args, **kwargs: Arguments to pass to func

    Returns:
        Result from func

    Raises:
        Last exception if all retries exhausted or non-retryable error

    Example:
        await retry_with_backoff(store.save_snapshot, snapshot, max_retries=3)
    """
    name = getattr(func, "__name__", repr(func))

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)

        except Exception as e:
            if attempt == max_retries:
                logger.error(
                    f"[RETRY] All {max_retries} retries exhausted for {name}"
                )
                raise

            if not is_retryable_error(e):
                logger.warning(
                    f"[RETRY] Non-retryable error for {name}: "
                    f"{type(e).__name__}: {e}"
                )
                raise

            backoff = calculate_backoff(attempt)
            record_retry(target)

            logger.info(
                f"[RETRY] Attempt {attempt + 1}/{max_retries} for {name} "
                f"after {backoff:.2f}s (error: {type(e).__name__})"
            )

            await asyncio.sleep(backoff)

    raise RuntimeError("Retry logic failed unexpectedly")

