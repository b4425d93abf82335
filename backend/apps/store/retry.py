"""
Retry utilities with exponential backoff.

Two bounded policies share one loop:
- STORE_RETRY_CONFIG: key-value store calls, 3 attempts, 300ms doubling
- GENERATION_RETRY_CONFIG: LLM generation, 3 attempts, 1s then 2s

A caller may also pass a deadline (a time.monotonic() value). No retry is
started whose backoff would end past it, so a turn stays within its time
budget.
"""
import time
import random
import logging
from typing import Callable, Type, Tuple, Optional

import httpx
import redis
import requests

logger = logging.getLogger(__name__)


class RetryExhausted(Exception):
    """Raised when all retries have been exhausted."""

    def __init__(self, message: str, attempts: int, last_exception: Exception):
        super().__init__(message)
        self.attempts = attempts
        self.last_exception = last_exception


# Retry configuration for key-value store operations
STORE_RETRY_CONFIG = {
    'max_retries': 2,        # Total 3 attempts (1 initial + 2 retries)
    'initial_backoff': 0.3,  # 300ms, doubling each attempt
    'backoff_multiplier': 2.0,
    'max_backoff': 5.0,
    'jitter_percent': 0.0,
}

# Retry configuration for LLM generation (chat turn)
GENERATION_RETRY_CONFIG = {
    'max_retries': 2,        # Total 3 attempts
    'initial_backoff': 1.0,  # 1s, then 2s
    'backoff_multiplier': 2.0,
    'max_backoff': 8.0,
    'jitter_percent': 0.0,
}

# Transport failures worth another attempt regardless of message
TRANSIENT_ERROR_TYPES = (
    redis.exceptions.ConnectionError,
    redis.exceptions.TimeoutError,
    redis.exceptions.BusyLoadingError,
    httpx.TransportError,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
)

# Matched against the lowercased message, in this order
RETRIABLE_PATTERNS = (
    'connection', 'timeout', 'timed out', 'temporarily unavailable',
    '500', '502', '503', '429', 'overloaded', 'busy', 'loading',
    'empty response',
)
NON_RETRIABLE_PATTERNS = (
    '400', '401', '403', '404', 'not configured', 'model not found',
    'blocked', 'invalid', 'wrongtype', 'not supported',
)


def calculate_backoff(
    attempt: int,
    initial_backoff: float,
    backoff_multiplier: float,
    max_backoff: float,
    jitter_percent: float
) -> float:
    """
    Backoff for a 0-indexed attempt: initial * multiplier**attempt, capped,
    then spread by ±jitter_percent.
    """
    backoff = min(initial_backoff * (backoff_multiplier ** attempt), max_backoff)

    if jitter_percent:
        spread = backoff * jitter_percent
        backoff += random.uniform(-spread, spread)

    return max(0.0, backoff)


def is_retriable_error(exception: Exception) -> bool:
    """
    Decide whether another attempt could succeed.

    Connection problems, timeouts, 5xx/429 replies and busy backends are
    retried. Client errors (4xx), missing configuration, blocked prompts and
    WRONGTYPE replies are not. Anything unrecognized is retried.
    """
    if isinstance(exception, TRANSIENT_ERROR_TYPES):
        return True

    message = str(exception).lower()

    if any(pattern in message for pattern in RETRIABLE_PATTERNS):
        return True
    if any(pattern in message for pattern in NON_RETRIABLE_PATTERNS):
        return False

    return True


def retry_with_backoff(
    func: Callable,
    config: dict,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    deadline: Optional[float] = None,
):
    """
    Call func until it succeeds or the policy gives up.

    Args:
        func: Zero-argument callable
        config: One of the *_RETRY_CONFIG dicts
        exceptions: Exception types that count as failed attempts; anything
            else propagates untouched
        on_retry: Optional callback(attempt, exception, backoff) run before
            each sleep
        deadline: Optional time.monotonic() value retries must not overrun

    Returns:
        Result of func()

    Raises:
        RetryExhausted: When attempts (or the deadline) run out
        Exception: The original error when it is not retriable
    """
    attempts = config['max_retries'] + 1
    last_exception = None
    made = 0

    for attempt in range(attempts):
        made = attempt + 1
        try:
            return func()
        except exceptions as e:
            last_exception = e

        if not is_retriable_error(last_exception):
            logger.warning(f"Non-retriable error on attempt {made}: {last_exception}")
            raise last_exception

        if made == attempts:
            break

        backoff = calculate_backoff(
            attempt,
            config['initial_backoff'],
            config['backoff_multiplier'],
            config['max_backoff'],
            config['jitter_percent']
        )

        if deadline is not None and time.monotonic() + backoff >= deadline:
            logger.warning(f"Retry budget exceeded after attempt {made}: {last_exception}")
            break

        logger.warning(
            f"Retriable error on attempt {made}/{attempts}: {last_exception}. "
            f"Retrying in {backoff:.2f}s"
        )

        if on_retry:
            on_retry(attempt, last_exception, backoff)

        time.sleep(backoff)

    raise RetryExhausted(
        f"All {made} attempts failed. Last error: {last_exception}",
        attempts=made,
        last_exception=last_exception
    )
