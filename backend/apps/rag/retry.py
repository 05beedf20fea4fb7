"""
Retry utilities with exponential backoff.

Provides bounded retries with jitter for provider calls made while
building the per-request index.
"""
import time
import random
import logging
from typing import Callable, Type, Tuple, Optional

import httpx

logger = logging.getLogger(__name__)


class RetryExhausted(Exception):
    """Raised when all retries have been exhausted."""

    def __init__(self, message: str, attempts: int, last_exception: Exception):
        super().__init__(message)
        self.attempts = attempts
        self.last_exception = last_exception


# Retry configuration for document embedding (index build)
# Kept short: every retry delays the first streamed token.
EMBEDDING_RETRY_CONFIG = {
    'max_retries': 2,        # Total 3 attempts
    'initial_backoff': 0.5,
    'backoff_multiplier': 2.0,
    'max_backoff': 4.0,
    'jitter_percent': 0.25,  # ±25%
}


def calculate_backoff(
    attempt: int,
    initial_backoff: float,
    backoff_multiplier: float,
    max_backoff: float,
    jitter_percent: float
) -> float:
    """
    Calculate backoff time with exponential increase and jitter.

    Args:
        attempt: Current retry attempt (0-indexed)
        initial_backoff: Base backoff in seconds
        backoff_multiplier: Exponential multiplier
        max_backoff: Maximum backoff cap
        jitter_percent: Random jitter range (0.25 = ±25%)

    Returns:
        Backoff time in seconds
    """
    backoff = initial_backoff * (backoff_multiplier ** attempt)
    backoff = min(backoff, max_backoff)

    jitter_range = backoff * jitter_percent
    backoff += random.uniform(-jitter_range, jitter_range)

    return max(0.0, backoff)


def is_retriable_error(exception: Exception) -> bool:
    """
    Determine if an exception is retriable.

    Provider errors carry an explicit ``retriable`` flag; that wins.
    Otherwise transport errors and 5xx/429 responses are retriable,
    anything else is not.
    """
    flag = getattr(exception, 'retriable', None)
    if flag is not None:
        return bool(flag)

    if isinstance(exception, (httpx.TimeoutException, httpx.TransportError)):
        return True

    if isinstance(exception, httpx.HTTPStatusError):
        status = exception.response.status_code
        return status == 429 or status >= 500

    return False


def retry_with_backoff(
    func: Callable,
    config: dict,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[int, Exception, float], None]] = None
):
    """
    Execute a function with retry and exponential backoff.

    Args:
        func: Callable to execute
        config: Retry configuration dict
        exceptions: Tuple of exception types to catch
        on_retry: Optional callback(attempt, exception, backoff) called before each retry

    Returns:
        Result of func() if successful

    Raises:
        RetryExhausted: If all retries fail
        Exception: If a non-retriable exception is raised
    """
    max_retries = config['max_retries']
    attempt = 0
    last_exception = None

    while attempt <= max_retries:
        try:
            return func()
        except exceptions as e:
            last_exception = e

            if not is_retriable_error(e):
                logger.debug(f"Non-retriable error on attempt {attempt + 1}: {e}")
                raise

            if attempt >= max_retries:
                break

            backoff = calculate_backoff(
                attempt,
                config['initial_backoff'],
                config['backoff_multiplier'],
                config['max_backoff'],
                config['jitter_percent']
            )

            logger.warning(
                f"Retriable error on attempt {attempt + 1}/{max_retries + 1}: {e}. "
                f"Retrying in {backoff:.2f}s"
            )

            if on_retry:
                on_retry(attempt, e, backoff)

            time.sleep(backoff)
            attempt += 1

    raise RetryExhausted(
        f"All {max_retries + 1} attempts failed. Last error: {last_exception}",
        attempts=attempt + 1,
        last_exception=last_exception
    )
