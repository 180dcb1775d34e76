"""Retry logic with exponential backoff for transient failures.

This module provides retry functionality for listing requests, with
error classification to distinguish between transient failures (worth
retrying) and permanent failures (retry won't help).

Transient (Retryable):
- Connection errors and timeouts
- Server errors (5xx)
- Throttling (429, SlowDown and similar codes)

Permanent (Not Retryable):
- Client errors (4xx except throttling)
- Signing and decode errors
- Cancellation
"""

import logging
import random
import time
from typing import Any, Callable, Optional

from s3versions.errors import ApiError, Cancelled, RetryExhausted, TransportError
from s3versions.transport import CancelToken

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 4
DEFAULT_BASE_DELAY = 0.5
DEFAULT_MAX_DELAY = 8.0


def is_retryable_error(error: Exception) -> bool:
    """Determine if an error is transient and worth retrying.

    Args:
        error: The exception that was raised.

    Returns:
        True if the error is transient and should trigger a retry,
        False if the error is permanent and retrying won't help.
    """
    if isinstance(error, Cancelled):
        return False

    # Network-level errors are transient
    if isinstance(error, TransportError) and not isinstance(error, RetryExhausted):
        return True

    if isinstance(error, ApiError):
        return error.is_throttling or error.is_server_error

    return False


def backoff_delay(
    attempt: int,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: bool = True,
) -> float:
    """Delay before retry number ``attempt`` (1-indexed).

    The ceiling doubles with each attempt up to ``max_delay``; with jitter
    the actual delay is drawn uniformly below the ceiling.
    """
    ceiling = min(max_delay, base_delay * (2 ** (attempt - 1)))
    if jitter:
        return random.uniform(0, ceiling)
    return ceiling


def retry_with_backoff(
    func: Callable[..., Any],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: bool = True,
    cancel_token: Optional[CancelToken] = None,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    args: tuple = (),
    kwargs: Optional[dict] = None,
) -> Any:
    """Execute a function with retry logic and exponential backoff.

    ``func`` is called afresh on every attempt, so anything it computes
    per call (such as the signing timestamp) is recomputed.

    Args:
        func: The function to execute.
        max_attempts: Maximum number of attempts (including first try).
        base_delay: Delay ceiling after the first failure, in seconds.
        max_delay: Upper bound for any single delay.
        jitter: Draw each delay uniformly below its ceiling.
        cancel_token: Checked before each attempt and while waiting.
        on_retry: Called with (attempt, error, delay) before each wait.
        args: Positional arguments to pass to func.
        kwargs: Keyword arguments to pass to func.

    Returns:
        The return value of func if successful.

    Raises:
        RetryExhausted: If all attempts fail with retryable errors.
        Cancelled: If the cancel token fires.
        Exception: If a non-retryable error occurs, it's raised immediately.
    """
    if kwargs is None:
        kwargs = {}

    last_error: Optional[Exception] = None

    for attempt in range(1, max_attempts + 1):
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        try:
            return func(*args, **kwargs)
        except Exception as e:
            last_error = e

            # Permanent error - raise immediately
            if not is_retryable_error(e):
                raise

            if attempt >= max_attempts:
                raise RetryExhausted(
                    f"Operation failed after {max_attempts} attempts: {e}",
                    attempts=max_attempts,
                    last_error=last_error,
                ) from last_error

            delay = backoff_delay(attempt, base_delay, max_delay, jitter)
            logger.warning(
                "Attempt %d/%d failed (%s); retrying in %.2fs",
                attempt, max_attempts, e, delay,
            )
            if on_retry is not None:
                on_retry(attempt, e, delay)

            if cancel_token is not None:
                cancel_token.wait(delay)
            else:
                time.sleep(delay)

    raise RetryExhausted(
        f"Operation failed after {max_attempts} attempts",
        attempts=max_attempts,
        last_error=last_error,
    )
