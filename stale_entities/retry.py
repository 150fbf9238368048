"""
Retry logic with exponential backoff for transient store failures.

SQLite reports lock contention and short outages as OperationalError; the
stores wrap their operations with exponential_backoff so a busy database does
not fail a whole tick.
"""

import time
import functools
from typing import Callable, Type, Tuple, Optional


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""
    pass


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
):
    """
    Decorator for retrying functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts (0 = no retries)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential calculation (delay *= base)
        exceptions: Tuple of exceptions to catch and retry
        on_retry: Optional callback function(attempt, exception, delay)

    Example:
        @exponential_backoff(max_retries=3, base_delay=0.1, exceptions=(OperationalError,))
        def pending(session, job_id):
            return session.query(QueueItem).filter_by(job_id=job_id).all()
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            delay = base_delay

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_retries:
                        raise RetryError(
                            f"Failed after {max_retries + 1} attempts: {str(e)}"
                        ) from e

                    current_delay = min(delay, max_delay)
                    if on_retry:
                        on_retry(attempt + 1, e, current_delay)

                    time.sleep(current_delay)
                    delay *= exponential_base

        return wrapper
    return decorator


def is_transient_error(exception: Exception) -> bool:
    """
    Determine if a database error is likely transient and worth retrying.

    Args:
        exception: Exception to check

    Returns:
        True if the error looks like lock contention or a brief outage
    """
    error_str = str(exception).lower()

    transient_keywords = [
        'database is locked',
        'database table is locked',
        'database is busy',
        'disk i/o error',
        'unable to open database file',
        'timeout',
    ]

    return any(keyword in error_str for keyword in transient_keywords)
