# src/table_cutover/utils/retry.py

import time
import logging
from functools import wraps
from typing import Callable, Type, Tuple

logger = logging.getLogger(__name__)


def retry_with_backoff(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator that retries a function, waiting between attempts.

    Args:
        max_attempts: Total number of attempts, including the first one
        initial_delay: Delay in seconds before the second attempt
        backoff_factor: Multiplier for the delay after each attempt (1.0 keeps it fixed)
        exceptions: Tuple of exception types to catch and retry
        sleep: Function used to wait; replaceable in tests

    Example:
        @retry_with_backoff(max_attempts=3, initial_delay=2.0, backoff_factor=1.0)
        def insert():
            # Up to 3 attempts, 2s apart
            return destination.insert_rows(table, columns, rows)
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            delay = initial_delay

            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        logger.error(
                            f"'{func.__name__}' failed after {max_attempts} attempts. "
                            f"Last error: {e}"
                        )
                        raise

                    logger.warning(
                        f"Attempt {attempt}/{max_attempts} failed for '{func.__name__}': {e}. "
                        f"Retrying in {delay}s..."
                    )

                    if delay > 0:
                        sleep(delay)
                    delay *= backoff_factor

        return wrapper
    return decorator
