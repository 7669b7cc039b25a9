"""Retry utilities for HTTP operations with exponential backoff"""

import logging
import random
import time
from enum import Enum
from functools import wraps
from typing import Callable, List, Optional, Tuple, TypeVar

import requests

from ghcr_cleanup.error_utils import ActionableError, ErrorCategory, ManifestNotFoundError, PackageNotFoundError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryableErrorType(Enum):
    """Types of errors that should trigger retries"""

    NETWORK = "network"  # Connection errors, timeouts
    TEMPORARY = "temporary"  # 5xx errors
    PERMANENT = "permanent"  # 4xx errors, auth failures, exhausted rate limits


def is_retryable_error(error: Exception) -> Tuple[bool, RetryableErrorType]:
    """Determine if an error is retryable and what type it is

    Rate limiting is not retried here: the GitHub client applies its own
    retry-once policy before the error reaches this layer.

    Args:
        error: The exception that occurred

    Returns:
        Tuple of (is_retryable, error_type)
    """
    if isinstance(error, (ManifestNotFoundError, PackageNotFoundError)):
        return False, RetryableErrorType.PERMANENT

    if isinstance(error, ActionableError):
        if error.category == ErrorCategory.CONNECTION:
            return True, RetryableErrorType.NETWORK
        return False, RetryableErrorType.PERMANENT

    if isinstance(error, (requests.ConnectionError, requests.Timeout)):
        return True, RetryableErrorType.NETWORK

    if isinstance(error, requests.HTTPError):
        status = error.response.status_code if error.response is not None else None
        if status is not None and status >= 500:
            return True, RetryableErrorType.TEMPORARY
        return False, RetryableErrorType.PERMANENT

    return False, RetryableErrorType.PERMANENT


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_errors: Optional[List[RetryableErrorType]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Callable:
    """Decorator for retrying functions with exponential backoff

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        initial_delay: Initial delay in seconds before first retry (default: 1.0)
        max_delay: Maximum delay between retries in seconds (default: 60.0)
        exponential_base: Base for exponential backoff (default: 2.0)
        jitter: Add random jitter to prevent thundering herd (default: True)
        retryable_errors: List of error types to retry (None = retry all retryable types)
        sleep: Sleep function, overridable for tests

    Returns:
        Decorator function
    """
    if retryable_errors is None:
        retryable_errors = [RetryableErrorType.NETWORK, RetryableErrorType.TEMPORARY]

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            for attempt in range(max_retries + 1):
                try:
                    result = func(*args, **kwargs)
                    if attempt > 0:
                        logger.info(f"{func.__name__} succeeded on attempt {attempt + 1}")
                    return result

                except Exception as e:
                    is_retryable, error_type = is_retryable_error(e)

                    if not is_retryable or error_type not in retryable_errors:
                        logger.debug(f"{func.__name__} failed with non-retryable error ({error_type.value}): {e}")
                        raise

                    if attempt >= max_retries:
                        logger.error(
                            f"{func.__name__} failed after {max_retries + 1} attempts. "
                            f"Last error ({error_type.value}): {e}"
                        )
                        raise

                    delay = min(initial_delay * (exponential_base**attempt), max_delay)

                    if jitter:
                        jitter_amount = delay * 0.1  # 10% jitter
                        delay = delay + random.uniform(-jitter_amount, jitter_amount)
                        delay = max(0.1, delay)

                    logger.warning(
                        f"{func.__name__} failed on attempt {attempt + 1}/{max_retries + 1} "
                        f"({error_type.value} error: {e}). "
                        f"Retrying in {delay:.2f}s..."
                    )

                    sleep(delay)

            raise RuntimeError(f"{func.__name__} exhausted all retries")

        return wrapper

    return decorator
