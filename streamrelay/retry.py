"""Retry policy with capped exponential backoff."""

import logging
import random
import time
from typing import Callable, Optional, TypeVar

from .exceptions import ConnectionReset, SourceTimeout, UploadError, UploadTimeout

T = TypeVar('T')

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({408, 413, 429})


def is_retryable_status(status: int) -> bool:
    return status >= 500 or status in RETRYABLE_STATUSES


def is_retryable(error: Exception) -> bool:
    """Only destination-side transient failures are worth another attempt."""
    if isinstance(error, SourceTimeout):
        return False
    if isinstance(error, (ConnectionReset, UploadTimeout)):
        return True
    if isinstance(error, UploadError):
        return error.retryable
    return False


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds from a Retry-After header; HTTP-date values are ignored."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return max(seconds, 0.0)


class RetryPolicy:
    """Configurable retry policy for the destination upload."""

    def __init__(
        self,
        max_attempts: int = 5,
        backoff_seconds: float = 2.0,
        max_backoff: float = 60.0,
        jitter: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.max_backoff = max_backoff
        self.jitter = jitter
        self._sleep = sleep

    def execute(self, func: Callable[[int], T]) -> T:
        """
        Call func(attempt) until it succeeds or fails with a non-retryable error.

        Args:
            func: Callable receiving the 1-based attempt number

        Returns:
            Function result

        Raises:
            The last exception once attempts are exhausted
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return func(attempt)
            except Exception as e:
                if attempt == self.max_attempts or not is_retryable(e):
                    raise

                wait_time = self._calculate_backoff(attempt, getattr(e, 'retry_after', None))
                logger.warning(
                    f"Attempt {attempt}/{self.max_attempts} failed: {e}; "
                    f"retrying in {wait_time:.1f}s"
                )
                self._sleep(wait_time)

        raise RuntimeError("Retry logic failed unexpectedly")

    def _calculate_backoff(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Backoff for the given attempt; a server hint wins but is still capped."""
        if retry_after is not None:
            return min(retry_after, self.max_backoff)

        wait_time = self.backoff_seconds * (2 ** (attempt - 1))
        if self.jitter:
            wait_time = wait_time * (0.5 + random.random())
        return min(wait_time, self.max_backoff)
