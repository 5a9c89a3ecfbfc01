# File: parkeazy/infrastructure/resilience.py
"""
Retry policy for bulk reads against the backing store

Each attempt runs on a worker thread with its own timeout. Timeouts and
store errors are retried with exponential back-off; once the retries are
used up the caller gets the fallback value instead of an exception.
Writes never go through here.

A timed-out attempt cannot be interrupted: its worker thread is abandoned and
runs to completion in the background, keeping any store lock it holds until
then. Units of work that wait on such a lock give up with
BackingStoreTimeoutError after their own lock timeout.
"""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Callable, Optional, Tuple, Type, TypeVar
import logging
import time

from sqlalchemy.exc import SQLAlchemyError

from ..domain.exceptions import BackingStoreTimeoutError


R = TypeVar('R')

MAX_RETRIES = 2
BASE_TIMEOUT_SECONDS = 12.0
TIMEOUT_MULTIPLIER = 1.5
BACKOFF_BASE_SECONDS = 1.0

RETRYABLE_ERRORS: Tuple[Type[BaseException], ...] = (BackingStoreTimeoutError, SQLAlchemyError)

logger = logging.getLogger(__name__)


class RetryPolicy:
    """Timeout and back-off schedule for one kind of read"""

    def __init__(
        self,
        max_retries: int = MAX_RETRIES,
        base_timeout: float = BASE_TIMEOUT_SECONDS,
        timeout_multiplier: float = TIMEOUT_MULTIPLIER,
        backoff_base: float = BACKOFF_BASE_SECONDS,
        sleep: Callable[[float], None] = time.sleep
    ):
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        self.max_retries = max_retries
        self.base_timeout = base_timeout
        self.timeout_multiplier = timeout_multiplier
        self.backoff_base = backoff_base
        self.sleep = sleep

    def timeout_for(self, attempt: int) -> float:
        """Attempt 0 waits base_timeout, each retry 1.5x longer"""
        return self.base_timeout * (self.timeout_multiplier ** attempt)

    def backoff_for(self, attempt: int) -> float:
        """Pause after failed attempt n: 1s, 2s, 4s, ..."""
        return self.backoff_base * (2 ** attempt)

    def run(self, operation: Callable[[], R], fallback: Callable[[], R], label: str = "read") -> R:
        """Run operation under this policy, returning fallback() on exhaustion"""
        attempts = self.max_retries + 1
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="parkeazy-read")
        try:
            for attempt in range(attempts):
                timeout = self.timeout_for(attempt)
                future = executor.submit(operation)
                try:
                    return future.result(timeout=timeout)
                except FutureTimeoutError:
                    future.cancel()
                    error: BaseException = BackingStoreTimeoutError(
                        f"{label} timed out after {timeout:.1f}s"
                    )
                except RETRYABLE_ERRORS as e:
                    error = e

                if attempt < attempts - 1:
                    delay = self.backoff_for(attempt)
                    logger.warning(
                        f"{label} failed (attempt {attempt + 1}/{attempts}): {error}; retrying in {delay:.1f}s"
                    )
                    self.sleep(delay)
                else:
                    logger.error(f"{label} failed after {attempts} attempts: {error}; using fallback")
        finally:
            executor.shutdown(wait=False)

        return fallback()


def fetch_with_retry(
    operation: Callable[[], R],
    fallback: Callable[[], R],
    policy: Optional[RetryPolicy] = None,
    label: str = "read"
) -> R:
    """Run a bulk read with the default policy unless one is given"""
    return (policy or RetryPolicy()).run(operation, fallback, label)
