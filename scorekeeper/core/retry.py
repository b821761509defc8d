"""
Bounded exponential backoff for storage round-trips.

Only TransientStorageError is retried; anything else propagates on the
first attempt.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional, TypeVar

from scorekeeper.core.config import settings
from scorekeeper.core.errors import TransientStorageError
from scorekeeper.core.logging import log_event

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    initial_interval: timedelta
    backoff_coefficient: float
    maximum_interval: timedelta
    maximum_attempts: int

    def interval_for(self, attempt: int) -> timedelta:
        """Delay after the given (1-based) failed attempt."""
        seconds = self.initial_interval.total_seconds() * (self.backoff_coefficient ** (attempt - 1))
        return timedelta(seconds=min(seconds, self.maximum_interval.total_seconds()))


def default_retry_policy() -> RetryPolicy:
    """Storage retry policy built from settings."""
    return RetryPolicy(
        initial_interval=timedelta(seconds=settings.STORAGE_RETRY_INITIAL_INTERVAL),
        backoff_coefficient=settings.STORAGE_RETRY_BACKOFF_COEFFICIENT,
        maximum_interval=timedelta(seconds=settings.STORAGE_RETRY_MAX_INTERVAL),
        maximum_attempts=max(1, settings.STORAGE_RETRY_MAX_ATTEMPTS),
    )


def call_with_retry(
    fn: Callable[[], T],
    *,
    policy: Optional[RetryPolicy] = None,
    operation: str = "storage",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Invoke fn, retrying on TransientStorageError until attempts run out.

    The last TransientStorageError is re-raised once the policy is exhausted.
    """
    p = policy or default_retry_policy()
    attempt = 1
    while True:
        try:
            return fn()
        except TransientStorageError as exc:
            if attempt >= p.maximum_attempts:
                log_event(
                    "warning",
                    "storage.retry.exhausted",
                    error_code=exc.code,
                    extra={"operation": operation, "attempts": attempt},
                )
                raise
            delay = p.interval_for(attempt)
            log_event(
                "info",
                "storage.retry",
                error_code=exc.code,
                extra={"operation": operation, "attempt": attempt, "delay_s": delay.total_seconds()},
            )
            sleep(delay.total_seconds())
            attempt += 1
