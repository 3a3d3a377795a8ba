"""Generic retry-with-exponential-backoff policy for remote calls."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _never_retry(_: BaseException) -> bool:
    return False


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry a callable while `is_retryable` accepts its error, up to `max_attempts` calls.

    The delay before attempt ``n + 1`` is ``base_delay_seconds * multiplier ** (n - 1)``,
    capped at ``max_delay_seconds``. Errors that are not retryable, and the last error
    once attempts are exhausted, propagate unchanged.
    """

    max_attempts: int = 5
    base_delay_seconds: float = 1.0
    multiplier: float = 2.0
    max_delay_seconds: float = 32.0
    is_retryable: Callable[[BaseException], bool] = _never_retry
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def delay_for(self, attempt: int) -> float:
        """Delay after failed attempt number `attempt` (1-based)."""

        delay = self.base_delay_seconds * (self.multiplier ** (attempt - 1))
        return min(delay, self.max_delay_seconds)

    def delays(self) -> list[float]:
        """Full backoff schedule between consecutive attempts."""

        return [self.delay_for(attempt) for attempt in range(1, self.max_attempts)]

    def call(self, operation: Callable[[], T], *, description: str = "operation") -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return operation()
            except Exception as error:
                if attempt >= self.max_attempts or not self.is_retryable(error):
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                    description,
                    attempt,
                    self.max_attempts,
                    error,
                    delay,
                )
                self.sleep(delay)
