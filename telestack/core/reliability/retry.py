"""
Retry policy — bounded attempts with a fixed delay.

One policy type is shared by control-plane authentication and safe
directory removal.  A classifier decides whether an exception is worth
another attempt; anything it rejects propagates immediately.

No jitter and no exponential growth: the delay between attempts is
constant, matching the fixed readiness waits used elsewhere.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhausted(Exception):
    """All attempts failed with retryable errors."""

    def __init__(self, name: str, attempts: int, last_error: BaseException):
        super().__init__(f"{name}: gave up after {attempts} attempt(s): {last_error}")
        self.name = name
        self.attempts = attempts
        self.last_error = last_error


def retry_on(*types: type[BaseException]) -> Callable[[BaseException], bool]:
    """Build a classifier that retries on the given exception types."""

    def _classify(exc: BaseException) -> bool:
        return isinstance(exc, types)

    return _classify


@dataclass(frozen=True)
class RetryPolicy:
    """Run a callable up to ``attempts`` times.

    Args:
        name: Label used in log lines.
        attempts: Total number of tries (>= 1).
        delay: Seconds to sleep between failed attempts.
        is_retryable: Classifier for exceptions. Non-retryable errors
            are re-raised on the spot.
    """

    name: str
    attempts: int = 3
    delay: float = 2.0
    is_retryable: Callable[[BaseException], bool] = field(
        default=retry_on(Exception), compare=False,
    )

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError(f"attempts must be >= 1, got {self.attempts}")
        if self.delay < 0:
            raise ValueError(f"delay must be >= 0, got {self.delay}")

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Invoke ``fn`` under this policy.

        Raises:
            RetryExhausted: Every attempt failed with a retryable error.
            Exception: The first non-retryable error, unchanged.
        """
        last_error: BaseException | None = None
        for attempt in range(1, self.attempts + 1):
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                if not self.is_retryable(e):
                    raise
                last_error = e
                logger.debug(
                    "%s: attempt %d/%d failed: %s",
                    self.name, attempt, self.attempts, e,
                )
                if attempt < self.attempts:
                    time.sleep(self.delay)

        if last_error is None:
            raise RuntimeError(f"{self.name}: no attempt was made")
        logger.warning("%s: exhausted %d attempt(s)", self.name, self.attempts)
        raise RetryExhausted(self.name, self.attempts, last_error)
