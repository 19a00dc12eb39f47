"""Circuit breaker guarding Admin API calls."""

import logging
import time
from typing import Optional

logger = logging.getLogger(__name__)


class CircuitBreakerOpen(Exception):
    """Raised when calls are refused because the Admin API kept failing."""


class CircuitBreaker:
    """Opens after ``failure_threshold`` consecutive failures.

    While open every call is refused with :class:`CircuitBreakerOpen`. After
    ``reset_timeout_seconds`` one trial call is let through; its outcome
    closes the breaker again or re-opens it.
    """

    def __init__(self, failure_threshold: int = 3, reset_timeout_seconds: float = 30):
        self.failure_threshold = failure_threshold
        self.reset_timeout_seconds = reset_timeout_seconds
        self.failure_count = 0
        self.opened_at: Optional[float] = None

    @property
    def state(self) -> str:
        if self.opened_at is None:
            return "closed"
        if time.monotonic() - self.opened_at >= self.reset_timeout_seconds:
            return "half_open"
        return "open"

    def guard(self) -> None:
        if self.state == "open":
            raise CircuitBreakerOpen(
                f"Admin API unavailable after {self.failure_count} consecutive failures"
            )

    def record_success(self) -> None:
        if self.opened_at is not None:
            logger.info("Circuit breaker closed")
        self.failure_count = 0
        self.opened_at = None

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.state == "half_open" or self.failure_count >= self.failure_threshold:
            if self.state != "open":
                logger.warning("Circuit breaker opened after %d failures", self.failure_count)
            self.opened_at = time.monotonic()
