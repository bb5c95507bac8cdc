"""Circuit breaker for gateway calls."""
import time
from typing import Callable, Optional

import structlog

from order_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class CircuitBreaker:
    """
    Stops charging a gateway that keeps failing at the transport level.

    closed -> open after ``failure_threshold`` consecutive failures;
    open -> half_open once ``timeout`` seconds have passed;
    half_open -> closed after ``success_threshold`` successes, or back to
    open on the next failure.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: float = 30.0,
        success_threshold: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = "closed"  # closed, open, half_open
        self._clock = clock

    def allow_request(self) -> bool:
        """Whether a call may go out now. Moves open -> half_open on timeout."""
        if self.state == "open":
            if (
                self.last_failure_time is not None
                and self._clock() - self.last_failure_time >= self.timeout
            ):
                self.state = "half_open"
                self.success_count = 0
                metrics.set_circuit_breaker_state(self.state)
                logger.info("circuit_breaker_half_open")
            else:
                return False
        return True

    def on_success(self) -> None:
        """Record successful call."""
        self.failure_count = 0
        if self.state == "half_open":
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                self.state = "closed"
                metrics.set_circuit_breaker_state(self.state)
                logger.info("circuit_breaker_closed")

    def on_failure(self) -> None:
        """Record failed call."""
        self.failure_count += 1
        self.last_failure_time = self._clock()
        if self.state == "half_open" or self.failure_count >= self.failure_threshold:
            if self.state != "open":
                logger.warning("circuit_breaker_opened", failure_count=self.failure_count)
            self.state = "open"
            metrics.set_circuit_breaker_state(self.state)
