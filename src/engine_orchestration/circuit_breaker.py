"""Circuit breaker for engines that keep failing across runs.

When enabled, an engine whose failures reach the threshold is short-circuited
to a ``circuit_open`` outcome until the recovery timeout elapses.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Callable, Dict


class CircuitBreakerState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Failure counter for a single engine."""
    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout_seconds = recovery_timeout_seconds
        self._clock = clock
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.opened_at = 0.0

    def allow_request(self) -> bool:
        """Check whether the engine may be invoked."""
        if self.state == CircuitBreakerState.OPEN:
            if (self._clock() - self.opened_at) >= self.recovery_timeout_seconds:
                self.state = CircuitBreakerState.HALF_OPEN
                return True
            return False
        return True

    def record_success(self) -> None:
        """Reset the failure count and close the circuit."""
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0

    def record_failure(self) -> None:
        """Count a failure; a failed half-open probe reopens immediately."""
        self.failure_count += 1
        if (
            self.state == CircuitBreakerState.HALF_OPEN
            or self.failure_count >= self.failure_threshold
        ):
            self.state = CircuitBreakerState.OPEN
            self.opened_at = self._clock()


class CircuitBreakerManager:
    """Lazily creates one breaker per engine name."""

    # pylint: disable=too-few-public-methods
    def __init__(
        self,
        failure_threshold: int,
        recovery_timeout_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout_seconds
        self._clock = clock

    def get(self, engine: str) -> CircuitBreaker:
        br = self._breakers.get(engine)
        if not br:
            br = CircuitBreaker(self._failure_threshold, self._recovery_timeout, self._clock)
            self._breakers[engine] = br
        return br

    def states(self) -> Dict[str, str]:
        return {name: br.state.value for name, br in self._breakers.items()}
