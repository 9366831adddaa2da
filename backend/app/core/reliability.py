"""
Reliability Utilities.

Circuit breaker guarding calls into external collaborators (fleet directory).
"""

import time
from typing import Callable, Any

from backend.app.core.config import settings


class CircuitOpenError(Exception):
    pass


class CircuitBreaker:
    """
    Simple Circuit Breaker implementation.
    If 'failure_threshold' failures occur within 'reset_timeout',
    the circuit opens and rejects calls for 'reset_timeout' seconds.
    Failures listed in 'ignore' (expected domain outcomes) do not count.
    """
    def __init__(self, failure_threshold: int = 5, reset_timeout: int = 60, ignore: tuple = ()):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.ignore = ignore
        self.failures = 0
        self.last_failure_time = 0
        self.state = "CLOSED" # CLOSED, OPEN, HALF_OPEN

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        if self.state == "OPEN":
            if time.time() - self.last_failure_time > self.reset_timeout:
                self.state = "HALF_OPEN"
            else:
                raise CircuitOpenError("Circuit is OPEN")

        try:
            result = await func(*args, **kwargs)
        except self.ignore:
            raise
        except Exception:
            self.record_failure()
            raise

        if self.state == "HALF_OPEN" or self.failures:
            self.reset_state()
        return result

    def record_failure(self):
        self.failures += 1
        self.last_failure_time = time.time()
        if self.failures >= self.failure_threshold:
            self.state = "OPEN"

    def reset_state(self):
        self.failures = 0
        self.state = "CLOSED"


# Global instance for fleet directory lookups
fleet_circuit_breaker = CircuitBreaker(
    failure_threshold=settings.fleet_failure_threshold,
    reset_timeout=settings.fleet_reset_timeout,
)
