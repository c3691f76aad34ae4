# agenda_display/circuit_breaker.py
from datetime import datetime, timedelta
from typing import Optional

from common.timeutils import utcnow


class CircuitBreaker:
    """
    Simple in-memory circuit breaker for the display's agenda requests.

    States:
    - closed: all requests pass, count failures
    - open: requests are blocked immediately
    - half_open: allow a trial request after reset timeout
    """

    def __init__(self, name: str, max_failures: int = 3, reset_timeout_seconds: int = 30, clock=utcnow):
        self.name = name
        self.max_failures = max_failures
        self.reset_timeout = timedelta(seconds=reset_timeout_seconds)
        self.failure_count = 0
        self.state = "closed"  # "closed" | "open" | "half_open"
        self.last_failure_time: Optional[datetime] = None
        self._clock = clock

    def allow_request(self) -> bool:
        """
        Return True if a request is allowed to go through, False if the circuit is open.
        """
        if self.state == "open":
            if self.last_failure_time is None:
                return False
            elapsed = self._clock() - self.last_failure_time
            if elapsed >= self.reset_timeout:
                self.state = "half_open"
                return True
            return False

        return True

    def record_success(self) -> None:
        """
        Reset the circuit on a successful call.
        """
        self.failure_count = 0
        self.state = "closed"
        self.last_failure_time = None

    def record_failure(self) -> None:
        """
        Increment the failure count and potentially open the circuit.

        A failed trial request in half_open reopens the circuit at once.
        """
        self.failure_count += 1
        self.last_failure_time = self._clock()
        if self.state == "half_open" or self.failure_count >= self.max_failures:
            self.state = "open"
