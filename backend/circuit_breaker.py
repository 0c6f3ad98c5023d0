"""Per-source circuit breakers for indexers and download clients.

A breaker trips open after ``failure_threshold`` consecutive failures and
rejects calls for ``cooldown_seconds``. After the cooldown exactly one
probe call is let through: success closes the breaker, failure re-opens it
for another cooldown.

Breakers are shared by name through ``BreakerRegistry`` so that the
indexer manager and the routes report the same state.
"""

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


# Numeric form exported as a Prometheus gauge
STATE_VALUES = {CircuitState.CLOSED: 0, CircuitState.OPEN: 1, CircuitState.HALF_OPEN: 2}


class CircuitOpenError(Exception):
    """Raised by CircuitBreaker.call when the breaker rejects the call."""


class CircuitBreaker:
    """Consecutive-failure breaker guarding one external source."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60,
        on_state_change: Callable[[str, CircuitState], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = max(1, failure_threshold)
        self.cooldown_seconds = cooldown_seconds
        self._on_state_change = on_state_change
        self._clock = clock

        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = 0.0
        self._probe_in_flight = False

    # ---- State ------------------------------------------------------------------

    def _set_state(self, state: CircuitState, why: str) -> None:
        if state == self._state:
            return
        logger.info("CircuitBreaker[%s]: %s -> %s (%s)", self.name, self._state.value, state.value, why)
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(self.name, state)

    def _refresh(self) -> None:
        if self._state == CircuitState.OPEN and self._clock() - self._opened_at >= self.cooldown_seconds:
            self._set_state(CircuitState.HALF_OPEN, "cooldown elapsed")
            self._probe_in_flight = False

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._refresh()
            return self._state

    def allow_request(self) -> bool:
        """Reserve a call slot. Half-open admits a single probe at a time."""
        with self._lock:
            self._refresh()
            if self._state == CircuitState.CLOSED:
                return True
            if self._state == CircuitState.HALF_OPEN and not self._probe_in_flight:
                self._probe_in_flight = True
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            self._consecutive_failures = 0
            self._probe_in_flight = False
            self._set_state(CircuitState.CLOSED, "call succeeded")

    def record_failure(self) -> None:
        with self._lock:
            self._consecutive_failures += 1
            self._probe_in_flight = False
            if self._state == CircuitState.HALF_OPEN:
                self._opened_at = self._clock()
                self._set_state(CircuitState.OPEN, "probe failed")
            elif self._consecutive_failures >= self.failure_threshold:
                self._opened_at = self._clock()
                self._set_state(
                    CircuitState.OPEN, f"{self._consecutive_failures} consecutive failures"
                )

    def call(self, fn: Callable, *args, **kwargs):
        """Run fn through the breaker.

        Raises:
            CircuitOpenError: The breaker rejected the call.
            Any exception raised by fn, after it is counted as a failure.
        """
        if not self.allow_request():
            raise CircuitOpenError(f"Circuit '{self.name}' is open")
        try:
            result = fn(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def reset(self) -> None:
        with self._lock:
            self._consecutive_failures = 0
            self._probe_in_flight = False
            self._set_state(CircuitState.CLOSED, "manual reset")

    def get_status(self) -> dict:
        with self._lock:
            self._refresh()
            return {
                "name": self.name,
                "state": self._state.value,
                "consecutive_failures": self._consecutive_failures,
                "failure_threshold": self.failure_threshold,
                "cooldown_seconds": self.cooldown_seconds,
            }


class BreakerRegistry:
    """Thread-safe name -> CircuitBreaker map created on first use."""

    def __init__(self, failure_threshold: int = 5, cooldown_seconds: float = 60,
                 on_state_change: Callable[[str, CircuitState], None] | None = None) -> None:
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._on_state_change = on_state_change
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(
                    name,
                    failure_threshold=self.failure_threshold,
                    cooldown_seconds=self.cooldown_seconds,
                    on_state_change=self._on_state_change,
                )
                self._breakers[name] = breaker
            return breaker

    def statuses(self) -> list[dict]:
        with self._lock:
            breakers = list(self._breakers.values())
        return [b.get_status() for b in breakers]
