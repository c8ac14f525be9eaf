"""
AI Gateway - Circuit Breaker

Implements the Circuit Breaker pattern to stop sending traffic to
providers that keep failing.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Provider is down, requests are rejected without an upstream call
- HALF_OPEN: A single trial request tests whether the provider recovered

Transitions:
- CLOSED -> OPEN: failure_threshold consecutive failures inside the
  evaluation window
- OPEN -> HALF_OPEN: recovery_timeout_seconds after opening
- HALF_OPEN -> CLOSED: trial request succeeded
- HALF_OPEN -> OPEN: trial request failed (timer restarts)

This failure counter is separate from the Health Tracker's streak.
"""

import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Callable, Dict, Optional

from ..core.config import CircuitBreakerConfig
from ..observability.logging import get_logger

logger = get_logger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


StateListener = Callable[[str, CircuitState, CircuitState], None]


@dataclass
class CircuitStats:
    """Lifetime counters for a circuit breaker."""
    total_results: int = 0
    successes: int = 0
    failures: int = 0
    times_opened: int = 0


class CircuitBreaker:
    """
    Circuit breaker for a single provider.

    is_available is a side-effect free peek used to filter candidates;
    allow() is the admission decision and consumes the half-open trial.
    """

    def __init__(
        self,
        provider_id: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        on_state_change: Optional[StateListener] = None
    ):
        self.provider_id = provider_id
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._on_state_change = on_state_change
        self._lock = Lock()

        self.state = CircuitState.CLOSED
        self.stats = CircuitStats()
        self.opened_at: Optional[float] = None
        self.state_changed_at = clock()
        self._failures: deque = deque()
        self._trial_in_flight = False

    def _refresh(self, now: float):
        """Move OPEN to HALF_OPEN once the recovery timeout elapsed (must hold lock)."""
        if self.state == CircuitState.OPEN and self.opened_at is not None:
            if now - self.opened_at >= self.config.recovery_timeout_seconds:
                self._transition_to(CircuitState.HALF_OPEN, now)

    @property
    def is_available(self) -> bool:
        """Would allow() currently admit a request."""
        with self._lock:
            self._refresh(self._clock())
            if self.state == CircuitState.CLOSED:
                return True
            if self.state == CircuitState.HALF_OPEN:
                return not self._trial_in_flight
            return False

    def allow(self) -> bool:
        """Admit a request. In HALF_OPEN only one trial is admitted at a time."""
        with self._lock:
            self._refresh(self._clock())
            if self.state == CircuitState.CLOSED:
                return True
            if self.state == CircuitState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                return True
            return False

    def release(self):
        """Hand back an admitted trial that never reached the provider."""
        with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                self._trial_in_flight = False

    def record_success(self):
        """Record a successful request."""
        with self._lock:
            now = self._clock()
            self.stats.total_results += 1
            self.stats.successes += 1

            if self.state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.CLOSED, now)
            elif self.state == CircuitState.CLOSED:
                self._failures.clear()

    def record_failure(self):
        """Record a failed request."""
        with self._lock:
            now = self._clock()
            self.stats.total_results += 1
            self.stats.failures += 1

            if self.state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN, now)
                return

            if self.state == CircuitState.CLOSED:
                self._failures.append(now)
                cutoff = now - self.config.evaluation_window_seconds
                while self._failures and self._failures[0] < cutoff:
                    self._failures.popleft()

                if len(self._failures) >= self.config.failure_threshold:
                    self._transition_to(CircuitState.OPEN, now)

    def report_result(self, success: bool):
        if success:
            self.record_success()
        else:
            self.record_failure()

    def _transition_to(self, new_state: CircuitState, now: float):
        """Transition to a new state (must hold lock)."""
        old_state = self.state
        self.state = new_state
        self.state_changed_at = now
        self._trial_in_flight = False

        if new_state == CircuitState.OPEN:
            self.opened_at = now
            self.stats.times_opened += 1
            self._failures.clear()
            logger.warning(
                "Circuit opened",
                provider=self.provider_id,
                previous_state=old_state.value,
                recovery_timeout_seconds=self.config.recovery_timeout_seconds,
            )
        elif new_state == CircuitState.CLOSED:
            self.opened_at = None
            self._failures.clear()
            logger.info("Circuit closed", provider=self.provider_id, previous_state=old_state.value)
        else:
            logger.info("Circuit half-open, admitting trial request", provider=self.provider_id)

        if self._on_state_change and old_state != new_state:
            self._on_state_change(self.provider_id, old_state, new_state)

    def get_state(self) -> CircuitState:
        with self._lock:
            self._refresh(self._clock())
            return self.state

    def get_status(self) -> Dict:
        """Get current circuit breaker status."""
        with self._lock:
            now = self._clock()
            self._refresh(now)
            return {
                "provider": self.provider_id,
                "state": self.state.value,
                "recent_failures": len(self._failures),
                "trial_in_flight": self._trial_in_flight,
                "stats": {
                    "total_results": self.stats.total_results,
                    "successes": self.stats.successes,
                    "failures": self.stats.failures,
                    "times_opened": self.stats.times_opened,
                },
                "time_in_current_state": round(now - self.state_changed_at, 2),
            }

    def force_open(self):
        """Manually open the circuit."""
        with self._lock:
            self._transition_to(CircuitState.OPEN, self._clock())

    def force_close(self):
        """Manually close the circuit."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED, self._clock())


class CircuitBreakerRegistry:
    """
    Circuit breakers for all providers, keyed by provider id.
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        on_state_change: Optional[StateListener] = None
    ):
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._on_state_change = on_state_change
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = Lock()

    def _new_breaker(self, provider_id: str) -> CircuitBreaker:
        return CircuitBreaker(provider_id, self.config, self._clock, self._on_state_change)

    def get_breaker(self, provider_id: str) -> CircuitBreaker:
        """Get or create a circuit breaker for a provider."""
        with self._lock:
            if provider_id not in self._breakers:
                self._breakers[provider_id] = self._new_breaker(provider_id)
            return self._breakers[provider_id]

    def register(self, provider_id: str):
        """Start a provider with a fresh CLOSED breaker."""
        with self._lock:
            self._breakers[provider_id] = self._new_breaker(provider_id)

    def remove(self, provider_id: str):
        """Discard breaker state for a deregistered provider."""
        with self._lock:
            self._breakers.pop(provider_id, None)

    def is_available(self, provider_id: str) -> bool:
        return self.get_breaker(provider_id).is_available

    def allow(self, provider_id: str) -> bool:
        return self.get_breaker(provider_id).allow()

    def release(self, provider_id: str):
        self.get_breaker(provider_id).release()

    def report_result(self, provider_id: str, success: bool):
        self.get_breaker(provider_id).report_result(success)

    def get_state(self, provider_id: str) -> CircuitState:
        return self.get_breaker(provider_id).get_state()

    def get_all_status(self) -> Dict[str, Dict]:
        """Get status of all circuit breakers."""
        with self._lock:
            breakers = list(self._breakers.items())
        return {pid: breaker.get_status() for pid, breaker in breakers}
