"""
Circuit Breaker

Isolates repeated sub-agent failures. One breaker exists per agent class.

State machine:
- CLOSED: requests pass. Reaching ``failure_threshold`` consecutive
  failures opens the circuit.
- OPEN: requests are refused until ``cooldown_seconds`` have elapsed since
  the last failure, then the circuit moves to HALF_OPEN.
- HALF_OPEN: exactly one trial request passes. Success closes the
  circuit, failure reopens it immediately.
  A trial that ends without an outcome (cancelled or crashed before
  dispatch) is abandoned: the circuit returns to OPEN with its cooldown
  already elapsed, so the next request becomes the new trial.
"""

import threading
import time
from collections.abc import Callable

import structlog

from conductor.core.domain.errors import CircuitOpenError
from conductor.core.domain.models import CircuitSnapshot, CircuitState

logger = structlog.get_logger()

DEFAULT_FAILURE_THRESHOLD = 3
DEFAULT_COOLDOWN_SECONDS = 60.0


class CircuitBreaker:
    """
    Failure isolation for one agent class.

    Args:
        agent_class: Name used in errors and logs
        failure_threshold: Consecutive failures that open the circuit
        cooldown_seconds: Time the circuit stays open after the last failure
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        agent_class: str = "sub_agent",
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.agent_class = agent_class
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._failure_count = 0
        self._state = CircuitState.CLOSED
        self._last_failure_at: float | None = None
        self._trial_in_flight = False
        self.logger = logger.bind(component="circuit_breaker", agent_class=agent_class)

    def allow_request(self) -> bool:
        """Return True if a request may pass, moving OPEN to HALF_OPEN after cooldown."""
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True
            if self._state == CircuitState.HALF_OPEN:
                # Only one trial at a time; it decides the next state.
                if self._trial_in_flight:
                    return False
                self._trial_in_flight = True
                return True
            if self._cooldown_elapsed():
                self._state = CircuitState.HALF_OPEN
                self._trial_in_flight = True
                self.logger.info("circuit_half_open")
                return True
            return False

    def check(self) -> None:
        """
        Raise if the circuit refuses requests.

        Raises:
            CircuitOpenError: With the remaining cooldown in seconds
        """
        if not self.allow_request():
            raise CircuitOpenError(self.agent_class, self.remaining_cooldown())

    def record_success(self) -> None:
        with self._lock:
            if self._state != CircuitState.CLOSED:
                self.logger.info("circuit_closed")
            self._failure_count = 0
            self._state = CircuitState.CLOSED
            self._trial_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self._trial_in_flight = False
            self._failure_count += 1
            self._last_failure_at = self._clock()
            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                self.logger.warning("circuit_reopened", failures=self._failure_count)
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                self._state = CircuitState.OPEN
                self.logger.warning(
                    "circuit_opened",
                    failures=self._failure_count,
                    cooldown_seconds=self.cooldown_seconds,
                )

    def abandon_trial(self) -> None:
        """Release an admitted HALF_OPEN trial that produced no success or failure."""
        with self._lock:
            if self._state != CircuitState.HALF_OPEN or not self._trial_in_flight:
                return
            self._trial_in_flight = False
            self._state = CircuitState.OPEN
            self.logger.info("circuit_trial_abandoned")

    def remaining_cooldown(self) -> float:
        """Seconds until an open circuit admits a trial request, 0.0 otherwise."""
        if self._state != CircuitState.OPEN or self._last_failure_at is None:
            return 0.0
        elapsed = self._clock() - self._last_failure_at
        return max(0.0, self.cooldown_seconds - elapsed)

    def reset(self) -> None:
        with self._lock:
            self._failure_count = 0
            self._state = CircuitState.CLOSED
            self._last_failure_at = None
            self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    def snapshot(self) -> CircuitSnapshot:
        with self._lock:
            return CircuitSnapshot(
                failure_count=self._failure_count,
                state=self._state,
                last_failure_at=self._last_failure_at,
            )

    def _cooldown_elapsed(self) -> bool:
        if self._last_failure_at is None:
            return True
        return self._clock() - self._last_failure_at >= self.cooldown_seconds


class CircuitBreakerRegistry:
    """Lazily creates one CircuitBreaker per agent class."""

    def __init__(
        self,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, agent_class: str) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(agent_class)
            if breaker is None:
                breaker = CircuitBreaker(
                    agent_class=agent_class,
                    failure_threshold=self.failure_threshold,
                    cooldown_seconds=self.cooldown_seconds,
                    clock=self._clock,
                )
                self._breakers[agent_class] = breaker
            return breaker

    def reset_all(self) -> None:
        with self._lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker.reset()
