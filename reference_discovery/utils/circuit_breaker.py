"""Per-provider circuit breaker.

    CLOSED --failure_threshold consecutive failures--> OPEN
    OPEN --cooldown_seconds elapsed--> HALF_OPEN
    HALF_OPEN --success_threshold consecutive successes--> CLOSED
    HALF_OPEN --any failure--> OPEN

Each breaker belongs to one provider of one SearchClient; there is no
process-wide registry. While OPEN, attempts fail fast with CircuitOpenError
and never reach the network.
"""

import threading
import time
from enum import Enum
from typing import Callable, Dict, Optional

import structlog

from reference_discovery.models.resilience import CircuitBreakerConfig
from reference_discovery.observability.metrics import (
    CIRCUIT_STATE,
    CIRCUIT_STATE_VALUES,
)
from reference_discovery.utils.exceptions import CircuitOpenError

logger = structlog.get_logger()


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Consecutive-failure breaker guarding one provider.

    OPEN becomes HALF_OPEN lazily: the cooldown is checked whenever the
    state is read. All mutation happens under an RLock, and the lock is
    never held while the provider call itself runs.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            name: Provider name, used in logs, errors and the state gauge
            config: Thresholds and cooldown
            clock: Monotonic time source in seconds
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.RLock()

        self._state = CircuitState.CLOSED
        self._opened_at: Optional[float] = None
        self._failure_streak = 0
        self._success_streak = 0
        self._totals = {"successes": 0, "failures": 0}

    def _transition(self, new_state: CircuitState) -> None:
        previous, self._state = self._state, new_state
        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
        elif new_state == CircuitState.CLOSED:
            self._opened_at = None
        self._success_streak = 0

        CIRCUIT_STATE.labels(provider=self.name).set(
            CIRCUIT_STATE_VALUES[new_state.value]
        )
        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            "circuit_state_changed",
            provider=self.name,
            from_state=previous.value,
            to_state=new_state.value,
            failure_streak=self._failure_streak,
        )

    @property
    def state(self) -> CircuitState:
        with self._lock:
            if self._state == CircuitState.OPEN and self.cooldown_remaining() == 0.0:
                self._transition(CircuitState.HALF_OPEN)
            return self._state

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._failure_streak

    def cooldown_remaining(self) -> float:
        """Seconds until an OPEN breaker lets a trial attempt through."""
        with self._lock:
            if self._state != CircuitState.OPEN or self._opened_at is None:
                return 0.0
            waited = self._clock() - self._opened_at
            return max(0.0, self.config.cooldown_seconds - waited)

    def record_success(self) -> None:
        with self._lock:
            self._totals["successes"] += 1
            self._failure_streak = 0
            self._success_streak += 1
            if (
                self._state == CircuitState.HALF_OPEN
                and self._success_streak >= self.config.success_threshold
            ):
                self._transition(CircuitState.CLOSED)

    def record_failure(self) -> None:
        with self._lock:
            self._totals["failures"] += 1
            self._failure_streak += 1
            self._success_streak = 0
            if self._state == CircuitState.HALF_OPEN or (
                self._state == CircuitState.CLOSED
                and self._failure_streak >= self.config.failure_threshold
            ):
                self._transition(CircuitState.OPEN)

    def allow_request(self) -> bool:
        if not self.config.enabled:
            return True
        return self.state != CircuitState.OPEN

    def check_or_raise(self) -> None:
        """Fail fast while the breaker is OPEN.

        Raises:
            CircuitOpenError: Breaker OPEN; retry_after is the remaining
                cooldown
        """
        if self.allow_request():
            return
        raise CircuitOpenError(
            f"Circuit breaker '{self.name}' is OPEN - provider unavailable",
            provider=self.name,
            retry_after=self.cooldown_remaining(),
        )

    def reset(self) -> None:
        with self._lock:
            self._failure_streak = 0
            self._success_streak = 0
            if self._state != CircuitState.CLOSED:
                self._transition(CircuitState.CLOSED)

    def get_stats(self) -> Dict:
        with self._lock:
            return {
                "name": self.name,
                "state": self.state.value,
                "consecutive_failures": self._failure_streak,
                "consecutive_successes": self._success_streak,
                "total_successes": self._totals["successes"],
                "total_failures": self._totals["failures"],
                "cooldown_remaining": self.cooldown_remaining(),
            }
