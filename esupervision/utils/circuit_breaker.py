"""
Count-based circuit breaker.

Breakers are shared process-wide by name and guarded by a lock, so any
number of threads can call through the same breaker.
"""
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, Dict, Optional, Tuple, Type

from esupervision.core.exceptions import CircuitOpenError
from esupervision.utils.logging import get_logger
from esupervision.utils.metrics import update_breaker_state

logger = get_logger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Rejecting calls
    HALF_OPEN = "HALF_OPEN"  # Trial calls after cool-down


@dataclass
class CircuitBreaker:
    """
    Circuit breaker over a sliding window of call outcomes.

    Opens once at least minimum_calls outcomes are recorded and the share of
    failures reaches failure_rate_threshold (percent). While open, calls are
    rejected until recovery_timeout seconds have passed, after which
    half_open_max_calls trial calls are let through. All trials succeeding
    closes the breaker; any trial failing opens it again.
    """
    name: str
    failure_rate_threshold: float = 50.0
    window_size: int = 10
    minimum_calls: int = 5
    recovery_timeout: float = 30.0
    half_open_max_calls: int = 1
    ignored_exceptions: Tuple[Type[BaseException], ...] = ()
    clock: Callable[[], float] = time.monotonic

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _outcomes: Deque[bool] = field(init=False, repr=False)
    _opened_at: Optional[float] = field(default=None, init=False)
    _half_open_calls: int = field(default=0, init=False)
    _half_open_successes: int = field(default=0, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self):
        self._outcomes = deque(maxlen=self.window_size)
        update_breaker_state(self.name, self._state.value)

    @property
    def state(self) -> CircuitState:
        with self._lock:
            if self._state == CircuitState.OPEN and self._should_attempt_reset():
                self._transition(CircuitState.HALF_OPEN)
            return self._state

    @property
    def failure_rate(self) -> float:
        with self._lock:
            return self._failure_rate()

    def can_execute(self) -> bool:
        """Check if a call is allowed, reserving a trial slot when half-open."""
        with self._lock:
            if self._state == CircuitState.OPEN:
                if not self._should_attempt_reset():
                    return False
                self._transition(CircuitState.HALF_OPEN)

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_calls < self.half_open_max_calls:
                    self._half_open_calls += 1
                    return True
                return False

            return True

    def record_success(self):
        """Record a successful call."""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._half_open_successes += 1
                if self._half_open_successes >= self.half_open_max_calls:
                    self._transition(CircuitState.CLOSED)
            elif self._state == CircuitState.CLOSED:
                self._outcomes.append(False)

    def record_failure(self):
        """Record a failed call."""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)
            elif self._state == CircuitState.CLOSED:
                self._outcomes.append(True)
                if (
                    len(self._outcomes) >= self.minimum_calls
                    and self._failure_rate() >= self.failure_rate_threshold
                ):
                    self._transition(CircuitState.OPEN)

    def call(self, fn: Callable, *args, deadline=None, **kwargs):
        """
        Invoke fn through the breaker.

        Args:
            fn: Guarded call
            deadline: Optional object with an ``expired`` property. A call
                that finishes after its deadline is recorded as a failure
                whatever its outcome.

        Raises:
            CircuitOpenError: the breaker is rejecting calls
        """
        if not self.can_execute():
            raise CircuitOpenError(self.name)
        try:
            result = fn(*args, **kwargs)
        except self.ignored_exceptions:
            self._record(False, deadline)
            raise
        except Exception:
            self._record(True, deadline)
            raise
        self._record(False, deadline)
        return result

    @property
    def window_calls(self) -> int:
        """Outcomes currently held in the sliding window."""
        with self._lock:
            return len(self._outcomes)

    def reset(self):
        with self._lock:
            self._transition(CircuitState.CLOSED)

    def _record(self, failed: bool, deadline):
        if not failed and deadline is not None and deadline.expired:
            logger.warning("Call finished after its deadline", breaker=self.name)
            failed = True
        if failed:
            self.record_failure()
        else:
            self.record_success()

    def _failure_rate(self) -> float:
        if not self._outcomes:
            return 0.0
        return 100.0 * sum(self._outcomes) / len(self._outcomes)

    def _should_attempt_reset(self) -> bool:
        return self._opened_at is not None and self.clock() - self._opened_at >= self.recovery_timeout

    def _transition(self, new_state: CircuitState):
        previous = self._state
        self._state = new_state
        self._half_open_calls = 0
        self._half_open_successes = 0
        if new_state == CircuitState.OPEN:
            self._opened_at = self.clock()
        elif new_state == CircuitState.CLOSED:
            self._opened_at = None
            self._outcomes.clear()
        update_breaker_state(self.name, new_state.value)
        if previous != new_state:
            logger.warning(
                "Circuit breaker state change",
                breaker=self.name,
                from_state=previous.value,
                to_state=new_state.value,
            )


_registry: Dict[str, CircuitBreaker] = {}
_registry_lock = threading.Lock()


def get_circuit_breaker(name: str, **params) -> CircuitBreaker:
    """Process-wide breaker for name; params apply only on first creation."""
    with _registry_lock:
        breaker = _registry.get(name)
        if breaker is None:
            breaker = CircuitBreaker(name=name, **params)
            _registry[name] = breaker
        return breaker


def all_circuit_breakers() -> Dict[str, CircuitBreaker]:
    with _registry_lock:
        return dict(_registry)


def clear_circuit_breakers():
    with _registry_lock:
        _registry.clear()
