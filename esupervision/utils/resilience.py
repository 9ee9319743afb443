"""
Retry and circuit breaking around external calls.

Retry is the outer layer. Every attempt passes through the breaker, and a
rejection by an open breaker is never retried. An optional deadline bounds
the whole call: no attempt starts after it, and an attempt that ends after
it counts as a breaker failure.
"""
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple, Type

from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from esupervision.core.exceptions import CallTimedOut, ComparisonServiceError
from esupervision.utils.circuit_breaker import CircuitBreaker, get_circuit_breaker
from esupervision.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Deadline:
    """Point on a monotonic clock after which a call is abandoned."""
    at: float
    clock: Callable[[], float] = field(default=time.monotonic, compare=False)

    @classmethod
    def after(cls, seconds: float, clock: Callable[[], float] = time.monotonic) -> "Deadline":
        return cls(clock() + seconds, clock)

    @property
    def expired(self) -> bool:
        return self.clock() >= self.at

    def remaining(self) -> float:
        return max(0.0, self.at - self.clock())


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    wait_initial: float = 0.5
    wait_multiplier: float = 1.0
    wait_max: float = 5.0


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ComparisonServiceError) and exc.transient


def _log_retry(retry_state):
    exc = retry_state.outcome.exception()
    logger.warning(
        "Retrying transient failure",
        attempt=retry_state.attempt_number,
        error_type=type(exc).__name__,
    )


class ResilientCall:
    """
    Wraps a callable with bounded retry and a circuit breaker.

    Args:
        fn: Raw external call
        breaker: Shared breaker guarding fn
        retry_policy: Attempts and exponential backoff
        retry_on: Predicate selecting exceptions worth another attempt
    """

    def __init__(
        self,
        fn: Callable,
        breaker: CircuitBreaker,
        retry_policy: RetryPolicy = RetryPolicy(),
        retry_on: Callable[[BaseException], bool] = is_transient,
    ):
        self.fn = fn
        self.breaker = breaker
        self.retry_policy = retry_policy
        self.retry_on = retry_on

    def __call__(self, *args, deadline: Optional[Deadline] = None, **kwargs):
        """
        Raises:
            CallTimedOut: deadline passed before an attempt could start
        """
        def attempt():
            if deadline is not None and deadline.expired:
                raise CallTimedOut(f"Deadline passed before calling {self.breaker.name}")
            return self.breaker.call(self.fn, *args, deadline=deadline, **kwargs)

        retryer = Retrying(
            stop=stop_after_attempt(self.retry_policy.max_attempts),
            wait=wait_exponential(
                multiplier=self.retry_policy.wait_multiplier,
                min=self.retry_policy.wait_initial,
                max=self.retry_policy.wait_max,
            ),
            retry=retry_if_exception(self.retry_on),
            before_sleep=_log_retry,
            reraise=True,
        )
        return retryer(attempt)


def build_resilient_call(
    fn: Callable,
    config: dict,
    ignored_exceptions: Tuple[Type[BaseException], ...] = (),
) -> ResilientCall:
    """
    Build a ResilientCall from a resilience.yaml section.

    Args:
        fn: Raw external call
        config: Section with breaker_name, retry and circuit_breaker keys
        ignored_exceptions: Exceptions the breaker records as successes
    """
    retry_cfg = config.get('retry', {})
    breaker_cfg = config.get('circuit_breaker', {})
    breaker = get_circuit_breaker(
        config['breaker_name'],
        failure_rate_threshold=float(breaker_cfg.get('failure_rate_threshold', 50.0)),
        window_size=int(breaker_cfg.get('sliding_window_size', 10)),
        minimum_calls=int(breaker_cfg.get('minimum_number_of_calls', 5)),
        recovery_timeout=float(breaker_cfg.get('wait_duration_in_open_state_seconds', 30)),
        half_open_max_calls=int(breaker_cfg.get('permitted_calls_in_half_open_state', 1)),
        ignored_exceptions=ignored_exceptions,
    )
    policy = RetryPolicy(
        max_attempts=int(retry_cfg.get('max_attempts', 3)),
        wait_initial=float(retry_cfg.get('wait_initial_seconds', 0.5)),
        wait_multiplier=float(retry_cfg.get('wait_multiplier', 1.0)),
        wait_max=float(retry_cfg.get('wait_max_seconds', 5.0)),
    )
    return ResilientCall(fn, breaker, policy)
