"""
Circuit breaker for calls to cooperating services.

A breaker counts consecutive failures of the operation it guards. Once the
failure threshold is reached it opens and rejects calls without invoking the
operation until the open timeout has elapsed, then lets single trial calls
through (half-open) until enough of them succeed to close again.
"""

import asyncio
import inspect
import os
import time
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Dict, Optional

import structlog

from callguard.shared.exceptions import (
    ApplicationError, ConfigurationError, ErrorKind, service_unavailable
)
from callguard.shared.types import CircuitBreakerState, DurationSeconds

# Consecutive half-open successes needed to close
HALF_OPEN_SUCCESS_THRESHOLD = 2

Clock = Callable[[], float]


@dataclass
class CircuitBreakerConfig:
    """Configuration for a circuit breaker."""
    failure_threshold: int = 5  # Failures before opening
    open_timeout: DurationSeconds = 60.0  # Open period before a trial call
    success_threshold: int = HALF_OPEN_SUCCESS_THRESHOLD

    def __post_init__(self):
        if not isinstance(self.failure_threshold, int) or self.failure_threshold < 1:
            raise ConfigurationError(
                f"failure_threshold must be at least 1, got: {self.failure_threshold}"
            )
        if self.open_timeout < 0:
            raise ConfigurationError(f"open_timeout cannot be negative, got: {self.open_timeout}")
        if not isinstance(self.success_threshold, int) or self.success_threshold < 1:
            raise ConfigurationError(
                f"success_threshold must be at least 1, got: {self.success_threshold}"
            )

    @classmethod
    def from_env(cls, prefix: str = "CIRCUIT_BREAKER") -> "CircuitBreakerConfig":
        """Build a config from ``<PREFIX>_FAILURE_THRESHOLD``, ``_OPEN_TIMEOUT`` and ``_SUCCESS_THRESHOLD``."""
        try:
            return cls(
                failure_threshold=int(os.getenv(f"{prefix}_FAILURE_THRESHOLD", "5")),
                open_timeout=float(os.getenv(f"{prefix}_OPEN_TIMEOUT", "60.0")),
                success_threshold=int(
                    os.getenv(f"{prefix}_SUCCESS_THRESHOLD", str(HALF_OPEN_SUCCESS_THRESHOLD))
                ),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid circuit breaker configuration for {prefix}: {e}") from e


def is_circuit_rejection(error: BaseException) -> bool:
    """True when the error is a breaker refusing a call, not a downstream failure."""
    return (
        isinstance(error, ApplicationError)
        and error.kind == ErrorKind.SERVICE_UNAVAILABLE
        and "circuit" in (error.context or {})
    )


class CircuitBreaker:
    """
    Circuit breaker protecting a single operation.

    State transitions are applied under an asyncio lock; the guarded operation
    itself runs outside it. While a half-open trial call is in flight, other
    callers are rejected, so the recovering service sees one call at a time.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        *,
        clock: Clock = time.monotonic,
        logger=None
    ):
        """
        Initialize circuit breaker.

        Args:
            name: Identifier for this circuit breaker, used in errors and logs
            config: Circuit breaker configuration
            clock: Monotonic time source in seconds, replaceable for tests
            logger: Logger for state transitions
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._logger = (logger or structlog.get_logger(__name__)).bind(circuit=name)

        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._consecutive_success_count = 0
        self._next_attempt_time = clock()
        self._trial_in_flight = False
        # Bumped on every transition and reset
        self._generation = 0
        self._lock = asyncio.Lock()

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def consecutive_success_count(self) -> int:
        return self._consecutive_success_count

    @property
    def next_attempt_time(self) -> float:
        return self._next_attempt_time

    def current_state(self) -> CircuitBreakerState:
        return self._state

    async def execute(self, operation: Callable[..., Any], *args, **kwargs) -> Any:
        """
        Execute an operation through the circuit breaker.

        Args:
            operation: Callable returning the result or an awaitable of it
            *args: Operation arguments
            **kwargs: Operation keyword arguments

        Returns:
            Operation result

        Raises:
            ApplicationError: SERVICE_UNAVAILABLE if the breaker rejects the call
            Any failure of the operation, unchanged
        """
        async with self._lock:
            trial_token = self._admit()

        try:
            result = operation(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
        except (Exception, asyncio.CancelledError) as e:
            async with self._lock:
                self._record_failure(trial_token, e)
            raise
        except BaseException:
            # Not a verdict on the downstream; free the trial slot only
            self._release_trial(trial_token)
            raise

        async with self._lock:
            self._record_success(trial_token)
        return result

    def reset(self) -> None:
        """Force the breaker closed with all counters zeroed."""
        previous = self._state
        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._consecutive_success_count = 0
        self._next_attempt_time = self._clock()
        self._trial_in_flight = False
        self._generation += 1
        self._logger.info("Circuit breaker reset", from_state=previous.value)

    def _transition(self, new_state: CircuitBreakerState, **event) -> None:
        previous = self._state
        self._state = new_state
        self._generation += 1
        log = self._logger.warning if new_state == CircuitBreakerState.OPEN else self._logger.info
        log(
            "Circuit breaker state changed",
            from_state=previous.value,
            to_state=new_state.value,
            **event
        )

    def _reject(self, now: float) -> ApplicationError:
        retry_after = max(0.0, self._next_attempt_time - now)
        self._logger.warning(
            "Circuit breaker rejected call",
            state=self._state.value,
            retry_after_seconds=round(retry_after, 3)
        )
        return service_unavailable(self.name, {
            "circuit": self.name,
            "circuit_state": self._state.value,
            "retry_after_seconds": retry_after,
        })

    def _admit(self) -> Optional[int]:
        """Admit or reject a call; returns a token identifying a half-open trial call."""
        now = self._clock()

        if self._state == CircuitBreakerState.OPEN:
            if now < self._next_attempt_time:
                raise self._reject(now)
            self._consecutive_success_count = 0
            self._transition(CircuitBreakerState.HALF_OPEN)

        if self._state == CircuitBreakerState.HALF_OPEN:
            if self._trial_in_flight:
                raise self._reject(now)
            self._trial_in_flight = True
            return self._generation

        return None

    def _is_current_trial(self, trial_token: Optional[int]) -> bool:
        # A reset or transition since admission makes the trial result stale
        return (
            trial_token is not None
            and trial_token == self._generation
            and self._state == CircuitBreakerState.HALF_OPEN
        )

    def _release_trial(self, trial_token: Optional[int]) -> None:
        if self._is_current_trial(trial_token):
            self._trial_in_flight = False

    def _open(self, **event) -> None:
        self._next_attempt_time = self._clock() + self.config.open_timeout
        self._consecutive_success_count = 0
        self._transition(CircuitBreakerState.OPEN, failure_count=self._failure_count, **event)

    def _record_failure(self, trial_token: Optional[int], error: BaseException) -> None:
        if self._is_current_trial(trial_token):
            self._failure_count += 1
            self._trial_in_flight = False
            self._open(error_type=type(error).__name__)
        elif self._state == CircuitBreakerState.CLOSED:
            self._failure_count += 1
            if self._failure_count >= self.config.failure_threshold:
                self._open(error_type=type(error).__name__)

    def _record_success(self, trial_token: Optional[int]) -> None:
        if self._is_current_trial(trial_token):
            self._trial_in_flight = False
            self._consecutive_success_count += 1
            if self._consecutive_success_count >= self.config.success_threshold:
                self._failure_count = 0
                self._consecutive_success_count = 0
                self._transition(CircuitBreakerState.CLOSED)
        elif self._state == CircuitBreakerState.CLOSED:
            self._failure_count = 0

    def get_status(self) -> Dict[str, Any]:
        """Get current circuit breaker status."""
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "consecutive_success_count": self._consecutive_success_count,
            "failure_threshold": self.config.failure_threshold,
            "open_timeout_seconds": self.config.open_timeout,
            "retry_after_seconds": (
                max(0.0, self._next_attempt_time - self._clock())
                if self._state == CircuitBreakerState.OPEN else 0.0
            ),
        }


def circuit_breaker(
    failure_threshold: int = 5,
    open_timeout: float = 60.0,
    success_threshold: int = HALF_OPEN_SUCCESS_THRESHOLD,
    name: Optional[str] = None
):
    """
    Decorator to guard an async function with its own circuit breaker.

    The breaker is exposed as ``wrapper.breaker`` for inspection and reset.

    Args:
        failure_threshold: Number of failures before opening circuit
        open_timeout: Seconds to wait before attempting half-open
        success_threshold: Consecutive half-open successes needed to close
        name: Breaker name, defaults to the function's qualified name

    Returns:
        Decorated function with circuit breaker protection
    """
    config = CircuitBreakerConfig(
        failure_threshold=failure_threshold,
        open_timeout=open_timeout,
        success_threshold=success_threshold
    )

    def decorator(func):
        breaker = CircuitBreaker(name or f"{func.__module__}.{func.__qualname__}", config)

        @wraps(func)
        async def wrapper(*args, **kwargs):
            return await breaker.execute(func, *args, **kwargs)

        wrapper.breaker = breaker
        return wrapper
    return decorator


class CircuitBreakerRegistry:
    """One breaker per named dependency, with a combined status view."""

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        *,
        clock: Clock = time.monotonic,
        logger=None
    ):
        self._config = config or CircuitBreakerConfig()
        self._clock = clock
        self._logger = logger
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get(self, name: str, config: Optional[CircuitBreakerConfig] = None) -> CircuitBreaker:
        """Get the breaker for a dependency, creating it on first use."""
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(
                name, config or self._config, clock=self._clock, logger=self._logger
            )
            self._breakers[name] = breaker
        return breaker

    def get_breaker(self, name: str) -> Optional[CircuitBreaker]:
        return self._breakers.get(name)

    def get_all_status(self) -> Dict[str, Dict[str, Any]]:
        return {
            name: breaker.get_status()
            for name, breaker in self._breakers.items()
        }

    def reset_all(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()
