"""
Retry executor with linear or exponential backoff.

The executor never inspects error kinds. It re-invokes the operation on any
failure until the attempt budget is spent, then re-raises the last failure
untouched. Callers that need to stop early raise AbortRetry from
inside the operation.
"""

import asyncio
import inspect
import os
from dataclasses import dataclass
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

import structlog

from callguard.shared.exceptions import ConfigurationError
from callguard.shared.types import BackoffStrategy, DurationSeconds

T = TypeVar('T')

RetryObserver = Callable[[int, BaseException], Union[None, Awaitable[None]]]
Sleep = Callable[[float], Awaitable[Any]]


class AbortRetry(Exception):
    """
    Raised from inside an operation to stop retrying.

    The executor re-raises ``cause`` immediately, so it counts as a single
    failure to the retry layer.
    """

    def __init__(self, cause: BaseException):
        super().__init__(str(cause))
        self.cause = cause


@dataclass
class RetryPolicy:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_delay: DurationSeconds = 1.0
    strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    on_retry: Optional[RetryObserver] = None

    def __post_init__(self):
        if not isinstance(self.max_attempts, int) or self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be at least 1, got: {self.max_attempts}")
        if self.base_delay < 0:
            raise ConfigurationError(f"base_delay cannot be negative, got: {self.base_delay}")
        try:
            self.strategy = BackoffStrategy(self.strategy)
        except ValueError:
            raise ConfigurationError(f"Unsupported backoff strategy: {self.strategy}")

    def calculate_delay(self, attempt: int) -> float:
        """Delay after the given 1-based attempt fails."""
        if self.strategy == BackoffStrategy.LINEAR:
            return self.base_delay * attempt
        return self.base_delay * (2 ** (attempt - 1))

    @classmethod
    def from_env(cls, prefix: str = "RETRY", on_retry: Optional[RetryObserver] = None) -> "RetryPolicy":
        """Build a policy from ``<PREFIX>_MAX_ATTEMPTS``, ``_BASE_DELAY`` and ``_BACKOFF``."""
        try:
            return cls(
                max_attempts=int(os.getenv(f"{prefix}_MAX_ATTEMPTS", "3")),
                base_delay=float(os.getenv(f"{prefix}_BASE_DELAY", "1.0")),
                strategy=BackoffStrategy(os.getenv(f"{prefix}_BACKOFF", "exponential").lower()),
                on_retry=on_retry,
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid retry configuration for {prefix}: {e}") from e


def _is_task_cancelling() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


async def execute_with_retry(
    operation: Callable[[], Union[T, Awaitable[T]]],
    policy: Optional[RetryPolicy] = None,
    *,
    sleep: Sleep = asyncio.sleep,
    logger=None,
    name: Optional[str] = None
) -> T:
    """
    Invoke ``operation`` until it succeeds or the policy's attempts run out.

    Args:
        operation: Zero-argument callable, usually returning an awaitable
        policy: Retry policy, defaults to RetryPolicy()
        sleep: Backoff timer, replaceable for tests
        logger: Logger for retry events, defaults to this module's logger
        name: Operation name for log events

    Returns:
        The operation's result

    Raises:
        The failure of the final attempt, or the cause of an AbortRetry
    """
    policy = policy or RetryPolicy()
    log = logger or structlog.get_logger(__name__)
    name = name or getattr(operation, "__name__", type(operation).__name__)

    attempt = 1
    while True:
        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
            return result

        except AbortRetry as e:
            log.warning("Retry aborted", operation=name, attempt=attempt, error=str(e.cause))
            raise e.cause from None

        except asyncio.CancelledError as e:
            if _is_task_cancelling():
                raise
            error = e

        except Exception as e:
            error = e

        if attempt >= policy.max_attempts:
            log.error(
                "All retry attempts exhausted",
                operation=name,
                max_attempts=policy.max_attempts,
                error_type=type(error).__name__,
                error=str(error)
            )
            raise error

        if policy.on_retry is not None:
            observed = policy.on_retry(attempt, error)
            if inspect.isawaitable(observed):
                await observed

        delay = policy.calculate_delay(attempt)
        log.info(
            "Waiting before retry",
            operation=name,
            attempt=attempt,
            delay_seconds=delay,
            error_type=type(error).__name__
        )
        await sleep(delay)
        attempt += 1


def retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL,
    on_retry: Optional[RetryObserver] = None
):
    """
    Decorator to add retry capabilities to an async function.

    Args:
        max_attempts: Maximum number of attempts, including the first
        base_delay: Base delay between attempts in seconds
        strategy: Backoff strategy to use
        on_retry: Observer called with the attempt number and its error

    Returns:
        Decorated function with retry capabilities
    """
    policy = RetryPolicy(
        max_attempts=max_attempts,
        base_delay=base_delay,
        strategy=strategy,
        on_retry=on_retry
    )

    def decorator(func):

        @wraps(func)
        async def wrapper(*args, **kwargs):
            return await execute_with_retry(
                lambda: func(*args, **kwargs), policy, name=func.__qualname__
            )

        return wrapper
    return decorator
