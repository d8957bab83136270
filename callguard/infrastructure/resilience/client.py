"""
Retry over circuit breaker composition for dependent-service calls.
"""

import asyncio
import inspect
import time
from typing import Any, Callable, Dict, Optional

import structlog

from callguard.infrastructure.resilience.circuit_breaker import (
    CircuitBreaker, CircuitBreakerConfig, is_circuit_rejection
)
from callguard.infrastructure.resilience.retry import (
    AbortRetry, RetryPolicy, Sleep, execute_with_retry
)


class ResilientClient:
    """
    Client wrapper with retry and circuit breaker protection.

    Retries absorb transient blips while the breaker handles sustained
    outages. A breaker rejection ends the retry loop at once, so an open
    circuit is never retried through.
    """

    def __init__(
        self,
        name: str,
        retry_policy: Optional[RetryPolicy] = None,
        breaker_config: Optional[CircuitBreakerConfig] = None,
        *,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        logger=None
    ):
        """
        Initialize resilient client.

        Args:
            name: Client identifier, also the breaker name
            retry_policy: Retry policy, defaults to RetryPolicy()
            breaker_config: Circuit breaker configuration; no breaker when omitted
            sleep: Backoff timer
            clock: Time source for the breaker
            logger: Logger shared by both layers
        """
        self.name = name
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._logger = logger or structlog.get_logger(__name__)
        self.circuit_breaker: Optional[CircuitBreaker] = None

        if breaker_config:
            self.circuit_breaker = CircuitBreaker(name, breaker_config, clock=clock, logger=self._logger)

    async def execute(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        """
        Execute function with retry and circuit breaker protection.

        Args:
            func: Function to execute
            *args: Function arguments
            **kwargs: Function keyword arguments

        Returns:
            Function result
        """
        async def attempt():
            if self.circuit_breaker is None:
                return await _call(func, *args, **kwargs)
            try:
                return await self.circuit_breaker.execute(func, *args, **kwargs)
            except Exception as e:
                if is_circuit_rejection(e):
                    raise AbortRetry(e)
                raise

        return await execute_with_retry(
            attempt,
            self.retry_policy,
            sleep=self._sleep,
            logger=self._logger,
            name=f"{self.name}.{getattr(func, '__name__', 'operation')}"
        )

    def get_status(self) -> Dict[str, Any]:
        """Get client status including circuit breaker state."""
        status = {
            "name": self.name,
            "retry_policy": {
                "max_attempts": self.retry_policy.max_attempts,
                "base_delay_seconds": self.retry_policy.base_delay,
                "strategy": self.retry_policy.strategy.value,
            }
        }

        if self.circuit_breaker:
            status["circuit_breaker"] = self.circuit_breaker.get_status()

        return status


async def _call(func: Callable[..., Any], *args, **kwargs) -> Any:
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result
