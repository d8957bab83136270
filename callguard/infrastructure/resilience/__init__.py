"""
Resilience patterns for calls between cooperating services.

This module provides a retry executor with linear or exponential backoff,
a circuit breaker, and a client composing the two.
"""

from .retry import (
    AbortRetry,
    RetryPolicy,
    execute_with_retry,
    retry
)
from .circuit_breaker import (
    HALF_OPEN_SUCCESS_THRESHOLD,
    CircuitBreakerConfig,
    CircuitBreaker,
    CircuitBreakerRegistry,
    circuit_breaker,
    is_circuit_rejection
)
from .client import ResilientClient

__all__ = [
    "AbortRetry",
    "RetryPolicy",
    "execute_with_retry",
    "retry",
    "HALF_OPEN_SUCCESS_THRESHOLD",
    "CircuitBreakerConfig",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "circuit_breaker",
    "is_circuit_rejection",
    "ResilientClient"
]
