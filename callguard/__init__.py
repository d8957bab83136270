"""
callguard: resilience toolkit for calls between cooperating services.

Provides a typed error taxonomy with a wire-safe representation, a retry
executor with configurable backoff, and a circuit breaker.
"""

from callguard.shared.types import BackoffStrategy, CircuitBreakerState, CorrelationID
from callguard.shared.exceptions import (
    ApplicationError,
    ConfigurationError,
    ErrorKind,
    classify,
    handle_errors,
    is_operational,
    status_code_of,
    validation_error,
    authentication_error,
    authorization_error,
    not_found,
    conflict,
    rate_limit_exceeded,
    internal_server_error,
    file_upload_error,
    file_processing_error,
    service_unavailable,
    external_service_error,
    timeout_exceeded
)
from callguard.application.models import ErrorResponse
from callguard.application.errors import format_for_wire, setup_exception_handlers
from callguard.infrastructure.resilience import (
    AbortRetry,
    RetryPolicy,
    execute_with_retry,
    retry,
    CircuitBreakerConfig,
    CircuitBreaker,
    CircuitBreakerRegistry,
    circuit_breaker,
    is_circuit_rejection,
    ResilientClient
)

__version__ = "1.0.0"

__all__ = [
    "BackoffStrategy",
    "CircuitBreakerState",
    "CorrelationID",
    "ApplicationError",
    "ConfigurationError",
    "ErrorKind",
    "classify",
    "handle_errors",
    "is_operational",
    "status_code_of",
    "validation_error",
    "authentication_error",
    "authorization_error",
    "not_found",
    "conflict",
    "rate_limit_exceeded",
    "internal_server_error",
    "file_upload_error",
    "file_processing_error",
    "service_unavailable",
    "external_service_error",
    "timeout_exceeded",
    "ErrorResponse",
    "format_for_wire",
    "setup_exception_handlers",
    "AbortRetry",
    "RetryPolicy",
    "execute_with_retry",
    "retry",
    "CircuitBreakerConfig",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "circuit_breaker",
    "is_circuit_rejection",
    "ResilientClient",
]
