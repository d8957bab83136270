"""
Error taxonomy for callguard.

Every failure surfaced by the toolkit is a single ApplicationError value
tagged with an ErrorKind. The kind fixes the wire status code and whether the
failure is operational (an expected failure mode) or a programming defect.
"""

import functools
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

T = TypeVar('T')

DEFAULT_ERROR_MESSAGE = "An error occurred"


class ErrorKind(str, Enum):
    """Error kinds, valued by their wire code."""
    VALIDATION = "VALIDATION_ERROR"
    AUTHENTICATION = "AUTHENTICATION_ERROR"
    AUTHORIZATION = "AUTHORIZATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    FILE_UPLOAD = "FILE_UPLOAD_ERROR"
    FILE_PROCESSING = "FILE_PROCESSING_ERROR"
    EXTERNAL_SERVICE_FAILURE = "EXTERNAL_SERVICE_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    TIMEOUT_EXCEEDED = "TIMEOUT_ERROR"


@dataclass(frozen=True)
class KindSpec:
    """Wire status and operational flag for an error kind."""
    status_code: int
    is_operational: bool


ERROR_KIND_TABLE: Dict[ErrorKind, KindSpec] = {
    ErrorKind.VALIDATION: KindSpec(400, True),
    ErrorKind.AUTHENTICATION: KindSpec(401, True),
    ErrorKind.AUTHORIZATION: KindSpec(403, True),
    ErrorKind.NOT_FOUND: KindSpec(404, True),
    ErrorKind.CONFLICT: KindSpec(409, True),
    ErrorKind.RATE_LIMIT_EXCEEDED: KindSpec(429, True),
    ErrorKind.INTERNAL_SERVER_ERROR: KindSpec(500, False),
    ErrorKind.FILE_UPLOAD: KindSpec(400, True),
    ErrorKind.FILE_PROCESSING: KindSpec(500, True),
    ErrorKind.EXTERNAL_SERVICE_FAILURE: KindSpec(502, True),
    ErrorKind.SERVICE_UNAVAILABLE: KindSpec(503, True),
    ErrorKind.TIMEOUT_EXCEEDED: KindSpec(504, True),
}


class ConfigurationError(ValueError):
    """Raised when a retry policy or circuit breaker is misconfigured."""
    pass


class ApplicationError(Exception):
    """
    Classified application failure.

    The status code and operational flag are looked up from the kind, so a
    kind and its status can never disagree.
    """

    def __init__(self, kind: ErrorKind, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.kind = ErrorKind(kind)
        self.message = message
        self.context = context

    @property
    def status_code(self) -> int:
        return ERROR_KIND_TABLE[self.kind].status_code

    @property
    def is_operational(self) -> bool:
        return ERROR_KIND_TABLE[self.kind].is_operational

    def __reduce__(self):
        return (type(self), (self.kind, self.message, self.context))

    def __repr__(self) -> str:
        return f"ApplicationError(kind={self.kind.value!r}, message={self.message!r})"


# Named constructors, one per kind

def validation_error(message: str, context: Optional[Dict[str, Any]] = None) -> ApplicationError:
    return ApplicationError(ErrorKind.VALIDATION, message, context)


def authentication_error(
    message: str = "Authentication failed", context: Optional[Dict[str, Any]] = None
) -> ApplicationError:
    return ApplicationError(ErrorKind.AUTHENTICATION, message, context)


def authorization_error(
    message: str = "Insufficient permissions", context: Optional[Dict[str, Any]] = None
) -> ApplicationError:
    return ApplicationError(ErrorKind.AUTHORIZATION, message, context)


def not_found(
    resource: str, identifier: Optional[str] = None, context: Optional[Dict[str, Any]] = None
) -> ApplicationError:
    """Missing resource, optionally naming the identifier that was looked up."""
    if identifier:
        message = f"{resource} with identifier '{identifier}' not found"
    else:
        message = f"{resource} not found"
    return ApplicationError(ErrorKind.NOT_FOUND, message, context)


def conflict(message: str, context: Optional[Dict[str, Any]] = None) -> ApplicationError:
    return ApplicationError(ErrorKind.CONFLICT, message, context)


def rate_limit_exceeded(
    message: str = "Too many requests", context: Optional[Dict[str, Any]] = None
) -> ApplicationError:
    return ApplicationError(ErrorKind.RATE_LIMIT_EXCEEDED, message, context)


def internal_server_error(
    message: str = "An unexpected error occurred", context: Optional[Dict[str, Any]] = None
) -> ApplicationError:
    return ApplicationError(ErrorKind.INTERNAL_SERVER_ERROR, message, context)


def file_upload_error(message: str, context: Optional[Dict[str, Any]] = None) -> ApplicationError:
    return ApplicationError(ErrorKind.FILE_UPLOAD, message, context)


def file_processing_error(message: str, context: Optional[Dict[str, Any]] = None) -> ApplicationError:
    return ApplicationError(ErrorKind.FILE_PROCESSING, message, context)


def service_unavailable(service: str, context: Optional[Dict[str, Any]] = None) -> ApplicationError:
    return ApplicationError(ErrorKind.SERVICE_UNAVAILABLE, f"Service '{service}' is unavailable", context)


def external_service_error(
    service: str,
    cause: Optional[BaseException] = None,
    context: Optional[Dict[str, Any]] = None
) -> ApplicationError:
    """Third-party failure; the cause's message is folded into the error message."""
    cause_message = str(cause) if cause is not None and str(cause) else None
    message = f"External service '{service}' error: {cause_message or 'Unknown error'}"
    return ApplicationError(
        ErrorKind.EXTERNAL_SERVICE_FAILURE,
        message,
        {**(context or {}), "service": service, "original_error": cause_message}
    )


def timeout_exceeded(
    operation: str, timeout_seconds: float, context: Optional[Dict[str, Any]] = None
) -> ApplicationError:
    return ApplicationError(
        ErrorKind.TIMEOUT_EXCEEDED,
        f"Operation '{operation}' timed out after {timeout_seconds}s",
        {**(context or {}), "operation": operation, "timeout_seconds": timeout_seconds}
    )


def classify(raw: Any, default_message: str = DEFAULT_ERROR_MESSAGE) -> ApplicationError:
    """
    Classify any failure value into an ApplicationError.

    Already classified errors are returned unchanged. Other exceptions become
    INTERNAL_SERVER_ERROR keeping their message when they have one; any other
    value is recorded by its string form under the default message.

    Args:
        raw: Exception or arbitrary failure value
        default_message: Message used when the failure carries none

    Returns:
        Classified error (never raises)
    """
    if isinstance(raw, ApplicationError):
        return raw

    if isinstance(raw, BaseException):
        return internal_server_error(
            str(raw) or default_message,
            {"original_error": type(raw).__name__}
        )

    return internal_server_error(default_message, {"original_error": str(raw)})


def is_operational(error: BaseException) -> bool:
    """Non-taxonomy failures are treated as programming defects."""
    if isinstance(error, ApplicationError):
        return error.is_operational
    return False


def status_code_of(error: BaseException) -> int:
    """Wire status for an error; 500 for anything outside the taxonomy."""
    if isinstance(error, ApplicationError):
        return error.status_code
    return 500


def handle_errors(
    default_message: str = DEFAULT_ERROR_MESSAGE
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator converting any exception raised by an async function into an
    ApplicationError.

    Args:
        default_message: Message used for failures without one

    Returns:
        Decorated coroutine function that only raises ApplicationError
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except ApplicationError:
                raise
            except Exception as e:
                raise classify(e, default_message) from e

        return wrapper
    return decorator
