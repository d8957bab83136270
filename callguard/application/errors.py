"""
Wire serialization of classified errors and the FastAPI request boundary.

Request handlers never build error bodies themselves: any failure that
reaches the boundary is classified, logged according to whether it is
operational, and written out through format_for_wire.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from callguard.application.models import ErrorResponse
from callguard.infrastructure.logging.sanitization import LogSanitizer
from callguard.shared.types import CorrelationID
from callguard.shared.exceptions import (
    ApplicationError, ErrorKind, internal_server_error, status_code_of
)

CORRELATION_ID_HEADER = "X-Correlation-ID"


def format_for_wire(
    error: BaseException,
    path: Optional[str] = None,
    correlation_id: Optional[CorrelationID] = None,
    sanitize: bool = True,
    sanitizer: Optional[LogSanitizer] = None
) -> ErrorResponse:
    """
    Project an error onto the wire contract.

    Args:
        error: Classified or raw error
        path: Request path, included only when given
        correlation_id: Cross-service trace id, included only when given
        sanitize: Redact sensitive fields from the attached context
        sanitizer: Sanitizer to use instead of the default one

    Returns:
        ErrorResponse stamped with the current UTC time
    """
    details = None
    if isinstance(error, ApplicationError):
        kind = error.kind
        message = error.message
        if error.context is not None:
            details = error.context
            if sanitize:
                details = (sanitizer or LogSanitizer()).sanitize_dict(details)
    else:
        kind = ErrorKind.INTERNAL_SERVER_ERROR
        message = str(error)

    return ErrorResponse(
        error=kind,
        message=message,
        status_code=status_code_of(error),
        timestamp=datetime.now(timezone.utc).isoformat(),
        path=path or None,
        correlation_id=correlation_id or None,
        details=details,
    )


def _json_error(request: Request, error: ApplicationError) -> JSONResponse:
    correlation_id = request.headers.get(CORRELATION_ID_HEADER)
    body = format_for_wire(error, path=request.url.path, correlation_id=correlation_id)

    headers = {CORRELATION_ID_HEADER: correlation_id} if correlation_id else None
    return JSONResponse(status_code=error.status_code, content=body.to_wire(), headers=headers)


def setup_exception_handlers(app: FastAPI, logger=None) -> None:
    """
    Register handlers translating failures into wire-safe JSON responses.

    Args:
        app: Application to install the handlers on
        logger: Logger for failure reports, defaults to this module's logger
    """
    log = logger or structlog.get_logger(__name__)

    @app.exception_handler(ApplicationError)
    async def application_error_handler(request: Request, exc: ApplicationError):
        event = dict(
            error_kind=exc.kind.value,
            error_message=exc.message,
            status_code=exc.status_code,
            path=request.url.path,
            correlation_id=request.headers.get(CORRELATION_ID_HEADER),
        )
        if exc.is_operational:
            log.warning("Operational error occurred", **event)
        else:
            log.error("Application defect occurred", details=exc.context, exc_info=exc, **event)

        return _json_error(request, exc)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        log.error(
            "Unexpected error occurred",
            error_type=type(exc).__name__,
            error_message=str(exc),
            request_method=request.method,
            path=request.url.path,
            correlation_id=request.headers.get(CORRELATION_ID_HEADER),
            exc_info=exc,
        )

        # The raw message may carry internals, so it stays in the log
        return _json_error(request, internal_server_error())
