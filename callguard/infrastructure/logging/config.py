"""
Structured logging configuration.

Installs the structlog processor chain used by the resilience components and
the request boundary. Nothing here runs on import; services call
configure_logging() once at startup.
"""

import logging
import os
import sys
from typing import Optional

import structlog

from callguard.infrastructure.logging.sanitization import LogSanitizationConfig


def configure_logging(
    environment: Optional[str] = None,
    level: Optional[str] = None,
    json_output: Optional[bool] = None
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        environment: Deployment environment, defaults to $ENVIRONMENT or "production"
        level: Log level name, defaults to $LOG_LEVEL or "INFO"
        json_output: Render JSON lines instead of console output, defaults to
            $LOG_JSON, or true outside development
    """
    environment = (environment or os.getenv("ENVIRONMENT", "production")).lower()
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    if json_output is None:
        json_output = os.getenv("LOG_JSON", str(environment != "development")).lower() == "true"

    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level, force=True)

    if json_output:
        renderers = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        # ConsoleRenderer formats exceptions itself
        renderers = [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            LogSanitizationConfig(environment).get_processor(),
            *renderers,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
