"""Structured logging setup and sanitization."""

from .config import configure_logging
from .sanitization import LogSanitizer, LogSanitizationConfig, StructlogSanitizer

__all__ = [
    "configure_logging",
    "LogSanitizer",
    "LogSanitizationConfig",
    "StructlogSanitizer",
]
