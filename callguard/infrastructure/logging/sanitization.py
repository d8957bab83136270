"""
Context sanitization for logs and wire payloads.

Error context is free-form and may carry credentials or diagnostic state.
Everything that leaves the process, whether as a log line or as the
``details`` of an error response, passes through LogSanitizer first.
"""

import re
from copy import deepcopy
from typing import Any, Dict, FrozenSet, List, Optional

import structlog


class LogSanitizer:
    """Redacts sensitive data from nested dictionaries and strings."""

    # Sensitive field patterns (case-insensitive substring match)
    SENSITIVE_FIELD_PATTERNS = frozenset({
        'password', 'passwd', 'secret', 'token', 'api_key', 'apikey',
        'authorization', 'bearer', 'private_key', 'credential', 'cookie',
        'session_id', 'session_key', 'credit_card', 'card_number', 'ssn'
    })

    # Diagnostic fields that never leave the process
    DROPPED_FIELDS = frozenset({'stack', 'stacktrace', 'stack_trace', 'traceback', 'exc_info'})

    SENSITIVE_VALUE_PATTERNS = [
        # JWT tokens
        r'\beyJ[A-Za-z0-9-_]+\.[A-Za-z0-9-_]+\.[A-Za-z0-9-_]*\b',
        # Bearer credentials
        r'\bBearer\s+[A-Za-z0-9\-._~+/]+=*',
        # Credit card numbers
        r'\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b',
        # Email addresses
        r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b',
    ]

    REPLACEMENT_TEXT = "***REDACTED***"

    def __init__(self, field_patterns: Optional[FrozenSet[str]] = None):
        self.field_patterns = field_patterns if field_patterns is not None else self.SENSITIVE_FIELD_PATTERNS

    def is_sensitive_field(self, key: Any) -> bool:
        lowered = str(key).lower()
        return any(pattern in lowered for pattern in self.field_patterns)

    def sanitize_dict(self, data: Dict[str, Any], max_depth: int = 10) -> Dict[str, Any]:
        """
        Recursively sanitize a dictionary.

        Args:
            data: Dictionary to sanitize
            max_depth: Maximum recursion depth

        Returns:
            New dictionary with sensitive fields redacted and diagnostic
            fields removed
        """
        if max_depth <= 0:
            return {"error": "max_depth_reached"}

        if not isinstance(data, dict):
            return self._sanitize_value(data)

        sanitized = {}

        for key, value in data.items():
            if str(key).lower() in self.DROPPED_FIELDS:
                continue
            if self.is_sensitive_field(key):
                sanitized[key] = self.REPLACEMENT_TEXT
            elif isinstance(value, dict):
                sanitized[key] = self.sanitize_dict(value, max_depth - 1)
            elif isinstance(value, (list, tuple)):
                sanitized[key] = self._sanitize_list(value, max_depth - 1)
            else:
                sanitized[key] = self._sanitize_value(value)

        return sanitized

    def _sanitize_list(self, data: List[Any], max_depth: int) -> List[Any]:
        if max_depth <= 0:
            return ["max_depth_reached"]

        sanitized = []
        for item in data:
            if isinstance(item, dict):
                sanitized.append(self.sanitize_dict(item, max_depth - 1))
            elif isinstance(item, (list, tuple)):
                sanitized.append(self._sanitize_list(item, max_depth - 1))
            else:
                sanitized.append(self._sanitize_value(item))

        return sanitized

    def _sanitize_value(self, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        return self.sanitize_string(value)

    def sanitize_string(self, text: str) -> str:
        """Replace sensitive substrings in free text."""
        if not isinstance(text, str):
            return str(text)

        sanitized = text
        for pattern in self.SENSITIVE_VALUE_PATTERNS:
            sanitized = re.sub(pattern, self.REPLACEMENT_TEXT, sanitized, flags=re.IGNORECASE)

        return sanitized

    def sanitize_url(self, url: str) -> str:
        """Strip credentials and secret query parameters from a URL."""
        if not isinstance(url, str):
            return str(url)

        # user:pass@host
        sanitized = re.sub(r'://[^@/]+@', '://***:***@', url)

        for param in ('token', 'key', 'secret', 'password', 'auth', 'api_key'):
            sanitized = re.sub(
                rf'([?&]){param}=[^&]*',
                rf'\g<1>{param}={self.REPLACEMENT_TEXT}',
                sanitized,
                flags=re.IGNORECASE
            )

        return sanitized


class StructlogSanitizer:
    """Structlog processor that sanitizes every event before rendering."""

    def __init__(self, sanitizer: Optional[LogSanitizer] = None):
        self.sanitizer = sanitizer or LogSanitizer()

    def __call__(self, logger, method_name, event_dict):
        # exc_info must reach the exception renderer untouched
        exc_info = event_dict.get("exc_info")
        sanitized_event = self.sanitizer.sanitize_dict(deepcopy(
            {k: v for k, v in event_dict.items() if k != "exc_info"}
        ))

        if 'url' in sanitized_event:
            sanitized_event['url'] = self.sanitizer.sanitize_url(sanitized_event['url'])

        if exc_info is not None:
            sanitized_event["exc_info"] = exc_info

        return sanitized_event


class LogSanitizationConfig:
    """Chooses sanitization strictness per environment."""

    MINIMAL_FIELD_PATTERNS = frozenset({'password', 'secret', 'token', 'api_key', 'private_key'})

    def __init__(self, environment: str = "production"):
        self.environment = environment.lower()

    @property
    def sanitization_level(self) -> str:
        if self.environment == 'production':
            return 'strict'
        elif self.environment == 'staging':
            return 'moderate'
        else:
            return 'minimal'

    def get_sanitizer(self) -> LogSanitizer:
        """Get configured sanitizer for the environment."""
        if self.sanitization_level == 'minimal':
            # Only obvious secrets in development
            return LogSanitizer(field_patterns=self.MINIMAL_FIELD_PATTERNS)
        return LogSanitizer()

    def get_processor(self) -> StructlogSanitizer:
        return StructlogSanitizer(self.get_sanitizer())
