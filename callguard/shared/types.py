"""
Type definitions for callguard.

This module contains the custom type definitions shared by the error
taxonomy and the resilience components.
"""

from typing import NewType
from enum import Enum

# Cross-service trace token, generated and propagated by callers
CorrelationID = NewType('CorrelationID', str)

# Time-related types
DurationSeconds = NewType('DurationSeconds', float)


class BackoffStrategy(str, Enum):
    """Delay growth between retry attempts."""
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class CircuitBreakerState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"
