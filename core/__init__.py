"""Core modules for the calendar sync service."""

from core.health import (
    HealthChecker,
    HealthCheckResult,
    HealthStatus,
)
from core.logging import JSONFormatter, setup_logging

__all__ = [
    "HealthChecker",
    "HealthCheckResult",
    "HealthStatus",
    "JSONFormatter",
    "setup_logging",
]
