"""Health status checks for the remote calendar system and the database."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from data.database import ping
from exceptions import RemoteError

logger = logging.getLogger(__name__)


@dataclass
class HealthCheckResult:
    """Represents the result of a health check."""

    service: str
    healthy: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    message: str = ""
    response_time_ms: float = 0.0
    error: Optional[str] = None


@dataclass
class HealthStatus:
    """Overall health status of the system."""

    healthy: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    checks: Dict[str, HealthCheckResult] = field(default_factory=dict)
    last_degradation: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "healthy": self.healthy,
            "timestamp": self.timestamp.isoformat(),
            "last_degradation": (
                self.last_degradation.isoformat()
                if self.last_degradation
                else None
            ),
            "checks": {
                name: {
                    "healthy": check.healthy,
                    "timestamp": check.timestamp.isoformat(),
                    "message": check.message,
                    "response_time_ms": check.response_time_ms,
                    "error": check.error,
                }
                for name, check in self.checks.items()
            },
        }


def _elapsed_ms(start_time: datetime) -> float:
    return (datetime.now(timezone.utc) - start_time).total_seconds() * 1000


class HealthChecker:
    """Performs health checks on the remote gateway and the local database."""

    def __init__(
        self,
        gateway: Optional[Any] = None,
        database_probe: Optional[Callable[[], None]] = None,
    ):
        """
        Initialize health checker.

        Args:
            gateway: Remote gateway instance
            database_probe: Callable raising on database failure (defaults to ``SELECT 1``)
        """
        self.gateway = gateway
        self.database_probe = database_probe or ping
        self.status = HealthStatus(healthy=True)

    async def check_remote_connectivity(self) -> HealthCheckResult:
        """Check the remote system answers its version probe."""
        start_time = datetime.now(timezone.utc)
        result = HealthCheckResult(service="remote", healthy=False, message="Not checked yet")

        if not self.gateway:
            result.error = "Remote gateway not initialized"
            return result

        try:
            version = await self.gateway.get_version()
            result.healthy = True
            server_version = version.get("server_version") if isinstance(version, dict) else None
            result.message = f"Remote server version {server_version or 'unknown'}"
        except RemoteError as e:
            result.error = str(e)
            result.message = f"Failed to reach remote system: {e.message}"
            logger.error(f"Remote health check failed: {e}")
        result.response_time_ms = _elapsed_ms(start_time)
        return result

    async def check_database(self) -> HealthCheckResult:
        """Check the database answers a trivial query."""
        start_time = datetime.now(timezone.utc)
        result = HealthCheckResult(service="database", healthy=False, message="Not checked yet")

        try:
            await asyncio.to_thread(self.database_probe)
            result.healthy = True
            result.message = "Database reachable"
        except Exception as e:
            result.error = str(e)
            result.message = "Database query failed"
            logger.error(f"Database health check failed: {e}")
        result.response_time_ms = _elapsed_ms(start_time)
        return result

    async def perform_all_checks(self) -> HealthStatus:
        """Perform all health checks and return overall status."""
        remote_result, database_result = await asyncio.gather(
            self.check_remote_connectivity(),
            self.check_database(),
        )

        previous_healthy = self.status.healthy
        self.status.checks = {
            "remote": remote_result,
            "database": database_result,
        }
        self.status.healthy = remote_result.healthy and database_result.healthy
        self.status.timestamp = datetime.now(timezone.utc)

        if not self.status.healthy and previous_healthy:
            self.status.last_degradation = datetime.now(timezone.utc)
            logger.warning("System health degradation detected")

        logger.info(f"Health check complete. System healthy: {self.status.healthy}")
        return self.status
