"""
Health check service for the location ping service.

Liveness only says the process answers. Readiness pings the location
store with a timeout, since every API operation needs it.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Any

logger = logging.getLogger(__name__)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class DependencyHealth:
    """
    Health status of a single dependency.

    Attributes:
        name: The name of the dependency (e.g., "elasticsearch")
        healthy: Whether the dependency is healthy and responding
        response_time_ms: The time taken to check the dependency in milliseconds
        error: Optional error message if the dependency check failed
    """
    name: str
    healthy: bool
    response_time_ms: float
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "name": self.name,
            "healthy": self.healthy,
            "response_time_ms": round(self.response_time_ms, 2),
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class HealthStatus:
    """
    Overall health status of the service.

    Attributes:
        status: "healthy" or "unhealthy"
        timestamp: When the health check was performed
        dependencies: List of individual dependency health statuses
    """
    status: str
    timestamp: str
    dependencies: list[DependencyHealth] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "dependencies": [dep.to_dict() for dep in self.dependencies],
        }


class HealthCheckService:
    """
    Service for checking the health of the location store.

    Attributes:
        store: The LocationStore to check
        check_timeout: Timeout in seconds for the store check
    """

    def __init__(self, store: Any, check_timeout: float = 5.0):
        self.store = store
        self.check_timeout = check_timeout

    async def check_readiness(self) -> HealthStatus:
        """
        Check the store and return an aggregate health status.

        The store is the only dependency, so the service is unhealthy
        whenever the store is.
        """
        store_health = await self._check_store()
        return HealthStatus(
            status="healthy" if store_health.healthy else "unhealthy",
            timestamp=_utc_timestamp(),
            dependencies=[store_health],
        )

    async def check_liveness(self) -> dict[str, Any]:
        """Simple liveness check - process is running."""
        return {
            "status": "alive",
            "timestamp": _utc_timestamp()
        }

    async def check_health(self) -> dict[str, Any]:
        """Basic health check - service is accepting requests."""
        return {
            "status": "ok",
            "timestamp": _utc_timestamp()
        }

    async def _check_store(self) -> DependencyHealth:
        """Ping the store with a timeout, recording how long it took."""
        name = getattr(self.store, "name", "store")
        start_time = time.perf_counter()
        error: Optional[str] = None

        try:
            if not await asyncio.wait_for(self.store.health_check(), timeout=self.check_timeout):
                error = f"{name} ping returned False"
        except asyncio.TimeoutError:
            error = f"{name} health check timed out after {self.check_timeout} seconds"
        except Exception as e:
            error = f"{name} health check failed: {e}"

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        if error is None:
            logger.debug(f"{name} health check passed in {elapsed_ms:.2f}ms")
        else:
            logger.warning(error, extra={"extra_data": {"dependency": name, "response_time_ms": elapsed_ms}})

        return DependencyHealth(
            name=name,
            healthy=error is None,
            response_time_ms=elapsed_ms,
            error=error,
        )
