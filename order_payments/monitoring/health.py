"""
Health checks for liveness/readiness probes.

Checks:
- Database connectivity
- Redis connectivity (when the order lock is Redis-backed)
- Gateway configuration and circuit state
"""
from typing import TYPE_CHECKING, Any, Dict, Optional

import redis.asyncio as aioredis
import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_payments.config import Settings, get_settings
from order_payments.database.connection import get_session_factory

if TYPE_CHECKING:
    from order_payments.integrations.gateway import PaymentGateway

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """Health check service for the processor's dependencies."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        gateway: Optional["PaymentGateway"] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._session_factory = session_factory
        self.gateway = gateway

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Raises:
            HealthCheckError: If database check fails
        """
        try:
            session_factory = self._session_factory or get_session_factory()
            async with session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()

                return {
                    "status": "healthy",
                    "service": "database",
                    "message": "Database connection successful",
                }

        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {str(e)}")

    async def check_redis(self) -> Dict[str, Any]:
        """
        Check Redis connectivity.

        Raises:
            HealthCheckError: If Redis check fails
        """
        redis_client: aioredis.Redis | None = None
        try:
            redis_client = aioredis.from_url(
                self.settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            await redis_client.ping()

            return {
                "status": "healthy",
                "service": "redis",
                "message": "Redis connection successful",
            }

        except Exception as e:
            logger.error("redis_health_check_failed", error=str(e))
            raise HealthCheckError(f"Redis health check failed: {str(e)}")

        finally:
            if redis_client:
                await redis_client.aclose()

    async def check_gateway(self) -> Dict[str, Any]:
        """Report gateway configuration; an open circuit counts as unhealthy."""
        if self.gateway is None:
            return {"status": "healthy", "service": "gateway", "message": "Not configured"}
        result = await self.gateway.health_check()
        if not result.get("healthy", False):
            raise HealthCheckError(f"Gateway unavailable: {result}")
        return {"service": "gateway", **result, "status": "healthy"}

    async def check_all(self) -> Dict[str, Any]:
        """Run all health checks."""
        checks: Dict[str, Any] = {}
        all_healthy = True

        probes = [("database", self.check_database), ("gateway", self.check_gateway)]
        if self.settings.lock_backend == "redis":
            probes.append(("redis", self.check_redis))

        for name, probe in probes:
            try:
                checks[name] = await probe()
            except HealthCheckError as e:
                checks[name] = {"status": "unhealthy", "service": name, "error": str(e)}
                all_healthy = False

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        """
        Liveness probe.

        Does not check external dependencies.
        """
        return {
            "status": "alive",
            "message": "Application is running",
        }

    async def readiness(self) -> Dict[str, Any]:
        """Readiness probe: all dependencies must be available."""
        return await self.check_all()
