"""Health check endpoints."""

from fastapi import APIRouter, Request

from commentgate.config import get_settings
from commentgate.core.database import AsyncCassandraConnection
from commentgate.core.logging import get_logger
from commentgate.core.redis import get_redis


logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


async def _redis_status() -> str:
    client = get_redis()
    if client is None:
        return "disabled"
    try:
        await client.ping()
    except Exception as e:
        logger.warning("health_redis_failed", error=str(e))
        return "unavailable"
    return "ok"


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool]:
    """Readiness probe - reports storage and cache availability.

    Redis is optional, so only Cassandra decides ``ready``.
    """
    settings = get_settings()
    cassandra_ok = AsyncCassandraConnection.is_connected() and (
        getattr(request.app.state, "comment_service", None) is not None
    )
    return {
        "status": "ready" if cassandra_ok else "degraded",
        "environment": settings.environment,
        "debug": settings.debug,
        "cassandra": "ok" if cassandra_ok else "unavailable",
        "redis": await _redis_status(),
    }


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
