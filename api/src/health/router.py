"""Health check endpoints."""

from typing import Any

from fastapi import APIRouter, Request

from src.config import get_settings
from src.core.redis import get_redis


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, Any]:
    """Readiness probe - the forum store and the event hub must be up."""
    settings = get_settings()
    hub = getattr(request.app.state, "forum_hub", None)
    store = getattr(request.app.state, "thread_store", None)
    ready = store is not None and hub is not None and hub.is_running
    return {
        "status": "ready" if ready else "starting",
        "environment": settings.environment,
        "debug": settings.debug,
    }


@router.get("")
async def health(request: Request) -> dict[str, Any]:
    """General health check endpoint."""
    settings = get_settings()
    hub = getattr(request.app.state, "forum_hub", None)
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "redis": get_redis() is not None,
        "cassandra": settings.cassandra_enabled,
        "realtime": hub.stats() if hub is not None else None,
    }
