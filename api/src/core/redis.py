# ruff: noqa: PLW0603
"""Redis connection management.

Provides the async Redis client used for:
- Pub/Sub relay of forum events between API workers
- Per-user write rate limiting
"""

import redis.asyncio as redis

from src.config import get_settings
from src.core.logging import get_logger


logger = get_logger(__name__)

_redis_client: redis.Redis | None = None


async def init_redis() -> redis.Redis:
    """Initialize Redis connection pool."""
    global _redis_client

    settings = get_settings()

    _redis_client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )

    try:
        await _redis_client.ping()
        logger.info("redis_connected", url=settings.redis_url)
    except redis.ConnectionError as e:
        logger.warning("redis_connection_failed", error=str(e))
        _redis_client = None
        raise

    return _redis_client


async def shutdown_redis() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client:
        await _redis_client.aclose()
        logger.info("redis_disconnected")
        _redis_client = None


def get_redis() -> redis.Redis | None:
    """Get Redis client instance."""
    return _redis_client


# Pub/Sub channel names
def forum_events_channel() -> str:
    """Channel every API worker publishes forum events to."""
    return get_settings().fanout_channel


def rate_limit_key(scope: str, subject: str) -> str:
    return f"rate_limit:forum:{scope}:{subject}"


async def check_rate_limit(
    client: redis.Redis | None,
    key: str,
    limit: int,
    window: int = 60,
) -> tuple[bool, int]:
    """Count one hit against ``key`` and report whether it is within ``limit``.

    Uses INCR with a TTL set on the first hit of each window. Fails open when
    Redis is missing or errors so the forum stays writable.

    Returns:
        Tuple of (is_allowed, remaining)
    """
    if client is None:
        return True, limit

    try:
        current = await client.incr(key)
        if current == 1:
            await client.expire(key, window)
    except redis.RedisError as e:
        logger.error(
            "rate_limit_redis_error",
            key=key,
            error=str(e),
            action="allowing_request",
        )
        return True, limit

    is_allowed = current <= limit
    if not is_allowed:
        logger.warning("rate_limit_exceeded", key=key, current=current, limit=limit)
    return is_allowed, max(0, limit - current)
