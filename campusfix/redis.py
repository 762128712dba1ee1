"""Redis connection management for the change feed."""

import redis.asyncio as aioredis

from campusfix.logging_config import get_logger

logger = get_logger(__name__)

_redis: aioredis.Redis | None = None


def get_redis() -> aioredis.Redis:
    """Get the shared Redis connection. Must be initialized first via init_redis()."""
    if _redis is None:
        raise RuntimeError("Redis not initialized, app not started")
    return _redis


async def init_redis(url: str) -> aioredis.Redis:
    """Initialize the global Redis connection and check it answers."""
    global _redis
    _redis = aioredis.from_url(url, decode_responses=True)
    await _redis.ping()
    logger.info("redis_connected", url=url)
    return _redis


async def close_redis() -> None:
    """Close the Redis connection."""
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None
        logger.info("redis_connection_closed")
