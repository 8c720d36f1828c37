"""
Redis client construction.

The ride offer ledger is the only Redis user. The client is created once
per application lifespan and shared by reference.
"""

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from geodispatch.app.core.config import Settings

logger = logging.getLogger(__name__)


def create_redis(settings: Settings) -> redis.Redis:
    """Create an async Redis client from settings."""
    return redis.from_url(
        settings.redis_url,
        decode_responses=settings.redis_decode_responses,
    )


async def ping_redis(client) -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return bool(await client.ping())
    except (RedisError, OSError) as exc:
        logger.warning("Redis ping failed: %s", exc)
        return False
