"""
Redis client for distributed class locks.
Separated from business logic for clean architecture.
"""

import redis.asyncio as redis

from enrollment.core.logging import get_logger

logger = get_logger(__name__)


def create_redis(url: str) -> redis.Redis:
    """
    Build an asyncio Redis client with connection pooling.
    No I/O happens until the first command.
    """
    return redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        retry_on_timeout=True,
        health_check_interval=30,
    )


async def close_redis(client: redis.Redis) -> None:
    try:
        await client.aclose()
    except redis.RedisError as e:
        logger.warning("redis_close_failed", error=str(e))
