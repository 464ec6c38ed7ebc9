"""
Redis connection for the public tracking cache.

The cache is optional at runtime: short socket timeouts keep an unreachable
Redis from stalling tracking reads, which then fall back to the database.
"""

import redis.asyncio as redis
from cargo_backend.app.core.config import settings


redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
    socket_timeout=settings.redis_socket_timeout_seconds,
    socket_connect_timeout=settings.redis_socket_timeout_seconds,
)


async def ping_redis() -> bool:
    """Report whether the cache answers; used by /health."""
    try:
        return bool(await redis_client.ping())
    except redis.RedisError:
        return False


async def close_redis() -> None:
    await redis_client.aclose()
