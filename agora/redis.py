"""Shared Redis connection for live debate events and the request throttle.

Both users degrade to no-ops when Redis is absent, so the connection is
optional: ``get_redis_optional`` returns None until ``init_redis`` succeeds.
"""

import redis.asyncio as aioredis

_redis: aioredis.Redis | None = None


def get_redis_optional() -> aioredis.Redis | None:
    return _redis


async def init_redis(url: str) -> aioredis.Redis:
    """Connect and ping; the client is only installed once it answers."""
    global _redis
    client = aioredis.from_url(url, decode_responses=True)
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        raise
    _redis = client
    return client


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None
