"""Redis async connection pool."""

import redis.asyncio as aioredis
from redis.exceptions import RedisError


def build_redis(redis_url: str) -> aioredis.Redis:
    """Return a Redis client backed by its own connection pool."""
    pool = aioredis.ConnectionPool.from_url(redis_url, decode_responses=True)
    return aioredis.Redis(connection_pool=pool)


async def ping(client: aioredis.Redis) -> bool:
    try:
        return bool(await client.ping())
    except RedisError:
        return False
