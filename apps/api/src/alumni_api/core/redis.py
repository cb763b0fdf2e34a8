"""
Shared Redis connection.

Backs the admin rate limits and the per-address resend counter. The app
keeps running without it: ``get_redis`` then yields None and callers
decide how to degrade.
"""

from redis.asyncio import Redis, from_url

from alumni_api.core.config import settings

redis_client: Redis | None = None


async def init_redis() -> Redis:
    """Connect and ping. Raises if Redis cannot be reached."""
    global redis_client

    client = from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    await client.ping()
    redis_client = client
    return client


async def get_redis() -> Redis | None:
    return redis_client


async def close_redis() -> None:
    global redis_client

    client, redis_client = redis_client, None
    if client is not None:
        await client.aclose()
