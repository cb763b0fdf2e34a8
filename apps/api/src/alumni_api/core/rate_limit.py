"""
Per-key request budgets for admin moderation endpoints.

Each key gets ``limit`` hits per sliding window of ``window_seconds``.
Hits are kept as a Redis sorted set scored by timestamp; if Redis is down
the budget is tracked in this process only.
"""

import logging
import time

from fastapi import HTTPException, status

from alumni_api.core import redis as core_redis

logger = logging.getLogger(__name__)

# key -> hit timestamps inside the current window
_local_hits: dict[str, list[float]] = {}


class RateLimitExceeded(HTTPException):
    def __init__(self, limit: int, window_seconds: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": f"Too many requests: at most {limit} every {window_seconds} seconds.",
                "retry_after_seconds": window_seconds,
            },
            headers={"Retry-After": str(window_seconds)},
        )


async def _redis_hit(client, key: str, limit: int, window_seconds: int) -> bool:
    now = time.time()

    pipe = client.pipeline()
    pipe.zremrangebyscore(key, 0, now - window_seconds)
    pipe.zcard(key)
    pipe.zadd(key, {str(now): now})
    pipe.expire(key, window_seconds)
    _, hits_before, _, _ = await pipe.execute()

    return hits_before < limit


def _local_hit(key: str, limit: int, window_seconds: int) -> bool:
    now = time.time()
    hits = [ts for ts in _local_hits.get(key, ()) if ts > now - window_seconds]

    allowed = len(hits) < limit
    if allowed:
        hits.append(now)
    _local_hits[key] = hits
    return allowed


async def check_rate_limit(key: str, limit: int, window_seconds: int) -> bool:
    """
    Record a hit on ``key``.

    Returns:
        False when the key had already used its budget for the window
    """
    client = core_redis.redis_client
    if client is not None:
        try:
            return await _redis_hit(client, key, limit, window_seconds)
        except Exception as e:
            logger.warning(f"Rate limit for {key} falling back to local counter: {e}")

    return _local_hit(key, limit, window_seconds)


async def enforce_rate_limit(key: str, limit: int, window_seconds: int) -> None:
    """
    Raises:
        RateLimitExceeded: 429 with a Retry-After header
    """
    if await check_rate_limit(key, limit, window_seconds):
        return
    logger.warning(f"{key} over budget ({limit} per {window_seconds}s)")
    raise RateLimitExceeded(limit, window_seconds)


def reset_memory_store() -> None:
    _local_hits.clear()
