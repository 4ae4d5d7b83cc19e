
import redis.asyncio as redis

from core.config import settings

_redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Get Redis client instance."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_client


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


async def hit_rate_limit(client: redis.Redis, key: str, limit: int, window_seconds: int) -> bool:
    """
    Count one hit against a fixed-window limit.

    Args:
        client: Redis client
        key: Counter key (already namespaced by the caller)
        limit: Maximum hits allowed per window
        window_seconds: Window length; starts at the first hit

    Returns:
        True if the hit exceeds the limit
    """
    count = await client.incr(key)
    if count == 1:
        await client.expire(key, window_seconds)
    return count > limit
