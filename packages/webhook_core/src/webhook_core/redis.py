"""
Redis client utilities.

Provides lazy-initialized Redis client to avoid import-time connections.
"""

import functools

import redis

from webhook_core.settings import get_settings


@functools.lru_cache()
def get_redis_client() -> redis.Redis:
    """
    Get Redis client (cached).

    This function lazily initializes the Redis client to avoid import-time connections.
    """
    return redis.from_url(get_settings().REDIS_URL, decode_responses=True)


def close_redis_client() -> None:
    """Close the cached client, if one was created."""
    if get_redis_client.cache_info().currsize:
        get_redis_client().close()
    get_redis_client.cache_clear()
