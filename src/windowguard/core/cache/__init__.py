"""Redis connection management."""

from windowguard.core.cache.redis import RedisPoolHolder, close_redis_pool, redis_client


__all__ = [
    "RedisPoolHolder",
    "close_redis_pool",
    "redis_client",
]
