"""Redis rate limit store.

Each window is a hash ``{counter, window_end}`` maintained by Lua scripts, so
increment-with-expiry runs atomically on the server. Abuse records are
hashes at ``{abuse_prefix}{key}:{window_end}``.
"""

import math
import time
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import redis.asyncio as redis
import structlog

from windowguard.core.cache.redis import close_redis_pool, redis_client
from windowguard.core.constants import REDIS_ABUSE_PREFIX
from windowguard.core.duration import to_ms
from windowguard.core.logging import hash_key
from windowguard.core.rate_limit.stores.base import AbuseEvent, Store, WindowState


if TYPE_CHECKING:
    from windowguard.core.rate_limit.options import RateLimitOptions


logger = structlog.get_logger()

# KEYS[1] window key; ARGV weight, now_ms, interval_ms, ttl_seconds.
# A missing window, an ended window, or a key without TTL starts over.
INCREMENT_SCRIPT = """
local window_end = tonumber(redis.call('HGET', KEYS[1], 'window_end'))
local ttl = redis.call('TTL', KEYS[1])
local now = tonumber(ARGV[2])
if window_end == nil or window_end <= now or ttl == -1 then
    window_end = now + tonumber(ARGV[3])
    redis.call('DEL', KEYS[1])
    redis.call('HSET', KEYS[1], 'counter', ARGV[1], 'window_end', window_end)
    redis.call('EXPIRE', KEYS[1], ARGV[4])
    return {tonumber(ARGV[1]), window_end}
end
local counter = redis.call('HINCRBY', KEYS[1], 'counter', ARGV[1])
return {counter, window_end}
"""

# KEYS[1] window key; ARGV weight, now_ms. Never creates a window.
DECREMENT_SCRIPT = """
local window_end = tonumber(redis.call('HGET', KEYS[1], 'window_end'))
if window_end == nil or window_end <= tonumber(ARGV[2]) then
    return -1
end
local counter = tonumber(redis.call('HGET', KEYS[1], 'counter')) or 0
local weight = math.min(tonumber(ARGV[1]), counter)
return redis.call('HINCRBY', KEYS[1], 'counter', -weight)
"""


class RedisStore(Store):
    """Store keeping windows in Redis with native key expiry."""

    def __init__(
        self,
        client: redis.Redis | None = None,  # type: ignore[type-arg]
        *,
        prefix: str = "",
        abuse_prefix: str = REDIS_ABUSE_PREFIX,
        abuse_ttl_seconds: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store.

        Args:
            client: Redis client; when omitted the shared connection pool
                from settings is used
            prefix: Prefix for all keys written by the store
            abuse_prefix: Prefix for abuse record keys (after ``prefix``)
            abuse_ttl_seconds: Retention of abuse records; None keeps them
            clock: Time source returning UNIX time in seconds
        """
        self._client = client
        self.prefix = prefix
        self.abuse_prefix = abuse_prefix
        self.abuse_ttl_seconds = abuse_ttl_seconds
        self.clock = clock

    def _key(self, key: str) -> str:
        """Generate prefixed key."""
        return f"{self.prefix}{key}" if self.prefix else key

    def _abuse_key(self, key: str, window_end: int) -> str:
        return f"{self.prefix}{self.abuse_prefix}{key}:{window_end}"

    @asynccontextmanager
    async def _connection(self) -> AsyncGenerator[redis.Redis, None]:  # type: ignore[type-arg]
        if self._client is not None:
            yield self._client
            return
        async with redis_client() as client:
            yield client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
        else:
            await close_redis_pool()

    async def increment(
        self, key: str, options: "RateLimitOptions", weight: int
    ) -> WindowState:
        interval = to_ms(options.interval)
        ttl_seconds = max(math.ceil(interval / 1000), 1)
        async with self._connection() as client:
            counter, window_end = await client.eval(
                INCREMENT_SCRIPT,
                1,
                self._key(key),
                weight,
                self.now_ms(),
                interval,
                ttl_seconds,
            )
        return WindowState(counter=int(counter), window_end=int(window_end))

    async def decrement(
        self, key: str, options: "RateLimitOptions", weight: int
    ) -> None:
        async with self._connection() as client:
            await client.eval(
                DECREMENT_SCRIPT,
                1,
                self._key(key),
                weight,
                self.now_ms(),
            )

    async def record_abuse(self, event: AbuseEvent) -> None:
        now = self.now_ms()
        async with self._connection() as client:
            window_end = await client.hget(self._key(event.key), "window_end")
            if window_end is None or int(window_end) <= now:
                return

            abuse_key = self._abuse_key(event.key, int(window_end))
            fields = {
                "key": event.key,
                "prefix": event.prefix or "",
                "interval": event.interval,
                "max": event.max,
                "identity": event.identity or "",
                "address": event.address or "",
                "window_end": int(window_end),
                "created_at": now,
            }
            async with client.pipeline(transaction=True) as pipe:
                for field, value in fields.items():
                    pipe.hsetnx(abuse_key, field, value)
                pipe.hincrby(abuse_key, "hit_count", 1)
                pipe.hset(abuse_key, "updated_at", now)
                if self.abuse_ttl_seconds:
                    pipe.expire(abuse_key, self.abuse_ttl_seconds)
                await pipe.execute()

        logger.info(
            "rate_limit_abuse_recorded",
            key_hash=hash_key(event.key),
            window_end=int(window_end),
        )
