"""Redis-backed product cache and request rate limiting.

Redis is optional. Every Redis call fails open: a cache miss on error, an
allowed request when the limiter cannot count. Without ``REDIS_URL`` the API
falls back to an in-process sliding-window limiter and no product cache.
"""

from __future__ import annotations

import json
import logging
import time
from collections import defaultdict
from typing import Any, Callable, Protocol

import redis.asyncio as redis

logger = logging.getLogger(__name__)


def create_redis(url: str | None) -> redis.Redis | None:
    """Build a lazily-connecting client, or None when Redis is not configured."""
    if not url:
        return None
    client = redis.Redis.from_url(url, decode_responses=True)
    logger.info("Redis configured")
    return client


async def close_redis(client: redis.Redis | None) -> None:
    if client is not None:
        await client.aclose()


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class RedisCache:
    """JSON cache over Redis string keys."""

    def __init__(self, client: redis.Redis, *, prefix: str = "descgen", ttl_seconds: int = 3600):
        self._client = client
        self._prefix = prefix
        self._ttl = ttl_seconds

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def get_json(self, key: str) -> Any | None:
        try:
            raw = await self._client.get(self._key(key))
        except Exception as e:
            logger.warning("Cache get failed for %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    async def set_json(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        try:
            await self._client.set(
                self._key(key), json.dumps(value, default=str), ex=ttl_seconds or self._ttl
            )
        except Exception as e:
            logger.warning("Cache set failed for %s: %s", key, e)

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        try:
            await self._client.delete(*(self._key(k) for k in keys))
        except Exception as e:
            logger.warning("Cache delete failed for %s: %s", keys, e)


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------

class RateLimiter(Protocol):
    limit: int
    window_seconds: int

    async def is_allowed(self, identifier: str) -> bool: ...


class RedisRateLimiter:
    """Fixed-window counter per identifier (INCR + EXPIRE)."""

    def __init__(
        self,
        client: redis.Redis,
        *,
        limit: int,
        window_seconds: int,
        key_prefix: str = "rl",
        clock: Callable[[], float] = time.time,
    ):
        self._client = client
        self.limit = limit
        self.window_seconds = window_seconds
        self._prefix = key_prefix
        self._clock = clock

    def _key(self, identifier: str) -> str:
        window = int(self._clock() // self.window_seconds)
        return f"{self._prefix}:{identifier}:{window}"

    async def is_allowed(self, identifier: str) -> bool:
        key = self._key(identifier)
        try:
            pipe = self._client.pipeline()
            pipe.incr(key)
            pipe.expire(key, self.window_seconds + 1)
            count, _ = await pipe.execute()
        except Exception as e:
            logger.error("Rate limit check failed (fail-open): %s", e)
            return True

        if count > self.limit:
            logger.warning(
                "Rate limit exceeded: identifier=%s count=%d limit=%d window=%ds",
                identifier, count, self.limit, self.window_seconds,
            )
            return False
        return True


class MemoryRateLimiter:
    """In-process sliding window. Single worker only."""

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, list[float]] = defaultdict(list)
        self._last_sweep = self._clock()

    def _sweep(self, now: float) -> None:
        # Drop clients with no hit inside the window, at most once per window.
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        stale = [
            key for key, hits in self._hits.items()
            if not hits or now - hits[-1] >= self.window_seconds
        ]
        for key in stale:
            del self._hits[key]

    async def is_allowed(self, identifier: str) -> bool:
        now = self._clock()
        self._sweep(now)
        hits = [t for t in self._hits[identifier] if now - t < self.window_seconds]
        if len(hits) >= self.limit:
            self._hits[identifier] = hits
            return False
        hits.append(now)
        self._hits[identifier] = hits
        return True


def create_rate_limiter(
    client: redis.Redis | None, *, limit: int, window_seconds: int
) -> RateLimiter:
    if client is not None:
        return RedisRateLimiter(client, limit=limit, window_seconds=window_seconds)
    return MemoryRateLimiter(limit=limit, window_seconds=window_seconds)
