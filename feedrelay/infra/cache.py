"""
Cache infrastructure: async Redis client used as the dedup store.
"""

from __future__ import annotations

import logging
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from feedrelay.errors import CacheUnavailable


logger = logging.getLogger(__name__)


class CacheClient:
    """Key/value store with per-key TTL.

    Built once at startup by :meth:`connect` and handed to whoever needs it;
    a client that fails the liveness probe is never constructed.
    """

    def __init__(self, redis: Redis):
        self.redis = redis

    @classmethod
    async def connect(cls, url: str) -> Optional["CacheClient"]:
        """Return a live client for ``url``, or None if Redis is unreachable."""
        if not url:
            logger.info("No cache configured, dedup runs on watermarks only")
            return None
        if "://" not in url:
            url = f"redis://{url}"
        try:
            redis = Redis.from_url(url, decode_responses=True)
        except ValueError as e:
            logger.warning(f"Invalid cache URL {url}: {e}")
            return None
        client = cls(redis)
        if not await client.ping():
            await client.close()
            return None
        logger.info(f"Connected to cache at {url}")
        return client

    async def ping(self) -> bool:
        """Liveness probe."""
        try:
            return bool(await self.redis.ping())
        except (RedisError, OSError) as e:
            logger.warning(f"Cache unavailable, dedup degrades to watermarks: {e}")
            return False

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self.redis.set(key, value, ex=ttl_seconds)
        except (RedisError, OSError) as e:
            raise CacheUnavailable(f"SET {key} failed: {e}") from e

    async def exists(self, key: str) -> bool:
        try:
            return await self.redis.exists(key) > 0
        except (RedisError, OSError) as e:
            raise CacheUnavailable(f"EXISTS {key} failed: {e}") from e

    async def close(self) -> None:
        await self.redis.aclose()
