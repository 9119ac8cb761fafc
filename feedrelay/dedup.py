"""
Dedup oracle: decides whether an item was already published.

Two tiers:

* items older than the look-back horizon are always skipped;
* newer items are checked against the Redis cache when one is connected,
  otherwise against the feed's ``last_run`` watermark.

The mode is chosen when the oracle is built. The first cache failure drops
it to watermark mode for the rest of the process; it never switches back.
"""

from __future__ import annotations

import hashlib
import logging
import time
from typing import Callable, Optional

from .errors import CacheUnavailable
from .infra.cache import CacheClient
from .models import Feed, FeedItem


logger = logging.getLogger(__name__)

LOOKBACK_SECONDS = 12 * 60 * 60
RETENTION_SECONDS = 7 * 24 * 60 * 60
KEY_PREFIX = "feedrelay"


def idempotency_key(item: FeedItem) -> str:
    """Stable key for an item, sent with every publish attempt."""
    return hashlib.md5(item.guid.encode("utf-8")).hexdigest()


def cache_key(feed: Feed, item: FeedItem) -> str:
    return f"{KEY_PREFIX}:{feed.name}:{idempotency_key(item)}"


class DedupOracle:
    """Watermark plus optional cache dedup for all feeds.

    One instance is shared by every per-feed task; cache keys are feed
    scoped so tasks never contend on a key.
    """

    def __init__(self, cache: Optional[CacheClient] = None, clock: Callable[[], float] = time.time):
        self.cache = cache
        self._client = cache
        self._clock = clock

    @property
    def cache_backed(self) -> bool:
        return self.cache is not None

    def effective_timestamp(self, item: FeedItem) -> int:
        """Publish time capped at now, so future-dated entries don't jump the watermark."""
        return min(int(item.published or 0), int(self._clock()))

    async def should_skip(self, feed: Feed, item: FeedItem) -> bool:
        """True if ``item`` must not be published for ``feed``."""
        ts = self.effective_timestamp(item)
        if ts < int(self._clock()) - LOOKBACK_SECONDS:
            logger.debug(f"{feed.name}: {item.guid} older than look-back horizon")
            return True

        if self.cache is not None:
            try:
                seen = await self.cache.exists(cache_key(feed, item))
            except CacheUnavailable as e:
                self._degrade(e)
            else:
                if seen:
                    logger.debug(f"{feed.name}: {item.guid} already delivered (cache)")
                return seen

        if ts <= feed.last_run:
            logger.debug(f"{feed.name}: {item.guid} at or below watermark {feed.last_run}")
            return True
        return False

    async def mark_delivered(self, feed: Feed, item: FeedItem) -> None:
        """Record a confirmed publish: advance the watermark, then the cache."""
        ts = self.effective_timestamp(item)
        if ts > feed.last_run:
            feed.last_run = ts
        if self.cache is not None:
            try:
                await self.cache.set(cache_key(feed, item), str(ts), RETENTION_SECONDS)
            except CacheUnavailable as e:
                self._degrade(e)

    def _degrade(self, error: CacheUnavailable) -> None:
        # Concurrent feed tasks may all hit the outage; only the first one logs
        if self.cache is None:
            return
        logger.warning(f"Cache unavailable, dedup falls back to watermarks for good: {error}")
        self.cache = None

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
