"""
Monitor orchestrator for the Fetch→Filter→Render→Publish→Commit cycle.

Each tick runs one task per enabled feed and waits for all of them before
the global watermarks are advanced and the state is saved.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from . import feed_scheduler
from .dedup import DedupOracle, idempotency_key
from .errors import FeedRelayError, PersistenceError, PublishError
from .interfaces import FeedFetcher, Publisher, StateStore
from .models import DEFAULT_CHARACTER_LIMIT, Feed, FeedItem, MonitorState
from .transform import render


logger = logging.getLogger(__name__)

DEFAULT_TICK_SECONDS = 60


class FeedsMonitor:
    """Owns the monitor state and drives every feed through its cycle."""

    def __init__(
        self,
        state: MonitorState,
        fetcher: FeedFetcher,
        publisher: Publisher,
        dedup: DedupOracle,
        store: Optional[StateStore] = None,
        tick_seconds: int = DEFAULT_TICK_SECONDS,
        dry_run: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self.state = state
        self.fetcher = fetcher
        self.publisher = publisher
        self.dedup = dedup
        self.store = store
        self.tick_seconds = tick_seconds
        self.dry_run = dry_run
        self._clock = clock

    @property
    def feed_timeout(self) -> float:
        """Per-call deadline; all feeds timing out still fit in one tick."""
        return self.tick_seconds / (len(self.state.feeds) + 1)

    @property
    def limit(self) -> int:
        return self.state.limit or DEFAULT_CHARACTER_LIMIT

    async def prepare(self) -> None:
        """Resolve the character limit and the feeds' accounts from the instance."""
        if not self.state.url:
            logger.warning("Instance URL is empty, account lookup skipped")
            return
        if self.state.limit == 0:
            self.state.limit = await self.publisher.instance_limit()
            logger.info(f"Instance character limit: {self.state.limit}")
        await asyncio.gather(*(self.publisher.verify_credentials(feed) for feed in self.state.enabled_feeds()))

    async def tick(self, force: bool = False) -> int:
        """Run one monitor tick; returns the number of statuses published."""
        feeds = self.state.enabled_feeds()
        if force:
            for feed in feeds:
                feed_scheduler.force_due(feed)

        results = await asyncio.gather(*(self._run_feed(feed) for feed in feeds))

        self.state.last_check.store(int(self._clock()))
        for feed in self.state.feeds:
            self.state.last_monit.store_max(feed.last_run)

        published = sum(results)
        if published:
            logger.info(f"Tick complete: {published} status(es) published")
        self.save()
        return published

    def save(self) -> None:
        if not self.state.save or self.store is None or self.dry_run:
            return
        try:
            self.store.save(self.state)
        except PersistenceError as e:
            logger.warning(f"Error saving state, keeping it in memory: {e}")

    async def _run_feed(self, feed: Feed) -> int:
        if not feed_scheduler.tick(feed):
            return 0
        logger.debug(f"{feed.name}: due, fetching {feed.feed_url}")
        try:
            return await self.process_feed(feed)
        except FeedRelayError as e:
            logger.warning(f"{feed.name}: cycle skipped: {e}")
            return 0
        except Exception as e:
            logger.exception(f"{feed.name}: unexpected error, cycle skipped: {e}")
            return 0

    @staticmethod
    def order_items(items: List[FeedItem]) -> List[FeedItem]:
        """Oldest first; undated items cannot be placed and are dropped."""
        dated = [item for item in items if item.published is not None]
        if len(dated) != len(items):
            logger.debug(f"Ignoring {len(items) - len(dated)} undated item(s)")
        return sorted(dated, key=lambda item: item.published)

    async def process_feed(self, feed: Feed) -> int:
        """Fetch ``feed`` and publish its new items, oldest first.

        The watermark moves after each confirmed publish, so an interrupted
        cycle resumes after the last delivered item. A failed publish ends
        the cycle for this feed; the item is retried on the next due cycle.
        """
        items = self.order_items(await self.fetcher.fetch(feed.feed_url, self.feed_timeout))

        published = 0
        for item in items:
            if await self.dedup.should_skip(feed, item):
                continue

            text = render(item, feed, self.limit, self.state.lang)
            if self.dry_run:
                logger.info(f"{feed.name}: [dry-run] would publish {item.guid}:\n{text}")
                continue

            try:
                await self.publisher.publish(
                    feed, text, feed.visibility, item.language or None, idempotency_key(item)
                )
            except PublishError as e:
                logger.warning(f"{feed.name}: {item.guid} not published, retrying next cycle: {e}")
                break

            feed.count += 1
            feed.send_time = datetime.now(timezone.utc)
            published += 1
            await self.dedup.mark_delivered(feed, item)

        if published:
            logger.info(f"{feed.name}: published {published} new item(s)")
        return published

    async def update_followers(self) -> None:
        await self.publisher.update_followers(self.state.feeds)

    async def close(self) -> None:
        for resource in (self.fetcher, self.publisher, self.dedup):
            await resource.close()
