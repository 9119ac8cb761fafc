"""
Feed fetcher - downloads a feed over HTTP and parses it with feedparser.
"""

from __future__ import annotations

import asyncio
import calendar
import logging
from typing import Any, List, Optional

import aiohttp
import feedparser

from .errors import FetchError
from .infra.http import HttpClient
from .interfaces import FeedFetcher
from .models import FeedItem


logger = logging.getLogger(__name__)


def _entry_timestamp(entry: Any) -> Optional[int]:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    return calendar.timegm(parsed)


def entry_to_item(entry: Any, language: str = "") -> Optional[FeedItem]:
    """Map a feedparser entry to a :class:`FeedItem`; None if it has no identity."""
    link = entry.get("link", "") or ""
    guid = entry.get("id") or link or entry.get("title")
    if not guid:
        return None

    content = ""
    if entry.get("content"):
        content = entry["content"][0].get("value", "") or ""

    categories = [tag.get("term") for tag in entry.get("tags", []) if tag.get("term")]

    return FeedItem(
        guid=guid,
        published=_entry_timestamp(entry),
        title=entry.get("title", "") or "",
        description=entry.get("summary", "") or "",
        content=content,
        link=link,
        categories=categories,
        language=language,
    )


class FeedparserFetcher(FeedFetcher):
    """Fetches RSS/Atom feeds; each call is bounded by its own timeout."""

    name = "FeedparserFetcher"

    def __init__(self, http: Optional[HttpClient] = None):
        self.http = http or HttpClient()

    async def fetch(self, url: str, timeout: float) -> List[FeedItem]:
        try:
            raw = await asyncio.wait_for(self.http.get_bytes(url, timeout=timeout), timeout)
        except asyncio.TimeoutError as e:
            raise FetchError(url, "timeout", f"no response within {timeout:.1f}s") from e
        except aiohttp.ClientResponseError as e:
            raise FetchError(url, "http_status", e.message, status=e.status) from e
        except aiohttp.ClientError as e:
            raise FetchError(url, "network", str(e)) from e

        parsed = feedparser.parse(raw)
        if parsed.bozo and not parsed.entries:
            raise FetchError(url, "parse", str(parsed.get("bozo_exception", "malformed feed")))

        language = parsed.feed.get("language", "") or ""
        items = []
        for entry in parsed.entries:
            item = entry_to_item(entry, language)
            if item is None:
                logger.debug(f"Skipping entry without id or link in {url}")
                continue
            items.append(item)

        logger.debug(f"Fetched {len(items)} items from {url}")
        return items

    async def close(self) -> None:
        await self.http.close()
