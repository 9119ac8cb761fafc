from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from feedrelay.errors import FetchError, PersistenceError, PublishError
from feedrelay.interfaces import FeedFetcher, Publisher, StateStore
from feedrelay.models import Feed, FeedItem, MonitorState, Visibility


NOW = 1_700_000_000


class FakeFetcher(FeedFetcher):
    name = "FakeFetcher"

    def __init__(self, items: Optional[Dict[str, List[FeedItem]]] = None, fail: bool = False):
        self.items = items or {}
        self.fail = fail
        self.calls: List[str] = []

    async def fetch(self, url: str, timeout: float) -> List[FeedItem]:
        self.calls.append(url)
        if self.fail:
            raise FetchError(url, "network", "connection refused")
        return list(self.items.get(url, []))


class FakePublisher(Publisher):
    name = "FakePublisher"

    def __init__(self, fail_guids=()):
        self.fail_guids = set(fail_guids)
        self.sent: List[dict] = []
        self.attempts: List[str] = []

    async def publish(self, feed, text, visibility, language, idempotency_key) -> None:
        self.attempts.append(text)
        if any(guid in text for guid in self.fail_guids):
            raise PublishError(feed.name, "http_status", "HTTP 500", status=500)
        self.sent.append({
            "feed": feed.name,
            "text": text,
            "visibility": visibility,
            "language": language,
            "key": idempotency_key,
        })


class FakeCache:
    """In-memory stand-in for :class:`feedrelay.infra.cache.CacheClient`."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}

    async def exists(self, key: str) -> bool:
        return key in self.data

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self.data[key] = value
        self.ttls[key] = ttl_seconds

    async def close(self) -> None:
        pass


class FakeStore(StateStore):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.saved: List[Dict[str, int]] = []

    def load(self) -> MonitorState:
        raise NotImplementedError

    def save(self, state: MonitorState) -> None:
        if self.fail:
            raise PersistenceError("disk full")
        self.saved.append({feed.name: feed.last_run for feed in state.feeds})


def make_feed(name: str = "news", **kwargs) -> Feed:
    defaults = {
        "name": name,
        "url": f"https://{name}.example/rss",
        "token": "secret",
        "visibility": "public",
        "interval": 1,
        "last_run": NOW - 4 * 60,
    }
    defaults.update(kwargs)
    return Feed(**defaults)


def make_item(guid: str, published: Optional[int], **kwargs) -> FeedItem:
    defaults = {
        "title": f"Title {guid}",
        "description": f"Body of {guid}",
        "link": f"https://news.example/{guid}",
    }
    defaults.update(kwargs)
    return FeedItem(guid=guid, published=published, **defaults)


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def state():
    return MonitorState(url="https://mastodon.example", lang="en", limit=500, save=True, feed=[make_feed()])
