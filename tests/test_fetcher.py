"""
Tests for the feedparser-backed fetcher.
"""

import asyncio
import calendar
from types import SimpleNamespace

import aiohttp
import pytest

from feedrelay.errors import FetchError
from feedrelay.fetcher import FeedparserFetcher, entry_to_item
from feedrelay.infra.http import HttpClient


URL = "https://news.example/rss"

RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:content="http://purl.org/rss/1.0/modules/content/">
  <channel>
    <title>Example news</title>
    <link>https://news.example/</link>
    <language>pl</language>
    <item>
      <guid>https://news.example/a</guid>
      <title>First story</title>
      <link>https://news.example/a</link>
      <description>Short summary</description>
      <content:encoded><![CDATA[<p>Full <b>story</b></p>]]></content:encoded>
      <category>World</category>
      <category>Politics</category>
      <pubDate>Tue, 14 Nov 2023 22:13:20 GMT</pubDate>
    </item>
    <item>
      <title>Undated story</title>
      <link>https://news.example/b</link>
      <description>No date here</description>
    </item>
  </channel>
</rss>
"""


class FakeHttp(HttpClient):
    def __init__(self, body=b"", exc=None, delay=0.0):
        super().__init__()
        self.body = body
        self.exc = exc
        self.delay = delay

    async def get_bytes(self, url, *, timeout=None, **kwargs):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self.body


@pytest.mark.asyncio
async def test_fetch_parses_rss_items():
    items = await FeedparserFetcher(FakeHttp(RSS)).fetch(URL, 5.0)

    assert len(items) == 2
    first, undated = items
    assert first.guid == "https://news.example/a"
    assert first.title == "First story"
    assert first.description == "Short summary"
    assert "Full" in first.content
    assert first.body == first.content
    assert first.categories == ["World", "Politics"]
    assert first.language == "pl"
    assert first.published == calendar.timegm((2023, 11, 14, 22, 13, 20, 0, 0, 0))

    assert undated.guid == "https://news.example/b"
    assert undated.published is None


@pytest.mark.asyncio
async def test_fetch_timeout():
    fetcher = FeedparserFetcher(FakeHttp(RSS, delay=1.0))
    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch(URL, 0.05)
    assert exc_info.value.kind == "timeout"


@pytest.mark.asyncio
async def test_fetch_network_error():
    fetcher = FeedparserFetcher(FakeHttp(exc=aiohttp.ClientConnectionError("refused")))
    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch(URL, 5.0)
    assert exc_info.value.kind == "network"


@pytest.mark.asyncio
async def test_fetch_http_status():
    error = aiohttp.ClientResponseError(
        SimpleNamespace(real_url=URL), (), status=404, message="Not Found"
    )
    with pytest.raises(FetchError) as exc_info:
        await FeedparserFetcher(FakeHttp(exc=error)).fetch(URL, 5.0)
    assert exc_info.value.kind == "http_status"
    assert exc_info.value.status == 404


@pytest.mark.asyncio
async def test_fetch_unparseable_body():
    with pytest.raises(FetchError) as exc_info:
        await FeedparserFetcher(FakeHttp(b"<html><body>not a feed")).fetch(URL, 5.0)
    assert exc_info.value.kind == "parse"


def test_entry_without_identity_is_dropped():
    assert entry_to_item({"summary": "orphan"}) is None


def test_entry_falls_back_to_updated_date():
    entry = {
        "id": "x",
        "title": "t",
        "updated_parsed": (2023, 11, 14, 22, 13, 20, 1, 318, 0),
    }
    assert entry_to_item(entry).published == 1700000000
