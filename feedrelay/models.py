"""
Core data models for the feed relay.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Pattern
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator


logger = logging.getLogger(__name__)

DEFAULT_CHECK_INTERVAL = 10  # minutes
DEFAULT_CHARACTER_LIMIT = 500  # mastodon default max characters


class AtomicInt:
    """Integer cell with load/store/max semantics.

    None of the operations await, so on a single event loop every call
    completes before another task can observe the cell.
    """

    __slots__ = ("_value",)

    def __init__(self, value: int = 0) -> None:
        self._value = int(value)

    def load(self) -> int:
        return self._value

    def store(self, value: int) -> None:
        self._value = int(value)

    def add(self, delta: int) -> int:
        self._value += delta
        return self._value

    def store_max(self, value: int) -> int:
        """Advance the cell to ``value`` if it is greater; return the result."""
        if value > self._value:
            self._value = int(value)
        return self._value

    def __repr__(self) -> str:
        return f"AtomicInt({self._value})"


class Visibility(str, Enum):
    PUBLIC = "public"
    UNLISTED = "unlisted"
    PRIVATE = "private"


class Feed(BaseModel):
    """A monitored source and the account it posts to."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    feed_url: str = Field("", alias="url")
    token: str = ""
    prefix: str = ""
    visibility: Visibility = Visibility.PRIVATE
    hash_link: str = Field("", alias="hashlink")
    replace_from: str = ""
    replace_to: str = ""
    interval: int = DEFAULT_CHECK_INTERVAL
    last_run: int = 0

    # Runtime only, never written back to the config file
    progress: int = Field(0, exclude=True)
    count: int = Field(0, exclude=True)
    account_id: int = Field(0, exclude=True)
    followers: int = Field(0, exclude=True)
    send_time: Optional[datetime] = Field(None, exclude=True)

    _hash_re: Optional[Pattern[str]] = PrivateAttr(default=None)
    _replace_re: Optional[Pattern[str]] = PrivateAttr(default=None)

    @field_validator("visibility", mode="before")
    @classmethod
    def _default_visibility(cls, value):
        if isinstance(value, Visibility):
            return value
        try:
            return Visibility(str(value).strip().lower())
        except ValueError:
            return Visibility.PRIVATE

    @field_validator("interval", mode="before")
    @classmethod
    def _default_interval(cls, value):
        if value is None or int(value) <= 0:
            return DEFAULT_CHECK_INTERVAL
        return int(value)

    @field_validator("name", "feed_url", "token", "prefix", "hash_link", "replace_from", "replace_to", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value

    def model_post_init(self, __context) -> None:
        if not self.name and self.feed_url:
            self.name = urlparse(self.feed_url).hostname or ""
        self.name = self.name.replace("\n", "\\n").replace("\r", "\\r")
        self._hash_re = self._compile("hashlink", self.hash_link)
        self._replace_re = self._compile("replace_from", self.replace_from)

    def _compile(self, key: str, pattern: str) -> Optional[Pattern[str]]:
        if not pattern:
            return None
        try:
            return re.compile(pattern)
        except re.error as e:
            logger.warning(f"{self.name}: ignoring invalid {key} pattern {pattern!r}: {e}")
            return None

    @property
    def enabled(self) -> bool:
        """A feed without a source URL or token is never scheduled."""
        return bool(self.feed_url) and bool(self.token)

    @property
    def hash_pattern(self) -> Optional[Pattern[str]]:
        return self._hash_re

    @property
    def replace_pattern(self) -> Optional[Pattern[str]]:
        return self._replace_re


class FeedItem(BaseModel):
    """One entry of a fetched feed. Lives only for the cycle that fetched it."""

    guid: str
    published: Optional[int] = None  # unix seconds
    title: str = ""
    description: str = ""
    content: str = ""
    link: str = ""
    categories: List[str] = Field(default_factory=list)
    language: str = ""

    @property
    def body(self) -> str:
        """Full content wins over the summary when both exist."""
        return self.content or self.description


class MonitorState(BaseModel):
    """Instance settings, the ordered feeds and the global watermarks."""

    model_config = ConfigDict(populate_by_name=True)

    url: str = ""
    lang: str = "en"
    limit: int = 0
    timezone: str = "UTC"
    save: bool = False
    monit: int = Field(0, alias="last_monit")
    feeds: List[Feed] = Field(default_factory=list, alias="feed")

    _last_check: AtomicInt = PrivateAttr(default_factory=AtomicInt)
    _last_monit: AtomicInt = PrivateAttr(default_factory=AtomicInt)

    @field_validator("url", mode="before")
    @classmethod
    def _strip_slash(cls, value):
        return (value or "").rstrip("/")

    @field_validator("lang", mode="before")
    @classmethod
    def _default_lang(cls, value):
        return (value or "en").strip() or "en"

    @field_validator("feeds", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []

    def model_post_init(self, __context) -> None:
        self._last_monit.store(self.monit)

    @property
    def last_check(self) -> AtomicInt:
        """Unix time of the most recent fetch tick."""
        return self._last_check

    @property
    def last_monit(self) -> AtomicInt:
        """High-water mark across all feeds' ``last_run``."""
        return self._last_monit

    def location(self):
        try:
            return ZoneInfo(self.timezone or "UTC")
        except (ZoneInfoNotFoundError, ValueError):
            return timezone.utc

    def last_check_str(self) -> str:
        sec = self._last_check.load()
        if sec == 0:
            return ""
        return datetime.fromtimestamp(sec, tz=self.location()).strftime("%Y-%m-%d %H:%M:%S")

    def feed_index(self, name: str) -> int:
        """Index of the first feed whose name starts with ``name``, or -1."""
        for i, feed in enumerate(self.feeds):
            if feed.name.startswith(name):
                return i
        return -1

    def enabled_feeds(self) -> List[Feed]:
        return [feed for feed in self.feeds if feed.enabled]
