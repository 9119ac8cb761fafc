"""
Error taxonomy for the feed relay.

Adapters raise these; the orchestrator only ever sees them at the per-feed
task boundary, where they are logged and the feed is skipped for the cycle.
"""

from __future__ import annotations

from typing import Optional


class FeedRelayError(Exception):
    """Base class for all relay errors."""


class ConfigError(FeedRelayError):
    """The configuration is missing or invalid. Fatal at startup."""


class FetchError(FeedRelayError):
    """A feed could not be fetched or parsed this cycle."""

    def __init__(self, url: str, kind: str, message: str = "", status: Optional[int] = None):
        self.url = url
        self.kind = kind  # timeout | network | parse | http_status
        self.status = status
        super().__init__(f"{kind} while fetching {url}: {message}".rstrip(": "))


class PublishError(FeedRelayError):
    """A status could not be created for one item."""

    def __init__(self, feed_name: str, kind: str, message: str = "", status: Optional[int] = None):
        self.feed_name = feed_name
        self.kind = kind  # timeout | network | http_status
        self.status = status
        super().__init__(f"{feed_name}: publish failed ({kind}) {message}".rstrip())


class CacheUnavailable(FeedRelayError):
    """The dedup cache cannot be reached."""


class PersistenceError(FeedRelayError):
    """Monitor state could not be written to disk."""
