"""
Core interfaces for the feed relay.

The orchestrator only talks to these contracts, so the feed parser, the
publishing endpoint and the state sink can each be swapped for a fake.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from .models import DEFAULT_CHARACTER_LIMIT, Feed, FeedItem, MonitorState, Visibility


class FeedFetcher(ABC):
    """Retrieves the items of one feed.

    Implementations must not mutate feed state and must report failure by
    raising :class:`~feedrelay.errors.FetchError`.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this fetcher."""
        pass

    @abstractmethod
    async def fetch(self, url: str, timeout: float) -> List[FeedItem]:
        """Fetch and parse ``url`` within ``timeout`` seconds, in feed order."""
        pass

    async def close(self) -> None:
        pass


class Publisher(ABC):
    """Delivers one rendered status for a feed's account."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this publisher."""
        pass

    @abstractmethod
    async def publish(
        self,
        feed: Feed,
        text: str,
        visibility: Visibility,
        language: Optional[str],
        idempotency_key: str,
    ) -> None:
        """Create the status or raise :class:`~feedrelay.errors.PublishError`."""
        pass

    async def instance_limit(self) -> int:
        """Maximum status length accepted by the endpoint."""
        return DEFAULT_CHARACTER_LIMIT

    async def verify_credentials(self, feed: Feed) -> None:
        """Resolve the account behind ``feed``'s token."""
        pass

    async def update_followers(self, feeds: Iterable[Feed]) -> None:
        pass

    async def close(self) -> None:
        """Release any held connections."""
        pass


class StateStore(ABC):
    """Durable sink for monitor state."""

    @abstractmethod
    def load(self) -> MonitorState:
        """Load the configured state; raises ``ConfigError``."""
        pass

    @abstractmethod
    def save(self, state: MonitorState) -> None:
        """Persist the state; raises ``PersistenceError``."""
        pass
