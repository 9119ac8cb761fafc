"""
Mastodon publisher - creates statuses and reads account/instance metadata.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from typing import Any, Dict, Iterable, Optional, Tuple
from urllib.parse import urlparse

import aiohttp

from .errors import PublishError
from .infra.http import HttpClient
from .interfaces import Publisher
from .models import DEFAULT_CHARACTER_LIMIT, Feed, Visibility


logger = logging.getLogger(__name__)

STATUSES_PATH = "/api/v1/statuses"


def validate_url(raw_url: str) -> None:
    """Reject anything but public https URLs; raises ValueError."""
    u = urlparse(raw_url)
    if u.scheme != "https":
        raise ValueError("only HTTPS URLs allowed")
    if not u.hostname:
        raise ValueError("missing host")
    if ".." in u.path:
        raise ValueError("path traversal not allowed")
    try:
        ip = ipaddress.ip_address(u.hostname)
    except ValueError:
        return
    if ip.is_private or ip.is_loopback:
        raise ValueError("private/internal IPs not allowed")


def status_request(
    instance_url: str,
    feed: Feed,
    text: str,
    visibility: Visibility,
    language: Optional[str],
    idempotency_key: str,
) -> Tuple[str, Dict[str, str], Dict[str, str]]:
    """Build ``(url, form, headers)`` for a status-creation request."""
    form = {"status": text, "visibility": Visibility(visibility).value}
    if language:
        form["language"] = language
    headers = {
        "Authorization": f"Bearer {feed.token}",
        "Idempotency-Key": idempotency_key,
        "Content-Type": "application/x-www-form-urlencoded",
    }
    return instance_url.rstrip("/") + STATUSES_PATH, form, headers


class MastodonPublisher(Publisher):
    """Posts statuses to a Mastodon-compatible instance.

    One attempt per call: a non-created status, a connection error or a
    timeout all raise :class:`PublishError`.
    """

    name = "MastodonPublisher"

    CREATED_STATUSES = (200, 201)

    def __init__(self, instance_url: str, http: Optional[HttpClient] = None, timeout: float = 10.0):
        self.instance_url = instance_url.rstrip("/")
        self.http = http or HttpClient()
        self.timeout = timeout

    async def publish(
        self,
        feed: Feed,
        text: str,
        visibility: Visibility,
        language: Optional[str],
        idempotency_key: str,
    ) -> None:
        url, form, headers = status_request(
            self.instance_url, feed, text, visibility, language, idempotency_key
        )
        try:
            status, _ = await asyncio.wait_for(
                self.http.post_form(url, form, headers=headers, timeout=self.timeout),
                self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise PublishError(feed.name, "timeout", f"after {self.timeout:.1f}s") from e
        except aiohttp.ClientError as e:
            raise PublishError(feed.name, "network", str(e)) from e

        if status not in self.CREATED_STATUSES:
            raise PublishError(feed.name, "http_status", f"HTTP {status}", status=status)

    # ---------------------------------------------- #
    # Instance and account metadata
    async def _get_json(self, path: str, token: str = "", timeout: float = 5.0) -> Optional[Any]:
        url = self.instance_url + path
        try:
            validate_url(url)
        except ValueError as e:
            logger.warning(f"Invalid instance URL {url}: {e}")
            return None

        headers = {"Authorization": f"Bearer {token}"} if token else None
        try:
            return await self.http.get_json(url, headers=headers, retries=3, timeout=timeout)
        except aiohttp.ClientResponseError as e:
            logger.warning(f"GET {path} returned HTTP {e.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"GET {path} failed: {e}")
        return None

    async def instance_limit(self) -> int:
        """Maximum status length advertised by the instance."""
        data = await self._get_json("/api/v1/instance")
        try:
            limit = int(data["configuration"]["statuses"]["max_characters"])
        except (TypeError, KeyError, ValueError):
            return DEFAULT_CHARACTER_LIMIT
        return limit if limit > 0 else DEFAULT_CHARACTER_LIMIT

    async def verify_credentials(self, feed: Feed) -> None:
        """Fill in the account id and follower count for ``feed``."""
        if not feed.token:
            return
        data = await self._get_json("/api/v1/accounts/verify_credentials", token=feed.token)
        if not isinstance(data, dict):
            return
        try:
            feed.account_id = int(data.get("id") or 0)
            feed.followers = int(data.get("followers_count") or 0)
        except (TypeError, ValueError):
            logger.warning(f"{feed.name}: unexpected credentials payload")

    async def refresh_followers(self, feed: Feed) -> None:
        data = await self._get_json(f"/api/v1/accounts/{feed.account_id}", timeout=2.0)
        if not isinstance(data, dict):
            return
        count = data.get("followers_count")
        if not isinstance(count, int):
            logger.warning(f"{feed.name}: followers_count is not a number")
            return
        feed.followers = count

    async def update_followers(self, feeds: Iterable[Feed]) -> None:
        """Refresh follower counts for every feed with a known account."""
        known = [feed for feed in feeds if feed.account_id > 0]
        if not self.instance_url or not known:
            return
        await asyncio.gather(*(self.refresh_followers(feed) for feed in known))

    async def close(self) -> None:
        await self.http.close()
