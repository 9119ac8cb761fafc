"""
http.py – aiohttp session shared by the feed fetcher and the publisher.

GETs are idempotent and may be retried with back-off; status creation
is not, so ``post_form`` goes out exactly once and hands the status back.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Mapping, Optional, Tuple

import aiohttp

from feedrelay import __version__

logger = logging.getLogger(__name__)

USER_AGENT = f"feedrelay/{__version__} (+https://joinmastodon.org)"


class HttpClient:
    """
    One lazily created *aiohttp.ClientSession* plus:

    * a default ``User-Agent`` merged into every request
    * per-call timeouts given in seconds
    * GET retries on 429 / 5xx / connection errors, honouring *Retry-After*
    """

    RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})

    def __init__(
        self,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
        retries: int = 1,
        backoff: float = 1.0,
        max_backoff: float = 60.0,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._session = session
        self._owns_session = session is None
        self.timeout = timeout
        self.retries = max(1, retries)
        self.backoff = backoff
        self.max_backoff = max_backoff
        self.headers: Dict[str, str] = {"User-Agent": USER_AGENT, **(headers or {})}

    async def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    @staticmethod
    def retry_after(value: Optional[str]) -> Optional[float]:
        """Seconds to wait according to a Retry-After header (delta or HTTP-date)."""
        if not value:
            return None
        value = value.strip()
        if value.isdigit():
            return float(value)
        try:
            return max(0.0, parsedate_to_datetime(value).timestamp() - time.time())
        except (TypeError, ValueError):
            return None

    def _delay(self, attempt: int, error: Exception) -> float:
        if isinstance(error, aiohttp.ClientResponseError) and error.headers:
            hinted = self.retry_after(error.headers.get("Retry-After"))
            if hinted is not None:
                return hinted
        exponential = min(self.backoff * 2 ** (attempt - 1), self.max_backoff)
        return exponential + random.uniform(0, self.backoff)

    def _options(self, headers: Optional[Mapping[str, str]], timeout: Optional[float]) -> Dict[str, Any]:
        options: Dict[str, Any] = {"headers": {**self.headers, **(headers or {})}}
        if timeout is not None:
            options["timeout"] = aiohttp.ClientTimeout(total=timeout)
        return options

    async def _get(
        self,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
    ) -> aiohttp.ClientResponse:
        """GET ``url``; raises *ClientResponseError* for any non-2xx final answer."""
        session = await self.session()
        options = self._options(headers, timeout)
        attempts = max(1, retries if retries is not None else self.retries)

        for attempt in range(1, attempts + 1):
            try:
                resp = await session.get(url, **options)
                if resp.status in self.RETRY_STATUSES:
                    resp.release()
                    raise aiohttp.ClientResponseError(
                        resp.request_info,
                        resp.history,
                        status=resp.status,
                        message=f"retryable status {resp.status}",
                        headers=resp.headers,
                    )
                resp.raise_for_status()
                return resp
            except (aiohttp.ClientConnectionError, aiohttp.ClientResponseError) as e:
                retryable = not isinstance(e, aiohttp.ClientResponseError) or e.status in self.RETRY_STATUSES
                if attempt == attempts or not retryable:
                    logger.debug("GET %s failed after %d attempt(s): %s", url, attempt, e)
                    raise
                delay = self._delay(attempt, e)
                logger.warning(
                    "GET %s failed (attempt %d/%d, retry in %.1fs): %s",
                    url, attempt, attempts, delay, str(e).splitlines()[0],
                )
                await asyncio.sleep(delay)

        raise RuntimeError("unreachable")

    async def get_json(self, url: str, **kwargs) -> Any:
        async with await self._get(url, **kwargs) as resp:
            return await resp.json(content_type=None)

    async def get_bytes(self, url: str, **kwargs) -> bytes:
        async with await self._get(url, **kwargs) as resp:
            return await resp.read()

    async def post_form(
        self,
        url: str,
        data: Mapping[str, str],
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Tuple[int, Any]:
        """POST ``data`` form-encoded exactly once.

        Returns ``(status, json_body)``; non-2xx statuses are returned, not
        raised. Connection errors and timeouts propagate.
        """
        session = await self.session()
        options = self._options(headers, timeout)
        options["headers"].setdefault("Content-Type", "application/x-www-form-urlencoded")
        async with session.post(url, data=dict(data), **options) as resp:
            try:
                body = await resp.json(content_type=None)
            except ValueError:
                body = None
            return resp.status, body
