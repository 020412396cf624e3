"""Throttled HTML fetching shared by the scraper, discoverer and title pages."""

from __future__ import annotations

import asyncio
import logging
import time
from urllib.parse import urlsplit

import httpx

from ..errors import UpstreamUnavailable
from ..utils import cache_busted

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) MyListsAddon/13.0"
HTML_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}


class PageFetcher:
    """Fetch pages while keeping a fixed gap between requests to one host."""

    def __init__(self, http_client: httpx.AsyncClient, *, delay_seconds: float = 0.08):
        self._client = http_client
        self._delay = max(0.0, delay_seconds)
        self._host_locks: dict[str, asyncio.Lock] = {}
        self._last_request: dict[str, float] = {}

    @property
    def delay_seconds(self) -> float:
        return self._delay

    async def fetch_text(self, url: str, *, bust_cache: bool = True) -> str:
        """Return the body of ``url`` or raise :class:`UpstreamUnavailable`."""

        target = cache_busted(url) if bust_cache else url
        host = urlsplit(url).netloc.lower()
        lock = self._host_locks.setdefault(host, asyncio.Lock())
        async with lock:
            await self._wait_for_slot(host)
            try:
                response = await self._client.get(
                    target, headers=HTML_HEADERS, follow_redirects=True
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise UpstreamUnavailable(url, f"status {exc.response.status_code}") from exc
            except httpx.HTTPError as exc:
                raise UpstreamUnavailable(url, str(exc) or type(exc).__name__) from exc
            finally:
                self._last_request[host] = time.monotonic()
        return response.text

    async def _wait_for_slot(self, host: str) -> None:
        last = self._last_request.get(host)
        if last is None or self._delay <= 0:
            return
        remaining = self._delay - (time.monotonic() - last)
        if remaining > 0:
            await asyncio.sleep(remaining)
