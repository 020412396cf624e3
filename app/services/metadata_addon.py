"""Helper client for fetching metadata from Cinemeta-compatible add-ons."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from .fetcher import USER_AGENT

logger = logging.getLogger(__name__)


class MetadataAddonClient:
    """Wrapper around the ``/meta/{type}/{id}.json`` endpoint of a metadata add-on."""

    _META_PATH = "/meta/{type}/{id}.json"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        default_base_url: str | None = None,
        *,
        concurrency: int = 8,
    ) -> None:
        self._client = http_client
        self._default_base_url = self._normalize_base_url(default_base_url)
        self._semaphore = asyncio.Semaphore(concurrency)

    @property
    def default_base_url(self) -> str | None:
        """Return the default metadata add-on URL, if configured."""

        return self._default_base_url

    async def lookup(
        self,
        kind: str,
        item_id: str,
        *,
        base_url: str | None = None,
    ) -> dict[str, Any] | None:
        """Return the add-on's meta object for ``item_id`` or ``None`` when missing."""

        effective_base = self._normalize_base_url(base_url) or self._default_base_url
        if not effective_base or not item_id:
            return None

        url = f"{effective_base}{self._META_PATH.format(type=kind, id=item_id)}"
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}

        response: httpx.Response | None = None
        max_attempts = 2
        for attempt in range(1, max_attempts + 1):
            try:
                async with self._semaphore:
                    response = await self._client.get(
                        url, headers=headers, follow_redirects=True
                    )
                response.raise_for_status()
                break
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code if exc.response else None
                if status in {429, 502, 503} and attempt < max_attempts:
                    await asyncio.sleep(0.1)
                    continue
                if status != 404:
                    logger.warning(
                        "Metadata lookup failed for %s/%s via %s: %s",
                        kind,
                        item_id,
                        effective_base,
                        exc,
                    )
                return None
            except httpx.HTTPError as exc:
                logger.warning(
                    "Metadata lookup failed for %s/%s via %s: %s",
                    kind,
                    item_id,
                    effective_base,
                    exc,
                )
                return None
        else:
            return None

        try:
            payload = response.json()
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None
        meta = payload.get("meta")
        if not isinstance(meta, dict) or not meta:
            return None
        return meta

    @staticmethod
    def _normalize_base_url(value: str | None) -> str | None:
        if not value:
            return None
        normalized = value.strip()
        if not normalized:
            return None
        normalized = normalized.split("?", 1)[0].rstrip("/")
        lowered = normalized.lower()
        for suffix in ("/manifest.json", "/manifest.js", "/manifest"):
            index = lowered.find(suffix)
            if index != -1:
                normalized = normalized[:index].rstrip("/")
                break
        return normalized or None
