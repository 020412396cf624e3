"""Expand user references into the IMDb lists they publish."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Iterable

from ..errors import UpstreamUnavailable
from ..identifiers import find_list_id
from ..models import ListReference, Preferences
from ..utils import clean_text
from .fetcher import PageFetcher

logger = logging.getLogger(__name__)

LIST_HREF_RE = re.compile(
    r"href=['\"](?:https?://(?:www\.)?imdb\.com)?/list/(ls\d{6,})/['\"]",
    re.IGNORECASE,
)
LIST_PATH_RE = re.compile(r"/list/(ls\d{6,})/", re.IGNORECASE)

LIST_TITLE_RES = (
    re.compile(
        r"<h1[^>]+data-testid=[\"']list-header-title[\"'][^>]*>(.*?)</h1>",
        re.IGNORECASE | re.DOTALL,
    ),
    re.compile(
        r"<h1[^>]*class=[\"'][^\"']*header[^\"']*[\"'][^>]*>(.*?)</h1>",
        re.IGNORECASE | re.DOTALL,
    ),
)
PAGE_TITLE_RE = re.compile(r"<title>(.*?)</title>", re.IGNORECASE | re.DOTALL)
TITLE_SUFFIX_RE = re.compile(r"\s+-\s*IMDb.*$", re.IGNORECASE)


class SourceDiscoverer:
    """Resolves user list pages and direct list references into list references."""

    def __init__(
        self,
        fetcher: PageFetcher,
        *,
        base_url: str = "https://www.imdb.com",
        source_delay: float = 0.08,
    ) -> None:
        self._fetcher = fetcher
        self._base_url = base_url.rstrip("/")
        self._source_delay = max(0.0, source_delay)

    def list_url(self, list_id: str) -> str:
        return f"{self._base_url}/list/{list_id}/"

    def normalize_list_reference(self, raw: object) -> ListReference | None:
        """Turn a bare list id or list URL into a reference without fetching."""

        if not isinstance(raw, str) or not raw.strip():
            return None
        list_id = find_list_id(raw.strip())
        if list_id is None:
            return None
        return ListReference(id=list_id, url=self.list_url(list_id))

    async def discover(self, user_ref: str) -> list[ListReference]:
        """Return every list linked from a user's lists page, with display names."""

        if not user_ref:
            return []
        html = await self._fetcher.fetch_text(user_ref)

        list_ids = _ordered_unique(m.group(1) for m in LIST_HREF_RE.finditer(html))
        if not list_ids:
            list_ids = _ordered_unique(m.group(1) for m in LIST_PATH_RE.finditer(html))

        references = [
            ListReference(id=list_id, url=self.list_url(list_id)) for list_id in list_ids
        ]
        names = await asyncio.gather(
            *(self._name_or_id(reference) for reference in references)
        )
        for reference, name in zip(references, names):
            reference.name = name
        return references

    async def fetch_list_name(self, list_url: str) -> str:
        """Extract a list's display name from its page, falling back to the URL."""

        html = await self._fetcher.fetch_text(list_url)
        for pattern in LIST_TITLE_RES:
            match = pattern.search(html)
            if match:
                name = clean_text(match.group(1))
                if name:
                    return name
        match = PAGE_TITLE_RE.search(html)
        if match:
            title = TITLE_SUFFIX_RE.sub("", clean_text(match.group(1))).strip()
            if title:
                return title
        return list_url

    async def harvest(
        self,
        prefs: Preferences,
        *,
        user_url: str | None = None,
        static_list_ids: Iterable[str] = (),
    ) -> list[ListReference]:
        """Discover all configured sources, deduplicated by id and minus blocked lists."""

        discovered: list[ListReference] = []

        users: list[str] = []
        for candidate in [user_url or "", *prefs.sources.users]:
            candidate = candidate.strip()
            if candidate and candidate not in users:
                users.append(candidate)
        for index, user in enumerate(users):
            if index:
                await asyncio.sleep(self._source_delay)
            try:
                discovered.extend(await self.discover(user))
            except UpstreamUnavailable as exc:
                logger.warning("Discovery for %s failed: %s", user, exc)

        direct = [
            reference
            for reference in (
                self.normalize_list_reference(raw)
                for raw in [*prefs.sources.lists, *static_list_ids]
            )
            if reference is not None
        ]
        names = await asyncio.gather(*(self._name_or_id(ref) for ref in direct))
        for reference, name in zip(direct, names):
            reference.name = name
        discovered.extend(direct)

        blocked = set(prefs.blocked)
        merged: dict[str, ListReference] = {}
        for reference in discovered:
            if reference.id in blocked:
                continue
            merged[reference.id] = reference
        return list(merged.values())

    async def _name_or_id(self, reference: ListReference) -> str:
        try:
            return await self.fetch_list_name(reference.url)
        except UpstreamUnavailable as exc:
            logger.debug("Name lookup for %s failed: %s", reference.id, exc)
            return reference.id


def _ordered_unique(values: Iterable[str]) -> list[str]:
    result: list[str] = []
    for value in values:
        value = "ls" + value[2:]
        if value not in result:
            result.append(value)
    return result
