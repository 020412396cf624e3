"""Paginated IMDb list scraping with layout-mode fallback."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Protocol
from urllib.parse import urljoin

from ..errors import UpstreamUnavailable
from ..utils import with_param
from .fetcher import PageFetcher

logger = logging.getLogger(__name__)

LAYOUT_MODES: tuple[str, ...] = ("detail", "grid", "compact")
DEFAULT_PAGE_LIMIT = 80


class ExtractionRule(Protocol):
    """Pulls item ids and the next-page link out of one page body."""

    def item_ids(self, html: str) -> Iterable[str]: ...

    def next_page(self, html: str, base_url: str) -> str | None: ...


@dataclass(frozen=True)
class RegexRule:
    """Regex-driven extraction; each pattern's first group is an item id."""

    id_patterns: tuple[re.Pattern[str], ...]
    next_patterns: tuple[re.Pattern[str], ...] = ()

    def item_ids(self, html: str) -> Iterable[str]:
        for pattern in self.id_patterns:
            for match in pattern.finditer(html):
                yield "tt" + match.group(1)[2:]

    def next_page(self, html: str, base_url: str) -> str | None:
        for pattern in self.next_patterns:
            match = pattern.search(html)
            if match:
                return urljoin(base_url, match.group(1).replace("&amp;", "&"))
        return None


# Pattern A: tconst data attributes, pattern B: title links.
TCONST_ATTR_RE = re.compile(r"data-tconst=[\"'](tt\d{7,})[\"']", re.IGNORECASE)
TITLE_LINK_RE = re.compile(r"/title/(tt\d{7,})/", re.IGNORECASE)

NEXT_PAGE_RES = (
    re.compile(r"<a[^>]+rel=[\"']next[\"'][^>]+href=[\"']([^\"']+)[\"']", re.IGNORECASE),
    re.compile(
        r"<a[^>]+href=[\"']([^\"']+)[\"'][^>]*class=[\"'][^\"']*lister-page-next[^\"']*[\"']",
        re.IGNORECASE,
    ),
    re.compile(
        r"<a[^>]+href=[\"']([^\"']+)[\"'][^>]*data-testid=[\"']pagination-next-page-button[\"'][^>]*>",
        re.IGNORECASE,
    ),
)

DEFAULT_RULE = RegexRule(
    id_patterns=(TCONST_ATTR_RE, TITLE_LINK_RE),
    next_patterns=NEXT_PAGE_RES,
)


@dataclass
class ModeResult:
    mode: str
    ids: list[str] = field(default_factory=list)
    pages: int = 0


class ListScraper:
    """Collect the ordered item ids of one list, best-effort."""

    def __init__(
        self,
        fetcher: PageFetcher,
        *,
        base_url: str = "https://www.imdb.com",
        page_limit: int = DEFAULT_PAGE_LIMIT,
        page_delay: float = 0.08,
        modes: tuple[str, ...] = LAYOUT_MODES,
        rules: dict[str, ExtractionRule] | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._base_url = base_url.rstrip("/") + "/"
        self._page_limit = max(1, page_limit)
        self._page_delay = max(0.0, page_delay)
        self._modes = modes
        self._rules = rules or {}

    def rule_for(self, mode: str) -> ExtractionRule:
        return self._rules.get(mode, DEFAULT_RULE)

    async def scrape_list(self, url: str) -> list[str]:
        """Return item ids in list order from the first layout mode that yields any."""

        for mode in self._modes:
            result = await self._scrape_mode(url, mode)
            if result.ids:
                logger.debug(
                    "Scraped %d ids from %s in %s mode (%d pages)",
                    len(result.ids),
                    url,
                    mode,
                    result.pages,
                )
                return result.ids
        logger.info("No items found for list %s in any layout mode", url)
        return []

    async def _scrape_mode(self, url: str, mode: str) -> ModeResult:
        rule = self.rule_for(mode)
        result = ModeResult(mode=mode)
        seen: set[str] = set()
        page_url: str | None = with_param(url, "mode", mode)

        while page_url and result.pages < self._page_limit:
            if result.pages:
                await asyncio.sleep(self._page_delay)
            try:
                html = await self._fetcher.fetch_text(page_url)
            except UpstreamUnavailable as exc:
                logger.warning("List page fetch failed in %s mode: %s", mode, exc)
                break
            result.pages += 1

            added = 0
            for item_id in rule.item_ids(html):
                if item_id in seen:
                    continue
                seen.add(item_id)
                result.ids.append(item_id)
                added += 1

            next_url = rule.next_page(html, self._base_url)
            if not next_url or not added:
                break
            page_url = next_url

        return result
