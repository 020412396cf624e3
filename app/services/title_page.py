"""Degraded metadata scraping from IMDb title pages."""

from __future__ import annotations

import html as html_lib
import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from ..errors import NotFound
from ..identifiers import find_item_id
from .fetcher import PageFetcher

logger = logging.getLogger(__name__)

JSON_LD_RE = re.compile(
    r"<script[^>]+type=[\"']application/ld\+json[\"'][^>]*>(.*?)</script>",
    re.IGNORECASE | re.DOTALL,
)
OG_TITLE_RE = re.compile(
    r"<meta[^>]+property=[\"']og:title[\"'][^>]+content=[\"']([^\"']+)[\"']",
    re.IGNORECASE,
)
OG_IMAGE_RE = re.compile(
    r"<meta[^>]+property=[\"']og:image[\"'][^>]+content=[\"']([^\"']+)[\"']",
    re.IGNORECASE,
)


@dataclass(slots=True)
class TitlePageData:
    """Descriptive fields recovered from a title page."""

    name: str | None = None
    poster: str | None = None
    released: str | None = None
    year: int | None = None
    type_hint: str = "movie"
    parent_series: str | None = None

    @property
    def displayable(self) -> bool:
        return bool(self.name or self.poster)


class TitlePageClient:
    """Reads structured data (JSON-LD, then OpenGraph) from a title page."""

    def __init__(self, fetcher: PageFetcher, *, base_url: str = "https://www.imdb.com"):
        self._fetcher = fetcher
        self._base_url = base_url.rstrip("/")

    async def fetch(self, item_id: str) -> TitlePageData:
        """Return whatever could be read from the page; raise ``NotFound`` if nothing."""

        page = await self._fetcher.fetch_text(f"{self._base_url}/title/{item_id}/")
        document = self._json_ld(page)
        if document is None:
            title = OG_TITLE_RE.search(page)
            image = OG_IMAGE_RE.search(page)
            if not (title or image):
                raise NotFound(item_id)
            return TitlePageData(
                name=html_lib.unescape(title.group(1)) if title else None,
                poster=image.group(1) if image else None,
            )
        return self.parse_document(document, item_id)

    @staticmethod
    def parse_document(document: dict[str, Any], item_id: str) -> TitlePageData:
        node = _select_node(document, item_id)
        name = node.get("name") or node.get("headline") or document.get("name")
        image = node.get("image")
        if isinstance(image, dict):
            poster = image.get("url")
        elif isinstance(image, str):
            poster = image
        else:
            poster = document.get("image") if isinstance(document.get("image"), str) else None
        released = (
            node.get("datePublished") or node.get("startDate") or node.get("releaseDate")
        )
        year: int | None = None
        if released:
            try:
                year = int(str(released)[:4])
            except ValueError:
                year = None

        raw_type = node.get("@type") or ""
        type_text = ",".join(raw_type) if isinstance(raw_type, list) else str(raw_type)
        if re.search(r"Series", type_text, re.IGNORECASE):
            type_hint = "series"
        elif re.search(r"TVEpisode", type_text, re.IGNORECASE):
            type_hint = "episode"
        else:
            type_hint = "movie"

        return TitlePageData(
            name=str(name) if name else None,
            poster=str(poster) if poster else None,
            released=str(released) if released else None,
            year=year,
            type_hint=type_hint,
            parent_series=_parent_series(node),
        )

    @staticmethod
    def _json_ld(page: str) -> dict[str, Any] | None:
        match = JSON_LD_RE.search(page)
        if not match:
            return None
        try:
            payload = json.loads(match.group(1))
        except json.JSONDecodeError:
            logger.debug("Unparseable JSON-LD block")
            return None
        if isinstance(payload, list):
            payload = {"@graph": payload}
        return payload if isinstance(payload, dict) else None


def _select_node(document: dict[str, Any], item_id: str) -> dict[str, Any]:
    graph = document.get("@graph")
    if not isinstance(graph, list) or not graph:
        return document
    nodes = [node for node in graph if isinstance(node, dict)]
    for node in nodes:
        if f"/title/{item_id}" in str(node.get("@id") or node.get("url") or ""):
            return node
    for node in nodes:
        if "TVEpisode" in str(node.get("@type") or ""):
            return node
    return nodes[0] if nodes else document


def _parent_series(node: dict[str, Any]) -> str | None:
    part = node.get("partOfSeries") or node.get("partOfTVSeries")
    if part is None:
        season = node.get("partOfSeason")
        if isinstance(season, dict):
            part = season.get("partOfSeries")
    if isinstance(part, str):
        url = part
    elif isinstance(part, dict):
        url = part.get("url") or part.get("sameAs") or part.get("@id")
    else:
        return None
    return find_item_id(str(url)) if url else None
