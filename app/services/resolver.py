"""Per-item metadata resolution with a multi-source fallback chain."""

from __future__ import annotations

import asyncio
import logging

from ..context import CacheContext
from ..errors import NotFound, UpstreamUnavailable
from ..models import Card, FallbackRecord, MetadataRecord
from .metadata_addon import MetadataAddonClient
from .title_page import TitlePageClient, TitlePageData

logger = logging.getLogger(__name__)

# Curated lists skew towards series, so the series lookup runs first.
LOOKUP_ORDER: tuple[str, ...] = ("series", "movie")


class MetadataResolver:
    """Resolves and caches the best-guess kind and metadata of item ids."""

    def __init__(
        self,
        context: CacheContext,
        metadata_client: MetadataAddonClient,
        title_pages: TitlePageClient,
    ) -> None:
        self._context = context
        self._metadata = metadata_client
        self._title_pages = title_pages
        self._inflight: dict[str, asyncio.Future[MetadataRecord]] = {}

    async def resolve(self, item_id: str) -> MetadataRecord:
        """Return the cached record for ``item_id``, resolving it on first use."""

        cached = self._context.best.get(item_id)
        if cached is not None:
            return cached

        pending = self._inflight.get(item_id)
        if pending is not None:
            return await pending

        future: asyncio.Future[MetadataRecord] = asyncio.get_running_loop().create_future()
        self._inflight[item_id] = future
        try:
            record = await self._resolve_uncached(item_id)
        except BaseException as exc:
            future.set_exception(exc)
            # Mark retrieved so an unobserved failure is not reported twice.
            future.exception()
            raise
        else:
            future.set_result(record)
            return record
        finally:
            self._inflight.pop(item_id, None)

    async def _resolve_uncached(self, item_id: str) -> MetadataRecord:
        for kind in LOOKUP_ORDER:
            meta = await self._metadata.lookup(kind, item_id)
            if meta:
                record = MetadataRecord(kind=kind, meta=meta)
                self._context.best.set(item_id, record)
                return record

        page = await self._scrape_title_page(item_id)
        kind = "series" if page.type_hint == "series" else "movie"
        meta = None
        if page.name:
            meta = {
                "name": page.name,
                "poster": page.poster,
                "released": page.released,
                "year": page.year,
            }
        record = MetadataRecord(kind=kind, meta=meta)
        self._context.best.set(item_id, record)
        if page.displayable:
            self._context.fallback[item_id] = FallbackRecord(
                name=page.name,
                poster=page.poster,
                release_date=page.released,
                year=page.year,
                type=kind,
            )
        if page.type_hint == "episode" and page.parent_series:
            self._context.ep2ser[item_id] = page.parent_series
        return record

    async def _scrape_title_page(self, item_id: str) -> TitlePageData:
        try:
            return await self._title_pages.fetch(item_id)
        except NotFound:
            logger.info("No metadata found anywhere for %s", item_id)
        except UpstreamUnavailable as exc:
            logger.warning("Title page scrape for %s failed: %s", item_id, exc)
        return TitlePageData()

    async def parent_series(self, item_id: str) -> str | None:
        """Return the series an episode belongs to, memoized per id."""

        known = self._context.ep2ser.get(item_id)
        if known:
            return known
        try:
            page = await self._title_pages.fetch(item_id)
        except (NotFound, UpstreamUnavailable) as exc:
            logger.debug("Parent series lookup for %s failed: %s", item_id, exc)
            return None
        if page.parent_series:
            self._context.ep2ser[item_id] = page.parent_series
        return page.parent_series

    def card_for(self, item_id: str) -> Card:
        """Build a display card from whatever is cached for ``item_id``."""

        return Card.build(
            item_id,
            self._context.best.get(item_id),
            self._context.fallback.get(item_id),
        )

    async def ensure_card(self, item_id: str) -> Card:
        await self.resolve(item_id)
        card = self.card_for(item_id)
        self._context.cards[item_id] = card
        return card

    def purge(self) -> None:
        self._context.clear_metadata()
