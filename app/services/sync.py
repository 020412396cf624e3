"""Merge remote list state with local edits and commit it to the cache."""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Iterable, Sequence

from ..context import CacheContext
from ..errors import ConcurrentSyncSkipped, PersistenceFailure
from ..identifiers import is_item_id
from ..models import ListRecord, ListReference, Preferences
from ..storage import SnapshotStore
from ..utils import now_ms
from .discovery import SourceDiscoverer
from .resolver import MetadataResolver
from .scraper import ListScraper

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMMITTING = "committing"
    FAILED = "failed"


def apply_overlay(ids: Iterable[str], prefs: Preferences, list_id: str) -> list[str]:
    """Overlay local extras and removals on scraped ids; removal always wins."""

    removed = set(prefs.removed.get(list_id, ()))
    merged = [item_id for item_id in ids if item_id not in removed]
    seen = set(merged)
    for item_id in prefs.extras.get(list_id, ()):
        if is_item_id(item_id) and item_id not in seen:
            merged.append(item_id)
            seen.add(item_id)
    return [item_id for item_id in merged if item_id not in removed]


def prune_preferences(prefs: Preferences, list_ids: Sequence[str]) -> None:
    """Drop references to lists that no longer exist and append new ones to the order."""

    known = set(list_ids)
    kept = [list_id for list_id in prefs.order if list_id in known]
    prefs.order = kept + [list_id for list_id in list_ids if list_id not in kept]
    if prefs.enabled:
        prefs.enabled = [list_id for list_id in prefs.enabled if list_id in known]
    prefs.custom_order = {
        list_id: order
        for list_id, order in prefs.custom_order.items()
        if list_id in known
    }


class SyncOrchestrator:
    """Runs full syncs one at a time and commits their result atomically."""

    def __init__(
        self,
        context: CacheContext,
        *,
        discoverer: SourceDiscoverer,
        scraper: ListScraper,
        resolver: MetadataResolver,
        store: SnapshotStore | None = None,
        user_url: str | None = None,
        static_list_ids: Sequence[str] = (),
        concurrency: int = 4,
    ) -> None:
        self._context = context
        self._discoverer = discoverer
        self._scraper = scraper
        self._resolver = resolver
        self._store = store
        self._user_url = user_url
        self._static_list_ids = tuple(static_list_ids)
        self._concurrency = max(1, concurrency)
        self._state = SyncState.IDLE
        self._commit_lock = asyncio.Lock()
        self.last_error: str | None = None
        self.last_duration: float | None = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_idle(self) -> bool:
        return self._state is SyncState.IDLE

    @property
    def commit_lock(self) -> asyncio.Lock:
        return self._commit_lock

    async def run(self, *, rediscover: bool = True) -> bool:
        """Run one full sync. Returns ``False`` when another run is in progress."""

        try:
            self._enter()
        except ConcurrentSyncSkipped:
            logger.debug("Sync already in progress; skipping trigger")
            return False

        started = time.monotonic()
        try:
            await self._run(rediscover)
        except Exception as exc:
            self._state = SyncState.FAILED
            self.last_error = str(exc) or exc.__class__.__name__
            logger.exception("Sync failed; keeping the previously committed lists")
        else:
            self.last_error = None
        finally:
            self.last_duration = time.monotonic() - started
            self._state = SyncState.IDLE
        return True

    async def purge_and_run(self) -> bool:
        """Forget every list and cached record, then sync from scratch."""

        if not self.is_idle:
            logger.debug("Sync already in progress; skipping purge")
            return False
        async with self._commit_lock:
            self._context.lists = {}
            self._resolver.purge()
        return await self.run(rediscover=True)

    def _enter(self) -> None:
        if self._state in (SyncState.RUNNING, SyncState.COMMITTING):
            raise ConcurrentSyncSkipped("sync already running")
        self._state = SyncState.RUNNING

    async def _run(self, rediscover: bool) -> None:
        prefs = self._context.prefs
        references: list[ListReference] = []
        if rediscover:
            references = await self._discoverer.harvest(
                prefs,
                user_url=self._user_url,
                static_list_ids=self._static_list_ids,
            )
        if not references and self._static_list_ids:
            references = [
                ListReference(
                    id=list_id,
                    url=self._discoverer.list_url(list_id),
                    name=list_id,
                )
                for list_id in self._static_list_ids
            ]
            logger.info("Using %d configured list ids as sources", len(references))

        blocked = set(prefs.blocked)
        targets: dict[str, ListRecord] = {}
        for reference in references:
            if reference.id in blocked:
                continue
            targets[reference.id] = ListRecord(
                id=reference.id,
                name=reference.name or reference.id,
                url=reference.url,
            )
        previous = self._context.lists
        carried = {
            list_id: record
            for list_id, record in previous.items()
            if list_id not in targets and list_id not in blocked
        }
        for list_id, record in carried.items():
            targets[list_id] = record.model_copy(deep=True)

        semaphore = asyncio.Semaphore(self._concurrency)

        async def scrape(record: ListRecord) -> None:
            async with semaphore:
                url = record.url or self._discoverer.list_url(record.id)
                ids = await self._scraper.scrape_list(url)
            if not ids and record.id in carried:
                ids = list(carried[record.id].ids)
            record.ids = apply_overlay(ids, prefs, record.id)

        await asyncio.gather(*(scrape(record) for record in targets.values()))

        touched = _unique(
            item_id for record in targets.values() for item_id in record.ids
        )
        await self._bounded(self._resolver.resolve, touched)

        if prefs.upgrade_episodes:
            replacements = await self._episode_replacements(touched)
            if replacements:
                for record in targets.values():
                    record.ids = _unique(
                        replacements.get(item_id, item_id) for item_id in record.ids
                    )
                touched = _unique(replacements.get(item_id, item_id) for item_id in touched)

        await self._bounded(self._resolver.ensure_card, touched)

        self._state = SyncState.COMMITTING
        async with self._commit_lock:
            # Admin edits may have landed while scraping and resolving.
            prefs = self._context.prefs
            blocked = set(prefs.blocked)
            targets = {
                list_id: record
                for list_id, record in targets.items()
                if list_id not in blocked
            }
            for record in targets.values():
                record.ids = apply_overlay(record.ids, prefs, record.id)
            self._context.lists = targets
            self._context.last_sync_at = now_ms()
            prune_preferences(self._context.prefs, list(targets.keys()))
            self._context.refresh_revision()
            await self.persist()

        logger.info(
            "Sync finished: %d ids across %d lists (revision %d)",
            len(touched),
            len(targets),
            self._context.revision.value,
        )

    async def _episode_replacements(self, item_ids: Sequence[str]) -> dict[str, str]:
        replacements: dict[str, str] = {}
        for item_id in item_ids:
            series_id = self._context.ep2ser.get(item_id)
            if series_id is None:
                record = await self._resolver.resolve(item_id)
                if record.meta is not None:
                    continue
                series_id = await self._resolver.parent_series(item_id)
            if series_id and is_item_id(series_id) and series_id != item_id:
                replacements[item_id] = series_id
        return replacements

    async def _bounded(self, func, item_ids: Sequence[str]) -> None:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def call(item_id: str) -> None:
            async with semaphore:
                await func(item_id)

        await asyncio.gather(*(call(item_id) for item_id in item_ids))

    async def persist(self) -> bool:
        """Write the current cache to the snapshot store, if one is configured."""

        if self._store is None:
            return False
        try:
            await self._store.save(self._context.to_snapshot())
        except PersistenceFailure as exc:
            logger.warning("Snapshot save failed: %s", exc)
            return False
        return True


def _unique(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result
