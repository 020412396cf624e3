"""Catalog queries and admin edits over the committed cache."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from ..context import CacheContext
from ..errors import PersistenceFailure
from ..identifiers import (
    clean_item_ids,
    clean_list_ids,
    is_item_id,
    is_list_id,
    require_list_id,
)
from ..models import Card, ListRecord, Preferences
from ..ordering import NATIVE_SORT, SORT_OPTIONS, clamp_sort_options, sort_by
from ..storage import SnapshotStore
from .resolver import MetadataResolver
from .scheduler import SyncScheduler
from .sync import SyncOrchestrator

logger = logging.getLogger(__name__)

MANIFEST_ID = "org.mylists.snapshot"
MANIFEST_VERSION = "12.2.0"
CATALOG_TYPE = "My lists"
CATALOG_PREFIX = "list:"
MAX_PAGE_SIZE = 200
DEFAULT_PAGE_SIZE = 100


class CatalogService:
    """Read path for the add-on plus the admin edit operations."""

    def __init__(
        self,
        context: CacheContext,
        *,
        orchestrator: SyncOrchestrator,
        resolver: MetadataResolver,
        scheduler: SyncScheduler,
        store: SnapshotStore | None = None,
        app_name: str = "My Lists",
    ) -> None:
        self._context = context
        self._orchestrator = orchestrator
        self._resolver = resolver
        self._scheduler = scheduler
        self._store = store
        self._app_name = app_name

    @property
    def context(self) -> CacheContext:
        return self._context

    @property
    def orchestrator(self) -> SyncOrchestrator:
        return self._orchestrator

    @property
    def scheduler(self) -> SyncScheduler:
        return self._scheduler

    async def start(self) -> None:
        await self.load_snapshot()
        self._scheduler.start()
        # Always refresh once at boot, even with the timer disabled.
        self._scheduler.launch()

    async def stop(self) -> None:
        await self._scheduler.stop()

    async def load_snapshot(self) -> bool:
        """Restore the cache from the snapshot store; a missing snapshot is fine."""

        if self._store is None:
            return False
        try:
            snapshot = await self._store.load()
        except PersistenceFailure as exc:
            logger.warning("Snapshot load failed, starting empty: %s", exc)
            return False
        if snapshot is None:
            logger.info("No snapshot found, starting empty")
            return False
        self._context.apply_snapshot(snapshot)
        logger.info(
            "Loaded snapshot with %d lists (revision %d)",
            len(self._context.lists),
            self._context.revision.value,
        )
        return True

    def touch(self) -> None:
        """Kick off a background sync if the cache is stale."""

        self._scheduler.maybe_trigger()

    # Query -----------------------------------------------------------------

    def ordered_list_ids(self) -> list[str]:
        lists = self._context.lists
        prefs = self._context.prefs
        enabled = set(prefs.enabled or lists.keys())
        base = [list_id for list_id in prefs.order if list_id in lists]
        missing = sorted(
            (list_id for list_id in lists if list_id not in base),
            key=lambda list_id: (lists[list_id].name or list_id).casefold(),
        )
        return [list_id for list_id in base + missing if list_id in enabled]

    def manifest(self) -> dict[str, Any]:
        return {
            "id": MANIFEST_ID,
            "version": f"{MANIFEST_VERSION}-{self._context.revision.value}",
            "name": self._app_name,
            "description": "Your IMDb lists as catalogs (cached).",
            "resources": ["catalog", "meta"],
            "types": [CATALOG_TYPE, "movie", "series"],
            "idPrefixes": ["tt"],
            "catalogs": self.manifest_catalogs(),
        }

    def manifest_catalogs(self) -> list[dict[str, Any]]:
        catalogs = []
        for list_id in self.ordered_list_ids():
            record = self._context.lists[list_id]
            options = self._context.prefs.sort_options.get(list_id) or list(SORT_OPTIONS)
            catalogs.append(
                {
                    "type": CATALOG_TYPE,
                    "id": f"{CATALOG_PREFIX}{list_id}",
                    "name": record.name or list_id,
                    "extraSupported": ["search", "skip", "limit", "sort"],
                    "extra": [
                        {"name": "search"},
                        {"name": "skip"},
                        {"name": "limit"},
                        {"name": "sort", "options": options},
                    ],
                    "posterShape": "poster",
                }
            )
        return catalogs

    def list_catalog(
        self,
        list_id: str,
        *,
        sort: str | None = None,
        search: str | None = None,
        skip: int = 0,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> list[Card]:
        """Return one page of a list's cards; unknown lists yield an empty page."""

        record = self._context.lists.get(list_id)
        if record is None:
            return []
        cards = [self.get_card(item_id) for item_id in record.ids]

        query = (search or "").strip().casefold()
        if query:
            cards = [card for card in cards if _matches(card, query)]

        sort_key = (sort or "").strip().lower() or self._context.prefs.per_list_sort.get(
            list_id, NATIVE_SORT
        )
        ordered = sort_by(cards, sort_key, self._context.prefs.custom_order.get(list_id))

        skip = max(0, skip)
        limit = max(0, min(limit, MAX_PAGE_SIZE))
        return ordered[skip : skip + limit]

    def get_card(self, item_id: str) -> Card:
        card = self._context.cards.get(item_id)
        if card is None:
            card = self._resolver.card_for(item_id)
        return card

    async def get_meta(self, item_id: str) -> dict[str, Any]:
        """Return full metadata for an item, resolving it on demand."""

        if not is_item_id(item_id):
            return {"id": item_id, "type": "movie", "name": "Unknown item"}
        record = await self._resolver.resolve(item_id)
        if record.meta is None or item_id in self._context.fallback:
            fallback = self._context.fallback.get(item_id)
            meta: dict[str, Any] = {
                "id": item_id,
                "type": record.kind,
                "name": (fallback.name if fallback else None) or item_id,
            }
            poster = fallback.poster if fallback else None
            if poster:
                meta["poster"] = poster
            return meta
        return {**record.meta, "id": item_id, "type": record.kind}

    def list_items(self, list_id: str) -> list[Card]:
        record = self._require_list(list_id)
        return [self.get_card(item_id) for item_id in record.ids]

    def lists(self) -> dict[str, ListRecord]:
        return dict(self._context.lists)

    def preferences(self) -> Preferences:
        return self._context.prefs

    def status(self) -> dict[str, Any]:
        return {
            "state": self._orchestrator.state.value,
            "lastSyncAt": self._context.last_sync_at or None,
            "nextSyncAt": self._scheduler.next_sync_at(),
            "manifestRev": self._context.revision.value,
            "lists": len(self._context.lists),
            "items": sum(len(record.ids) for record in self._context.lists.values()),
            "lastError": self._orchestrator.last_error,
        }

    # Admin -----------------------------------------------------------------

    async def add_items(self, list_id: str, item_ids: Iterable[str]) -> list[str]:
        """Add items locally; they survive future syncs through ``extras``."""

        list_id = require_list_id(list_id)
        items = clean_item_ids(list(item_ids))
        self._require_list(list_id)
        for item_id in items:
            await self._resolver.ensure_card(item_id)
        async with self._orchestrator.commit_lock:
            record = self._require_list(list_id)
            prefs = self._context.prefs
            extras = prefs.extras.setdefault(list_id, [])
            for item_id in items:
                if item_id not in extras:
                    extras.append(item_id)
                if item_id not in record.ids:
                    record.ids.append(item_id)
            _discard(prefs.removed, list_id, items)
            await self._commit()
        return list(record.ids)

    async def remove_items(self, list_id: str, item_ids: Iterable[str]) -> list[str]:
        """Hide items locally; they stay hidden across syncs through ``removed``."""

        list_id = require_list_id(list_id)
        items = clean_item_ids(list(item_ids))
        async with self._orchestrator.commit_lock:
            record = self._require_list(list_id)
            prefs = self._context.prefs
            removed = prefs.removed.setdefault(list_id, [])
            for item_id in items:
                if item_id not in removed:
                    removed.append(item_id)
            _discard(prefs.extras, list_id, items)
            hidden = set(removed)
            record.ids = [item_id for item_id in record.ids if item_id not in hidden]
            await self._commit()
        return list(record.ids)

    async def set_custom_order(self, list_id: str, item_ids: Iterable[str]) -> list[str]:
        list_id = require_list_id(list_id)
        async with self._orchestrator.commit_lock:
            record = self._require_list(list_id)
            present = set(record.ids)
            order = [item_id for item_id in clean_item_ids(list(item_ids)) if item_id in present]
            prefs = self._context.prefs
            prefs.custom_order[list_id] = order
            prefs.per_list_sort[list_id] = "custom"
            await self._commit()
        return order

    async def set_preferences(self, payload: Mapping[str, Any]) -> Preferences:
        """Apply a partial preferences update; absent keys keep their value."""

        if not isinstance(payload, Mapping):
            raise ValueError("Preferences payload must be an object")
        async with self._orchestrator.commit_lock:
            prefs = self._context.prefs
            if "enabled" in payload:
                prefs.enabled = clean_list_ids(payload["enabled"])
            if "order" in payload:
                prefs.order = clean_list_ids(payload["order"])
            if "defaultList" in payload:
                default_list = payload["defaultList"]
                prefs.default_list = default_list if is_list_id(default_list) else ""
            if "perListSort" in payload:
                prefs.per_list_sort = _sort_map(payload["perListSort"])
            if "sortOptions" in payload:
                options = payload["sortOptions"]
                if not isinstance(options, Mapping):
                    raise ValueError("sortOptions must be an object")
                prefs.sort_options = {
                    list_id: clamp_sort_options(values)
                    for list_id, values in options.items()
                    if is_list_id(list_id)
                }
            if "upgradeEpisodes" in payload:
                prefs.upgrade_episodes = bool(payload["upgradeEpisodes"])
            if "sources" in payload:
                sources = payload["sources"] or {}
                if not isinstance(sources, Mapping):
                    raise ValueError("sources must be an object")
                if "users" in sources:
                    prefs.sources.users = _strings(sources["users"])
                if "lists" in sources:
                    prefs.sources.lists = _strings(sources["lists"])
            if "blocked" in payload:
                prefs.blocked = clean_list_ids(payload["blocked"])
            await self._commit()
        return prefs

    async def reset_list_local_edits(self, list_id: str) -> bool:
        list_id = require_list_id(list_id)
        async with self._orchestrator.commit_lock:
            prefs = self._context.prefs
            prefs.extras.pop(list_id, None)
            prefs.removed.pop(list_id, None)
            prefs.custom_order.pop(list_id, None)
            prefs.per_list_sort[list_id] = NATIVE_SORT
        return await self._scheduler.trigger_now()

    async def block_list(self, list_id: str) -> int:
        """Drop a list and keep it out of every future sync."""

        list_id = require_list_id(list_id)
        async with self._orchestrator.commit_lock:
            prefs = self._context.prefs
            self._context.lists.pop(list_id, None)
            prefs.enabled = [value for value in prefs.enabled if value != list_id]
            prefs.order = [value for value in prefs.order if value != list_id]
            if list_id not in prefs.blocked:
                prefs.blocked.append(list_id)
            revision = self._context.revision.force_bump(self._context.fingerprint())
            await self._orchestrator.persist()
        logger.info("Blocked list %s; revision is now %d", list_id, revision)
        return revision

    async def unblock_list(self, list_id: str) -> bool:
        list_id = require_list_id(list_id)
        async with self._orchestrator.commit_lock:
            prefs = self._context.prefs
            prefs.blocked = [value for value in prefs.blocked if value != list_id]
        return await self._scheduler.trigger_now()

    async def add_sources(
        self, users: Iterable[str] = (), lists: Iterable[str] = ()
    ) -> bool:
        async with self._orchestrator.commit_lock:
            sources = self._context.prefs.sources
            for value in _strings(users):
                if value not in sources.users:
                    sources.users.append(value)
            for value in _strings(lists):
                if value not in sources.lists:
                    sources.lists.append(value)
        return await self._scheduler.trigger_now()

    async def trigger_sync(self) -> bool:
        return await self._scheduler.trigger_now()

    async def purge_and_sync(self) -> bool:
        ran = await self._orchestrator.purge_and_run()
        self._scheduler.restart()
        return ran

    async def _commit(self) -> None:
        self._context.refresh_revision()
        await self._orchestrator.persist()

    def _require_list(self, list_id: str) -> ListRecord:
        record = self._context.lists.get(list_id)
        if record is None:
            raise KeyError(f"List {list_id} not found")
        return record


def _matches(card: Card, query: str) -> bool:
    return any(
        query in (value or "").casefold()
        for value in (card.name, card.id, card.description)
    )


def _discard(mapping: dict[str, list[str]], list_id: str, item_ids: Iterable[str]) -> None:
    current = mapping.get(list_id)
    if not current:
        return
    drop = set(item_ids)
    kept = [item_id for item_id in current if item_id not in drop]
    if kept:
        mapping[list_id] = kept
    else:
        mapping.pop(list_id, None)


def _sort_map(value: object) -> dict[str, str]:
    if not isinstance(value, Mapping):
        raise ValueError("perListSort must be an object")
    valid = set(SORT_OPTIONS)
    result: dict[str, str] = {}
    for list_id, key in value.items():
        if is_list_id(list_id) and isinstance(key, str):
            key = key.strip().lower()
            if key in valid:
                result[list_id] = key
    return result


def _strings(values: object) -> list[str]:
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, (list, tuple)):
        raise ValueError("Expected a list of strings")
    result: list[str] = []
    for value in values:
        text = str(value).strip()
        if text and text not in result:
            result.append(text)
    return result
