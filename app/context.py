"""The shared cache state handed to every component."""

from __future__ import annotations

from dataclasses import dataclass, field

from .cache import BoundedCache
from .models import (
    Card,
    FallbackRecord,
    ListRecord,
    MetadataRecord,
    Preferences,
    Snapshot,
)
from .revision import RevisionTracker, catalog_fingerprint


@dataclass
class CacheContext:
    """Committed lists, preferences and metadata caches for one process."""

    lists: dict[str, ListRecord] = field(default_factory=dict)
    prefs: Preferences = field(default_factory=Preferences)
    best: BoundedCache[str, MetadataRecord] = field(default_factory=BoundedCache)
    fallback: dict[str, FallbackRecord] = field(default_factory=dict)
    cards: dict[str, Card] = field(default_factory=dict)
    ep2ser: dict[str, str] = field(default_factory=dict)
    revision: RevisionTracker = field(default_factory=RevisionTracker)
    last_sync_at: int = 0

    @classmethod
    def create(
        cls, *, metadata_cache_size: int = 20_000, upgrade_episodes: bool = True
    ) -> "CacheContext":
        context = cls(best=BoundedCache(metadata_cache_size))
        context.prefs.upgrade_episodes = upgrade_episodes
        return context

    def fingerprint(self) -> str:
        return catalog_fingerprint(self.lists, self.prefs)

    def refresh_revision(self) -> bool:
        """Bump the revision when the catalog shape changed since the last check."""

        return self.revision.observe(self.fingerprint())

    def to_snapshot(self) -> Snapshot:
        return Snapshot(
            last_sync_at=self.last_sync_at,
            manifest_rev=self.revision.value,
            lists={key: value.model_copy(deep=True) for key, value in self.lists.items()},
            prefs=self.prefs.model_copy(deep=True),
            best=self.best.to_dict(),
            fallback=dict(self.fallback),
            cards=dict(self.cards),
            ep2ser=dict(self.ep2ser),
        )

    def apply_snapshot(self, snapshot: Snapshot) -> None:
        """Replace in-memory state with a loaded snapshot."""

        self.lists = dict(snapshot.lists)
        self.prefs = snapshot.prefs
        self.best.clear()
        self.best.update(snapshot.best)
        self.fallback = dict(snapshot.fallback)
        self.cards = dict(snapshot.cards)
        self.ep2ser = dict(snapshot.ep2ser)
        self.last_sync_at = snapshot.last_sync_at
        self.revision.prime(self.fingerprint(), value=snapshot.manifest_rev)

    def clear_metadata(self) -> None:
        self.best.clear()
        self.fallback.clear()
        self.cards.clear()
        self.ep2ser.clear()
