"""Catalog fingerprinting and the monotonic manifest revision."""

from __future__ import annotations

import json
import logging
from typing import Mapping

from .models import ListRecord, Preferences

logger = logging.getLogger(__name__)


def catalog_fingerprint(lists: Mapping[str, ListRecord], prefs: Preferences) -> str:
    """Return a deterministic key describing the externally visible catalog shape."""

    enabled = prefs.enabled or list(lists.keys())
    names = sorted(
        (lists[list_id].name if list_id in lists else list_id) for list_id in enabled
    )
    per_sort = json.dumps(prefs.per_list_sort, sort_keys=True)
    per_options = json.dumps(prefs.sort_options, sort_keys=True)
    extras = json.dumps(prefs.extras, sort_keys=True)
    removed = json.dumps(prefs.removed, sort_keys=True)
    return "#".join(
        [
            ",".join(enabled),
            ",".join(prefs.order),
            prefs.default_list,
            "|".join(names),
            per_sort,
            per_options,
            f"c{len(prefs.custom_order)}",
            f"a{len(extras)}",
            f"r{len(removed)}",
        ]
    )


class RevisionTracker:
    """Counts fingerprint changes; the value only ever increases."""

    def __init__(self, value: int = 1):
        self._value = max(1, value)
        self._last_fingerprint = ""

    @property
    def value(self) -> int:
        return self._value

    @property
    def last_fingerprint(self) -> str:
        return self._last_fingerprint

    def prime(self, fingerprint: str, *, value: int | None = None) -> None:
        """Set the baseline without bumping, e.g. after loading a snapshot."""

        if value is not None:
            self._value = max(1, value)
        self._last_fingerprint = fingerprint

    def observe(self, fingerprint: str) -> bool:
        if fingerprint == self._last_fingerprint:
            return False
        self._last_fingerprint = fingerprint
        self._value += 1
        logger.info("Catalog shape changed; revision is now %d", self._value)
        return True

    def force_bump(self, fingerprint: str) -> int:
        self._last_fingerprint = fingerprint
        self._value += 1
        return self._value
