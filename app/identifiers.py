"""Validation helpers for IMDb item and list identifiers."""

from __future__ import annotations

import re

from .errors import InvalidIdentifier

ITEM_ID_RE = re.compile(r"^tt\d{7,}$", re.IGNORECASE)
LIST_ID_RE = re.compile(r"^ls\d{6,}$", re.IGNORECASE)

_ITEM_ID_SEARCH_RE = re.compile(r"tt\d{7,}", re.IGNORECASE)
_LIST_ID_SEARCH_RE = re.compile(r"ls\d{6,}", re.IGNORECASE)


def is_item_id(value: object) -> bool:
    """Return whether ``value`` is a well-formed title identifier."""

    return isinstance(value, str) and ITEM_ID_RE.fullmatch(value) is not None


def is_list_id(value: object) -> bool:
    """Return whether ``value`` is a well-formed list identifier."""

    return isinstance(value, str) and LIST_ID_RE.fullmatch(value) is not None


def find_item_id(value: object) -> str | None:
    """Return the first title identifier embedded in ``value`` (e.g. a URL)."""

    if not isinstance(value, str):
        return None
    match = _ITEM_ID_SEARCH_RE.search(value)
    if not match:
        return None
    return _normalize(match.group(0))


def find_list_id(value: object) -> str | None:
    """Return the first list identifier embedded in ``value``."""

    if not isinstance(value, str):
        return None
    match = _LIST_ID_SEARCH_RE.search(value)
    if not match:
        return None
    return _normalize(match.group(0))


def require_item_id(value: object) -> str:
    if not is_item_id(value):
        raise InvalidIdentifier(f"Invalid item id: {value!r}")
    return _normalize(value)


def require_list_id(value: object) -> str:
    if not is_list_id(value):
        raise InvalidIdentifier(f"Invalid list id: {value!r}")
    return _normalize(value)


def clean_item_ids(values: object) -> list[str]:
    """Keep valid title identifiers in order, dropping duplicates."""

    if not isinstance(values, (list, tuple)):
        return []
    cleaned: list[str] = []
    seen: set[str] = set()
    for value in values:
        if not is_item_id(value):
            continue
        value = _normalize(value)
        if value not in seen:
            seen.add(value)
            cleaned.append(value)
    return cleaned


def clean_list_ids(values: object) -> list[str]:
    """Keep valid list identifiers in order, dropping duplicates."""

    if not isinstance(values, (list, tuple)):
        return []
    cleaned: list[str] = []
    for value in values:
        if not is_list_id(value):
            continue
        value = _normalize(value)
        if value not in cleaned:
            cleaned.append(value)
    return cleaned


def _normalize(identifier: str) -> str:
    return identifier[:2].lower() + identifier[2:]
