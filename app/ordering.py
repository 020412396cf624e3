"""Deterministic ordering of catalog cards."""

from __future__ import annotations

from functools import cmp_to_key
from typing import Any, Sequence

from .models import Card
from .utils import to_timestamp

SORT_OPTIONS: tuple[str, ...] = (
    "custom",
    "imdb",
    "date_asc",
    "date_desc",
    "rating_asc",
    "rating_desc",
    "runtime_asc",
    "runtime_desc",
    "name_asc",
    "name_desc",
)
NATIVE_SORT = "imdb"
DEFAULT_SORT = "name_asc"

_VALID_SORT = frozenset(SORT_OPTIONS)


def clamp_sort_options(values: object) -> list[str]:
    """Keep only recognised sort keys, preserving order and dropping repeats."""

    if not isinstance(values, (list, tuple)):
        return []
    cleaned: list[str] = []
    for value in values:
        if value in _VALID_SORT and value not in cleaned:
            cleaned.append(value)
    return cleaned


def _compare_present(a: Any, b: Any) -> int:
    return (a > b) - (a < b)


def _name_key(card: Card) -> str:
    return (card.name or "").casefold()


def _sort_value(card: Card, field: str) -> Any:
    if field == "date":
        return to_timestamp(card.release_date, card.year)
    if field == "rating":
        return card.imdb_rating
    if field == "runtime":
        return card.runtime
    return _name_key(card)


def _tie_break(left: tuple[int, Card], right: tuple[int, Card]) -> int:
    (i, a), (j, b) = left, right
    return (
        _compare_present(_name_key(a), _name_key(b))
        or _compare_present(a.id, b.id)
        or _compare_present(i, j)
    )


def sort_by(
    cards: Sequence[Card],
    key: str | None,
    custom_order: Sequence[str] | None = None,
) -> list[Card]:
    """Return ``cards`` ordered by ``key``; the result is total and stable."""

    sort_key = (key or DEFAULT_SORT).lower()
    if sort_key == NATIVE_SORT or sort_key == "native":
        return list(cards)
    if sort_key == "custom":
        return apply_custom_order(cards, custom_order or ())
    if sort_key not in _VALID_SORT:
        sort_key = DEFAULT_SORT

    field, _, direction = sort_key.partition("_")
    descending = direction == "desc"

    def compare(left: tuple[int, Card], right: tuple[int, Card]) -> int:
        a = _sort_value(left[1], field)
        b = _sort_value(right[1], field)
        if a is None and b is None:
            result = 0
        elif a is None:
            return 1
        elif b is None:
            return -1
        else:
            result = _compare_present(a, b)
            if descending:
                result = -result
        if result:
            return result
        return _tie_break(left, right)

    indexed = list(enumerate(cards))
    indexed.sort(key=cmp_to_key(compare))
    return [card for _, card in indexed]


def apply_custom_order(cards: Sequence[Card], order: Sequence[str]) -> list[Card]:
    """Pinned ids first by position, the rest after them by name."""

    positions = {item_id: index for index, item_id in enumerate(order)}
    unpinned = len(positions)

    def key(entry: tuple[int, Card]) -> tuple[int, str, str, int]:
        index, card = entry
        position = positions.get(card.id, unpinned)
        if position < unpinned:
            return (position, "", "", 0)
        return (unpinned, _name_key(card), card.id, index)

    indexed = list(enumerate(cards))
    indexed.sort(key=key)
    return [card for _, card in indexed]

