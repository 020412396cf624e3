"""Pydantic models describing the cached catalog and its snapshot."""

from __future__ import annotations

import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .identifiers import clean_item_ids

ContentType = Literal["movie", "series"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class ListReference(_CamelModel):
    """A source list as found by discovery."""

    id: str
    url: str
    name: str | None = None


class ListRecord(_CamelModel):
    """A mirrored list with its ordered, unique item ids."""

    id: str
    name: str
    url: str
    ids: list[str] = Field(default_factory=list)

    @field_validator("ids", mode="before")
    @classmethod
    def _dedupe_ids(cls, value: object) -> list[str]:
        return clean_item_ids(value)


class MetadataRecord(_CamelModel):
    """Best-guess kind and canonical metadata for one item."""

    kind: ContentType
    meta: dict[str, Any] | None = None


class FallbackRecord(_CamelModel):
    """Displayable fields recovered from a degraded title-page scrape."""

    name: str | None = None
    poster: str | None = None
    release_date: str | None = None
    year: int | None = None
    type: ContentType = "movie"


class Card(_CamelModel):
    """Display-ready projection of an item used by catalog listings."""

    id: str
    type: ContentType = "movie"
    name: str
    poster: str | None = None
    imdb_rating: float | None = None
    runtime: int | None = None
    year: int | None = None
    release_date: str | None = None
    description: str | None = None

    @classmethod
    def build(
        cls,
        item_id: str,
        record: MetadataRecord | None,
        fallback: FallbackRecord | None,
    ) -> "Card":
        meta = (record.meta if record else None) or {}
        fb = fallback or FallbackRecord()
        kind = record.kind if record else fb.type
        return cls(
            id=item_id,
            type=kind,
            name=str(meta.get("name") or fb.name or item_id),
            poster=meta.get("poster") or fb.poster,
            imdb_rating=_parse_float(meta.get("imdbRating")),
            runtime=_parse_minutes(meta.get("runtime")),
            year=_parse_year(meta.get("year")) or fb.year,
            release_date=(
                meta.get("released") or meta.get("releaseInfo") or fb.release_date
            ),
            description=meta.get("description"),
        )

    def to_meta_preview(self) -> dict[str, Any]:
        """Return the Stremio meta preview used in catalog responses."""

        return self.model_dump(by_alias=True, exclude_none=True)


class SourceRefs(_CamelModel):
    users: list[str] = Field(default_factory=list)
    lists: list[str] = Field(default_factory=list)


class Preferences(_CamelModel):
    """User-controlled overlay applied on top of the mirrored lists."""

    enabled: list[str] = Field(default_factory=list)
    order: list[str] = Field(default_factory=list)
    default_list: str = ""
    per_list_sort: dict[str, str] = Field(default_factory=dict)
    sort_options: dict[str, list[str]] = Field(default_factory=dict)
    custom_order: dict[str, list[str]] = Field(default_factory=dict)
    extras: dict[str, list[str]] = Field(default_factory=dict)
    removed: dict[str, list[str]] = Field(default_factory=dict)
    sources: SourceRefs = Field(default_factory=SourceRefs)
    blocked: list[str] = Field(default_factory=list)
    upgrade_episodes: bool = True


class Snapshot(_CamelModel):
    """Durable projection of the cache and preferences."""

    last_sync_at: int = 0
    manifest_rev: int = 1
    lists: dict[str, ListRecord] = Field(default_factory=dict)
    prefs: Preferences = Field(default_factory=Preferences)
    best: dict[str, MetadataRecord] = Field(default_factory=dict)
    fallback: dict[str, FallbackRecord] = Field(default_factory=dict)
    cards: dict[str, Card] = Field(default_factory=dict)
    ep2ser: dict[str, str] = Field(default_factory=dict)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)


def _parse_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_minutes(value: Any) -> int | None:
    if isinstance(value, (int, float)):
        return int(value)
    if not isinstance(value, str):
        return None
    hours = re.search(r"(\d+)\s*h", value)
    mins = re.search(r"(\d+)\s*m", value)
    if hours or mins:
        return int(hours.group(1) if hours else 0) * 60 + int(
            mins.group(1) if mins else 0
        )
    match = re.search(r"\d+", value)
    return int(match.group(0)) if match else None


def _parse_year(value: Any) -> int | None:
    if isinstance(value, int):
        return value
    if not value:
        return None
    match = re.search(r"\d{4}", str(value))
    return int(match.group(0)) if match else None
