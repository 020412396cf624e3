"""Application configuration models."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Annotated, Iterable, Literal

from pydantic import AliasChoices, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .identifiers import clean_list_ids


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="My Lists", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=7000, alias="PORT")

    admin_password: str | None = Field(default=None, alias="ADMIN_PASSWORD")
    shared_secret: str | None = Field(default=None, alias="SHARED_SECRET")

    imdb_user_url: str | None = Field(default=None, alias="IMDB_USER_URL")
    imdb_list_ids: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(), alias="IMDB_LIST_IDS"
    )
    sync_interval_minutes: int = Field(
        default=60, alias="IMDB_SYNC_MINUTES", ge=0, le=10_080
    )
    upgrade_episodes: bool = Field(default=True, alias="UPGRADE_EPISODES")

    imdb_base_url: HttpUrl = Field(
        default="https://www.imdb.com", alias="IMDB_BASE_URL"
    )
    metadata_addon_url: HttpUrl = Field(
        default="https://v3-cinemeta.strem.io",
        alias="METADATA_ADDON_URL",
        validation_alias=AliasChoices("METADATA_ADDON_URL", "CINEMETA_API_URL"),
    )

    list_page_limit: int = Field(default=80, alias="LIST_PAGE_LIMIT", ge=1, le=500)
    page_delay_ms: int = Field(default=80, alias="PAGE_DELAY_MS", ge=0, le=10_000)
    sync_concurrency: int = Field(default=4, alias="SYNC_CONCURRENCY", ge=1, le=32)
    metadata_cache_size: int = Field(
        default=20_000, alias="METADATA_CACHE_SIZE", ge=100
    )

    snapshot_backend: Literal["file", "database"] = Field(
        default="file", alias="SNAPSHOT_BACKEND"
    )
    snapshot_path: str = Field(default="data/snapshot.json", alias="SNAPSHOT_PATH")
    database_url: str = Field(
        default="sqlite+aiosqlite:///./mylists.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("imdb_list_ids", mode="before")
    @classmethod
    def _parse_list_ids(cls, value: object) -> tuple[str, ...]:
        """Split comma or whitespace separated list ids, dropping invalid ones."""

        if value is None:
            return ()
        if isinstance(value, str):
            raw_values = re.split(r"[,\s]+", value)
        elif isinstance(value, Iterable):
            raw_values = [str(part) for part in value]
        else:
            raise TypeError("IMDB_LIST_IDS must be a string or iterable of strings")

        return tuple(clean_list_ids([entry.strip() for entry in raw_values]))

    @field_validator("imdb_user_url", "shared_secret", "admin_password", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    @property
    def sync_interval_seconds(self) -> int:
        return self.sync_interval_minutes * 60

    @property
    def page_delay_seconds(self) -> float:
        return self.page_delay_ms / 1000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
