"""Durable snapshot storage backends."""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .database import Database
from .db_models import SnapshotRecord
from .errors import PersistenceFailure
from .models import Snapshot

logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    """Persists and restores the full cache as one unit."""

    async def save(self, snapshot: Snapshot) -> None: ...

    async def load(self) -> Snapshot | None: ...


class FileSnapshotStore:
    """Stores the snapshot as a JSON document at a well-known path."""

    def __init__(self, path: str | os.PathLike[str]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def save(self, snapshot: Snapshot) -> None:
        payload = snapshot.to_json()
        try:
            await asyncio.to_thread(self._write, payload)
        except OSError as exc:
            raise PersistenceFailure(f"Could not write {self._path}: {exc}") from exc
        logger.debug("Snapshot written to %s", self._path)

    async def load(self) -> Snapshot | None:
        try:
            raw = await asyncio.to_thread(self._path.read_text, "utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            raise PersistenceFailure(f"Could not read {self._path}: {exc}") from exc
        try:
            return Snapshot.model_validate_json(raw)
        except ValidationError as exc:
            raise PersistenceFailure(f"Snapshot at {self._path} is invalid: {exc}") from exc

    def _write(self, payload: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class DatabaseSnapshotStore:
    """Stores the snapshot as a single JSON row keyed by the well-known path."""

    def __init__(self, database: Database, key: str):
        self._database = database
        self._key = key

    async def save(self, snapshot: Snapshot) -> None:
        payload = snapshot.model_dump(mode="json", by_alias=True, exclude_none=True)
        now = datetime.utcnow()
        try:
            async with self._database.session() as session:
                record = await session.get(SnapshotRecord, self._key)
                if record is None:
                    session.add(
                        SnapshotRecord(
                            key=self._key,
                            payload=payload,
                            manifest_rev=snapshot.manifest_rev,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                else:
                    record.payload = payload
                    record.manifest_rev = snapshot.manifest_rev
                    record.updated_at = now
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Could not store snapshot {self._key}: {exc}") from exc
        logger.debug("Snapshot stored under %s", self._key)

    async def load(self) -> Snapshot | None:
        try:
            async with self._database.session() as session:
                record = await session.get(SnapshotRecord, self._key)
                payload = record.payload if record is not None else None
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Could not load snapshot {self._key}: {exc}") from exc
        if payload is None:
            return None
        try:
            return Snapshot.model_validate(payload)
        except ValidationError as exc:
            raise PersistenceFailure(f"Snapshot {self._key} is invalid: {exc}") from exc


def build_snapshot_store(
    backend: str, path: str, database: Database | None = None
) -> SnapshotStore:
    """Return the configured store; the database backend needs ``database``."""

    if backend == "database":
        if database is None:
            raise ValueError("The database snapshot backend needs a database")
        return DatabaseSnapshotStore(database, path)
    if backend == "file":
        return FileSnapshotStore(path)
    raise ValueError(f"Unknown snapshot backend: {backend}")
