from __future__ import annotations

import asyncio

from sqlalchemy import create_engine, inspect

from app.database import Database


def test_create_all_creates_snapshot_table(tmp_path) -> None:
    """Creating the schema twice is harmless and yields the snapshot table."""

    database_path = tmp_path / "state.db"
    database = Database(f"sqlite+aiosqlite:///{database_path}")

    async def runner() -> None:
        await database.create_all()
        await database.create_all()
        await database.dispose()

    asyncio.run(runner())

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        inspector = inspect(inspector_engine)
        assert "snapshots" in inspector.get_table_names()
        columns = {column["name"] for column in inspector.get_columns("snapshots")}
    finally:
        inspector_engine.dispose()

    assert {"key", "payload", "manifest_rev", "updated_at"} <= columns
