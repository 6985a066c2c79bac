"""SQLite snapshot store - durable whole-collection snapshots.

Every collection (memories, preferences, vectors, skill profiles, ...) is a
single JSON payload rewritten atomically on each mutation.
"""

import asyncio
import contextlib
import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from mnemo.core.logging import get_logger

logger = get_logger("memory.snapshots")

SCHEMA = """
CREATE TABLE IF NOT EXISTS snapshots (
    name TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class PersistenceError(Exception):
    """Durable write of a collection failed."""


class SnapshotStore:
    """aiosqlite-backed key -> JSON snapshot storage."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        # Collections share one connection, so a rollback must not see another
        # collection's pending upsert
        self._write_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Open the database and create the schema."""
        if self._conn is not None:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self.db_path)
        await self._conn.executescript(SCHEMA)
        await self._conn.commit()
        logger.info(f"Connected to snapshot store: {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Snapshot store not connected. Call connect() first.")
        return self._conn

    async def load(self, name: str) -> Any | None:
        """Load a collection. Missing or unreadable snapshots return None."""
        try:
            async with self.conn.execute(
                "SELECT payload FROM snapshots WHERE name = ?", (name,)
            ) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as e:
            logger.warning(f"Could not read snapshot '{name}', starting empty: {e}")
            return None

        if row is None:
            return None

        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupt snapshot '{name}', starting empty: {e}")
            return None

    async def save(self, name: str, payload: Any) -> None:
        """Overwrite a collection in a single transaction."""
        async with self._write_lock:
            await self._upsert(name, payload)

    async def _upsert(self, name: str, payload: Any) -> None:
        try:
            data = json.dumps(payload, ensure_ascii=False)
            await self.conn.execute(
                """INSERT INTO snapshots (name, payload, updated_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(name) DO UPDATE SET payload=excluded.payload,
                                                  updated_at=excluded.updated_at""",
                (name, data, datetime.now().isoformat()),
            )
            await self.conn.commit()
        except (sqlite3.Error, OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to persist snapshot '{name}': {e}")
            with contextlib.suppress(sqlite3.Error):
                await self.conn.rollback()
            raise PersistenceError(f"Failed to persist {name}: {e}") from e

    async def names(self) -> list[str]:
        """Names of the collections written so far."""
        async with self.conn.execute("SELECT name FROM snapshots ORDER BY name") as cursor:
            return [row[0] async for row in cursor]
