"""SQLite implementation of the KeyValueStore protocol."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from pikchain.exceptions import StoreQuotaExceeded

log = logging.getLogger(__name__)

SCHEMA = """
-- Durable key-value pairs (cache entries, transaction lists)
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _entry_size(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class SQLiteKeyValueStore:
    """SQLite-backed KeyValueStore with a total size limit.

    The limit counts key and value bytes of every row; a write that would
    exceed it raises StoreQuotaExceeded and leaves the table untouched.
    """

    def __init__(self, db_path: str, max_bytes: int | None = 5 * 1024 * 1024) -> None:
        self._db_path = db_path
        self._max_bytes = max_bytes
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "Store not initialized. Call initialize() first."
        return self._db

    async def get(self, key: str) -> str | None:
        async with self.db.execute("SELECT value FROM kv WHERE key=?", (key,)) as cur:
            row = await cur.fetchone()
            return row["value"] if row else None

    async def set(self, key: str, value: str) -> None:
        if self._max_bytes is not None:
            size = _entry_size(key, value)
            used = await self._used_bytes(excluding=key)
            if used + size > self._max_bytes:
                raise StoreQuotaExceeded(key, size, self._max_bytes)

        await self.db.execute(
            "INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)"
            " ON CONFLICT(key) DO UPDATE SET value=excluded.value,"
            " updated_at=excluded.updated_at",
            (key, value, _now()),
        )
        await self.db.commit()

    async def remove(self, key: str) -> None:
        await self.db.execute("DELETE FROM kv WHERE key=?", (key,))
        await self.db.commit()

    async def keys(self) -> list[str]:
        async with self.db.execute("SELECT key FROM kv ORDER BY key") as cur:
            return [row["key"] async for row in cur]

    async def _used_bytes(self, excluding: str) -> int:
        async with self.db.execute(
            "SELECT COALESCE(SUM(LENGTH(CAST(key AS BLOB)) + LENGTH(CAST(value AS BLOB))), 0)"
            " AS used FROM kv WHERE key != ?",
            (excluding,),
        ) as cur:
            row = await cur.fetchone()
            return int(row["used"]) if row else 0
