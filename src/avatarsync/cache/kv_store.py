"""
Key-value store implementations.

- SQLiteKVStore: async SQLite-backed store using aiosqlite, with an optional
  size quota enforced through SQLite's ``max_page_count``. An exhausted
  quota surfaces as StorageFullError, the same "store full" failure the
  deprecated in-store avatar cache used to cause.
- InMemoryKVStore: dict-based store for tests and throwaway sessions.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Iterable

import aiosqlite

from avatarsync.cache.base import KeyValueStore
from avatarsync.exceptions import StorageError, StorageFullError
from avatarsync.logging import get_logger

logger = get_logger(__name__)

# Stay well under SQLite's bound-parameter limit
_REMOVE_BATCH_SIZE = 500


def _is_full_error(error: sqlite3.Error) -> bool:
    """Check whether a sqlite error is SQLITE_FULL."""
    if getattr(error, "sqlite_errorcode", None) == sqlite3.SQLITE_FULL:
        return True
    return "full" in str(error).lower()


class SQLiteKVStore(KeyValueStore):
    """SQLite-backed key-value store.

    Stores all entries in a single ``kv`` table at ``db_path``.
    """

    def __init__(self, db_path: str | Path, max_bytes: int | None = None) -> None:
        """Initialize the store.

        Args:
            db_path: Path of the SQLite database file.
            max_bytes: Optional size quota for the whole database file.
        """
        self.db_path = Path(db_path)
        self.max_bytes = max_bytes
        self._db: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Open the database and create the schema. Safe to call twice."""
        if self._db is not None:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self.db_path)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        await self._db.commit()

        if self.max_bytes is not None:
            async with self._db.execute("PRAGMA page_size") as cursor:
                row = await cursor.fetchone()
            page_size = row[0] if row else 4096
            max_pages = max(1, self.max_bytes // page_size)
            await self._db.execute(f"PRAGMA max_page_count = {int(max_pages)}")

        logger.debug(
            "Key-value store initialized",
            db_path=str(self.db_path),
            max_bytes=self.max_bytes,
        )

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("SQLiteKVStore not initialized. Call init() first.")
        return self._db

    async def _write(self, operation: str, sql: str, params: tuple | list, key: str | None = None) -> int:
        """Run one write statement and commit, translating sqlite failures."""
        db = self._conn()
        try:
            cursor = await db.execute(sql, params)
            await db.commit()
            return cursor.rowcount
        except sqlite3.Error as e:
            await db.rollback()
            context = {"operation": operation, "key": key, "error": str(e)}
            if _is_full_error(e):
                raise StorageFullError("Key-value store is full", context) from e
            raise StorageError("Key-value store write failed", context) from e

    async def get_item(self, key: str) -> str | None:
        """Get a value, or None if the key is absent."""
        db = self._conn()
        try:
            async with db.execute("SELECT value FROM kv WHERE key = ?", (key,)) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageError(
                "Key-value store read failed", {"operation": "get", "key": key, "error": str(e)}
            ) from e
        return row[0] if row else None

    async def set_item(self, key: str, value: str) -> None:
        """Set a value, replacing any previous one."""
        await self._write(
            "set",
            "INSERT INTO kv (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
            key=key,
        )

    async def remove_item(self, key: str) -> bool:
        """Remove a key. Return True when something was removed."""
        removed = await self._write("remove", "DELETE FROM kv WHERE key = ?", (key,), key=key)
        return removed > 0

    async def get_all_keys(self) -> list[str]:
        """List every key in the store."""
        db = self._conn()
        try:
            async with db.execute("SELECT key FROM kv ORDER BY key") as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StorageError(
                "Key-value store read failed", {"operation": "keys", "error": str(e)}
            ) from e
        return [row[0] for row in rows]

    async def multi_remove(self, keys: Iterable[str]) -> int:
        """Remove many keys at once. Return the number removed."""
        key_list = list(dict.fromkeys(keys))
        removed = 0
        for start in range(0, len(key_list), _REMOVE_BATCH_SIZE):
            batch = key_list[start : start + _REMOVE_BATCH_SIZE]
            placeholders = ", ".join("?" for _ in batch)
            removed += await self._write(
                "multi_remove",
                f"DELETE FROM kv WHERE key IN ({placeholders})",
                batch,
            )
        return removed


class InMemoryKVStore(KeyValueStore):
    """Dict-based key-value store for tests and ephemeral sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> str | None:
        return self._data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove_item(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def get_all_keys(self) -> list[str]:
        return sorted(self._data)

    async def multi_remove(self, keys: Iterable[str]) -> int:
        removed = 0
        for key in set(keys):
            if self._data.pop(key, None) is not None:
                removed += 1
        return removed
