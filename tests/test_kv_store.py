"""
Tests for the key-value store implementations.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from avatarsync.cache.kv_store import InMemoryKVStore, SQLiteKVStore
from avatarsync.exceptions import StorageError, StorageFullError


@pytest.fixture
async def sqlite_store(temp_dir: Path) -> SQLiteKVStore:
    """Create an initialized SQLite store for testing."""
    store = SQLiteKVStore(temp_dir / "kv" / "storage.db")
    await store.init()
    yield store
    await store.close()


class TestSQLiteKVStore:
    """Test SQLite-backed store operations."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, sqlite_store: SQLiteKVStore) -> None:
        """Test storing and retrieving a value."""
        await sqlite_store.set_item("auth:username", "alice")

        assert await sqlite_store.get_item("auth:username") == "alice"

    @pytest.mark.asyncio
    async def test_get_missing_key(self, sqlite_store: SQLiteKVStore) -> None:
        """Test that an absent key reads as None."""
        assert await sqlite_store.get_item("nope") is None

    @pytest.mark.asyncio
    async def test_set_overwrites(self, sqlite_store: SQLiteKVStore) -> None:
        """Test that setting an existing key replaces its value."""
        await sqlite_store.set_item("k", "v1")
        await sqlite_store.set_item("k", "v2")

        assert await sqlite_store.get_item("k") == "v2"
        assert await sqlite_store.get_all_keys() == ["k"]

    @pytest.mark.asyncio
    async def test_remove_item(self, sqlite_store: SQLiteKVStore) -> None:
        """Test removing keys."""
        await sqlite_store.set_item("k", "v")

        assert await sqlite_store.remove_item("k") is True
        assert await sqlite_store.remove_item("k") is False
        assert await sqlite_store.get_item("k") is None

    @pytest.mark.asyncio
    async def test_get_all_keys_sorted(self, sqlite_store: SQLiteKVStore) -> None:
        """Test listing keys."""
        for key in ("b", "a", "c"):
            await sqlite_store.set_item(key, "x")

        assert await sqlite_store.get_all_keys() == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_multi_remove(self, sqlite_store: SQLiteKVStore) -> None:
        """Test removing many keys, including absent and duplicate ones."""
        for i in range(5):
            await sqlite_store.set_item(f"key{i}", "x")

        removed = await sqlite_store.multi_remove(["key0", "key1", "key1", "missing"])

        assert removed == 2
        assert await sqlite_store.get_all_keys() == ["key2", "key3", "key4"]

    @pytest.mark.asyncio
    async def test_multi_remove_large_batch(self, sqlite_store: SQLiteKVStore) -> None:
        """Test that removals beyond one batch all go through."""
        keys = [f"avatar_cache:{i}" for i in range(600)]
        for key in keys:
            await sqlite_store.set_item(key, "x")

        assert await sqlite_store.multi_remove(keys) == 600
        assert await sqlite_store.get_all_keys() == []

    @pytest.mark.asyncio
    async def test_persists_across_connections(self, temp_dir: Path) -> None:
        """Test that values survive close and reopen."""
        path = temp_dir / "persist.db"
        store = SQLiteKVStore(path)
        await store.init()
        await store.set_item("profile:name", "Alice")
        await store.close()

        reopened = SQLiteKVStore(path)
        await reopened.init()
        try:
            assert await reopened.get_item("profile:name") == "Alice"
        finally:
            await reopened.close()

    @pytest.mark.asyncio
    async def test_init_is_idempotent(self, sqlite_store: SQLiteKVStore) -> None:
        """Test that a second init() keeps the open connection."""
        await sqlite_store.set_item("k", "v")
        await sqlite_store.init()

        assert await sqlite_store.get_item("k") == "v"

    @pytest.mark.asyncio
    async def test_uninitialized_store_raises(self, temp_dir: Path) -> None:
        """Test that using the store before init() fails loudly."""
        store = SQLiteKVStore(temp_dir / "never.db")

        with pytest.raises(RuntimeError, match="not initialized"):
            await store.get_item("k")


class TestSQLiteKVStoreQuota:
    """Test the size quota."""

    @pytest.mark.asyncio
    async def test_oversized_write_raises_storage_full(self, temp_dir: Path) -> None:
        """Test that exceeding the quota raises StorageFullError."""
        store = SQLiteKVStore(temp_dir / "small.db", max_bytes=4096 * 3)
        await store.init()
        try:
            await store.set_item("small", "ok")

            with pytest.raises(StorageFullError) as exc_info:
                await store.set_item("avatar_cache:big", "x" * 200_000)

            assert isinstance(exc_info.value, StorageError)
            assert exc_info.value.context["key"] == "avatar_cache:big"
            assert await store.get_item("small") == "ok"
            assert await store.get_item("avatar_cache:big") is None
        finally:
            await store.close()


class TestInMemoryKVStore:
    """Test the in-memory store."""

    @pytest.mark.asyncio
    async def test_crud(self) -> None:
        """Test basic operations."""
        store = InMemoryKVStore({"a": "1"})

        await store.set_item("b", "2")

        assert await store.get_item("a") == "1"
        assert await store.get_all_keys() == ["a", "b"]
        assert await store.remove_item("a") is True
        assert await store.remove_item("a") is False

    @pytest.mark.asyncio
    async def test_multi_remove(self) -> None:
        """Test removing many keys."""
        store = InMemoryKVStore({"a": "1", "b": "2", "c": "3"})

        assert await store.multi_remove(["a", "b", "zzz"]) == 2
        assert await store.get_all_keys() == ["c"]
