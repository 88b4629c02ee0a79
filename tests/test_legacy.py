"""
Tests for the legacy avatar cache purge.
"""

from __future__ import annotations

import pytest

from avatarsync.cache.index import CACHE_INDEX_KEY
from avatarsync.cache.kv_store import InMemoryKVStore
from avatarsync.cache.legacy import (
    LEGACY_INDEX_KEY,
    is_legacy_key,
    purge_legacy_avatar_cache,
)
from avatarsync.exceptions import StorageError


class BrokenKVStore(InMemoryKVStore):
    """Store whose key listing fails."""

    async def get_all_keys(self) -> list[str]:
        raise StorageError("Key-value store read failed", {"operation": "keys"})


def legacy_store() -> InMemoryKVStore:
    return InMemoryKVStore(
        {
            "avatar_cache:av-1": "data:image/jpeg;base64,Zm9v",
            "avatar_cache:av-2": "data:image/jpeg;base64,YmFy",
            LEGACY_INDEX_KEY: '{"av-1": 1, "av-2": 2}',
            CACHE_INDEX_KEY: '{"av-3": 3}',
            "auth:username": "alice",
        }
    )


class TestLegacyPurge:
    """Test purging the deprecated in-store cache."""

    def test_is_legacy_key(self) -> None:
        """Test legacy key detection."""
        assert is_legacy_key("avatar_cache:abc")
        assert is_legacy_key(LEGACY_INDEX_KEY)
        assert not is_legacy_key(CACHE_INDEX_KEY)
        assert not is_legacy_key("profile:avatar")

    @pytest.mark.asyncio
    async def test_removes_only_legacy_keys(self) -> None:
        """Test that prefixed keys and the old index go, everything else stays."""
        store = legacy_store()

        removed = await purge_legacy_avatar_cache(store)

        assert removed == 3
        assert await store.get_all_keys() == ["auth:username", CACHE_INDEX_KEY]

    @pytest.mark.asyncio
    async def test_purge_is_idempotent(self) -> None:
        """Test that a second purge removes nothing."""
        store = legacy_store()

        await purge_legacy_avatar_cache(store)
        keys_after_first = await store.get_all_keys()

        assert await purge_legacy_avatar_cache(store) == 0
        assert await store.get_all_keys() == keys_after_first

    @pytest.mark.asyncio
    async def test_empty_store(self) -> None:
        """Test purging a store with no legacy keys."""
        assert await purge_legacy_avatar_cache(InMemoryKVStore()) == 0

    @pytest.mark.asyncio
    async def test_storage_failure_reports_nothing_removed(self) -> None:
        """Test that a failing store is logged and not raised."""
        assert await purge_legacy_avatar_cache(BrokenKVStore()) == 0
