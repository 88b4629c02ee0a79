"""
Tests for housekeeping and the runtime wiring.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from avatarsync.cache.file_cache import AvatarBlobStore
from avatarsync.cache.index import CACHE_INDEX_KEY
from avatarsync.cache.kv_store import InMemoryKVStore, SQLiteKVStore
from avatarsync.cache.legacy import LEGACY_INDEX_KEY
from avatarsync.config import Settings
from avatarsync.maintenance import run_housekeeping
from avatarsync.runtime import AvatarCacheRuntime
from avatarsync.types import Player

from conftest import JPEG_URI, OTHER_URI, FakeChannel, FakeClock, ok_response

DAY_MS = 24 * 60 * 60 * 1000


class TestHousekeeping:
    """Test the purge / evict / status sequence."""

    @pytest.mark.asyncio
    async def test_full_sequence(
        self, blob_store: AvatarBlobStore, kv_store: InMemoryKVStore, clock: FakeClock
    ) -> None:
        """Test purging legacy keys and evicting expired blobs."""
        await kv_store.set_item("avatar_cache:old", "data:image/jpeg;base64,Zm9v")
        await kv_store.set_item(LEGACY_INDEX_KEY, "{}")
        await blob_store.write("stale", JPEG_URI)
        clock.advance(10 * DAY_MS)
        await blob_store.write("fresh", OTHER_URI)

        report = await run_housekeeping(blob_store, kv_store)

        assert report.legacy_keys_removed == 2
        assert report.eviction.expired == ("stale",)
        assert report.status is not None
        assert report.status.file_count == 1
        assert [e.avatar_id for e in report.status.entries] == ["fresh"]
        assert await kv_store.get_all_keys() == [CACHE_INDEX_KEY]

    @pytest.mark.asyncio
    async def test_clear_all(self, blob_store: AvatarBlobStore, kv_store: InMemoryKVStore) -> None:
        """Test the lobby's clear-everything pass with a zero TTL."""
        await blob_store.write("a", JPEG_URI)
        await blob_store.write("b", OTHER_URI)

        report = await run_housekeeping(blob_store, kv_store, max_age=timedelta(0))

        assert report.eviction.remaining == 0
        assert report.status.file_count == 0
        assert report.status.index_count == 0

    @pytest.mark.asyncio
    async def test_idempotent(self, blob_store: AvatarBlobStore, kv_store: InMemoryKVStore) -> None:
        """Test that a second run finds nothing to do."""
        await kv_store.set_item("avatar_cache:x", "y")
        await run_housekeeping(blob_store, kv_store)

        report = await run_housekeeping(blob_store, kv_store)

        assert report.legacy_keys_removed == 0
        assert report.eviction.evicted == ()


class TestRuntime:
    """Test the process-wide wiring."""

    @pytest.mark.asyncio
    async def test_runtime_with_sqlite_store(self, mock_settings: Settings) -> None:
        """Test the default SQLite store and a resolver sharing the blob dir."""
        channel = FakeChannel({"av-42": ok_response(JPEG_URI)})

        async with AvatarCacheRuntime(mock_settings, channel=channel) as runtime:
            assert isinstance(runtime.kv_store, SQLiteKVStore)
            lobby = runtime.new_resolver("lobby")
            await lobby.resolve_many([Player("alice", "av-42")])

            assert lobby.peek("alice") == JPEG_URI
            assert (mock_settings.CACHE_DIR / "av-42.jpg").is_file()
            assert await runtime.index.get("av-42") is not None

            game = runtime.new_resolver("game")
            assert await game.resolve("alice", "av-42") == JPEG_URI
            assert channel.calls_for("av-42") == 1

        assert channel.closed is True
        assert mock_settings.KV_STORE_PATH.is_file()

    @pytest.mark.asyncio
    async def test_settings_drive_eviction(self, mock_settings: Settings) -> None:
        """Test that TTL and cap come from settings."""
        runtime = AvatarCacheRuntime(
            mock_settings, channel=FakeChannel(), kv_store=InMemoryKVStore()
        )

        assert runtime.blob_store.default_max_age == timedelta(days=3)
        assert runtime.blob_store.max_entries == 10

    @pytest.mark.asyncio
    async def test_self_loader_reaches_new_resolvers(self, mock_settings: Settings) -> None:
        """Test that resolvers are attached to the own-avatar loader."""
        avatar_path = mock_settings.CACHE_DIR.parent / "me.jpg"
        avatar_path.write_bytes(b"foo")
        kv_store = InMemoryKVStore(
            {"auth:username": "alice", "profile:avatar": str(avatar_path)}
        )

        async with AvatarCacheRuntime(
            mock_settings, channel=FakeChannel(), kv_store=kv_store
        ) as runtime:
            resolver = runtime.new_resolver("lobby")
            await runtime.self_loader.apply_local_override()
            assert resolver.peek("alice") == JPEG_URI

            await runtime.release_resolver(resolver)
            assert resolver.peek("alice") is None

        assert await kv_store.get_item("auth:username") == "alice"
