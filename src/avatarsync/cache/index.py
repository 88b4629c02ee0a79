"""
Persisted avatar cache index.

Maps avatar ID to the epoch-millisecond timestamp of its last blob write.
The whole mapping is stored as one orjson document under a dedicated key of
the host key-value store. The key differs from the deprecated cache's index
key so both formats can coexist during migration.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Iterable

import orjson

from avatarsync.cache.base import KeyValueStore
from avatarsync.exceptions import StorageError
from avatarsync.logging import get_logger
from avatarsync.types import AvatarId, now_millis

logger = get_logger(__name__)

CACHE_INDEX_KEY = "fs_avatar_cache_index"


class CacheIndex:
    """Read-modify-write access to the avatar cache index.

    All mutations run under one asyncio lock, so concurrent writers in the
    same process never write back a stale copy of the index.
    """

    def __init__(
        self,
        kv_store: KeyValueStore,
        key: str = CACHE_INDEX_KEY,
        clock: Callable[[], int] = now_millis,
    ) -> None:
        self.kv_store = kv_store
        self.key = key
        self.clock = clock
        self._lock = asyncio.Lock()

    @property
    def lock(self) -> asyncio.Lock:
        """Lock serializing index rewrites."""
        return self._lock

    async def load(self) -> dict[AvatarId, int]:
        """Load the index. Unreadable or corrupt indexes read as empty."""
        try:
            raw = await self.kv_store.get_item(self.key)
        except StorageError as e:
            logger.warning("Failed to read avatar cache index", error=str(e))
            return {}
        if not raw:
            return {}

        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning("Discarding corrupt avatar cache index", key=self.key)
            return {}
        if not isinstance(data, dict):
            return {}

        index: dict[AvatarId, int] = {}
        for avatar_id, stamp in data.items():
            if isinstance(stamp, (int, float)) and not isinstance(stamp, bool):
                index[str(avatar_id)] = int(stamp)
        return index

    async def save(self, index: dict[AvatarId, int]) -> bool:
        """Write the full index. Return False if the store rejected it."""
        try:
            await self.kv_store.set_item(self.key, orjson.dumps(index).decode("utf-8"))
        except StorageError as e:
            logger.warning("Failed to save avatar cache index", error=str(e), entries=len(index))
            return False
        return True

    async def touch(self, avatar_id: AvatarId, stamp: int | None = None) -> bool:
        """Record a write of ``avatar_id`` at ``stamp`` (defaults to now)."""
        async with self._lock:
            index = await self.load()
            index[avatar_id] = self.clock() if stamp is None else stamp
            return await self.save(index)

    async def discard(self, avatar_ids: Iterable[AvatarId]) -> bool:
        """Drop entries for the given avatar IDs."""
        async with self._lock:
            index = await self.load()
            changed = False
            for avatar_id in avatar_ids:
                if index.pop(avatar_id, None) is not None:
                    changed = True
            if not changed:
                return True
            return await self.save(index)

    async def get(self, avatar_id: AvatarId) -> int | None:
        """Get the last write timestamp of one avatar."""
        return (await self.load()).get(avatar_id)
