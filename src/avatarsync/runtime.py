"""
Process-wide wiring of the avatar cache.

One AvatarCacheRuntime owns the host key-value store, the blob store and
the server channel. Screens ask it for their own AvatarResolver; all of
them share the same blob directory and index.
"""

from __future__ import annotations

from typing import Callable

from avatarsync.cache.base import KeyValueStore
from avatarsync.cache.file_cache import AvatarBlobStore
from avatarsync.cache.index import CacheIndex
from avatarsync.cache.kv_store import SQLiteKVStore
from avatarsync.config import Settings
from avatarsync.logging import get_logger
from avatarsync.sync.channel import AvatarChannel, HttpAvatarChannel
from avatarsync.sync.resolver import AvatarResolver
from avatarsync.sync.self_avatar import SelfAvatarLoader
from avatarsync.types import now_millis

logger = get_logger(__name__)


class AvatarCacheRuntime:
    """Owns the shared stores and hands out per-screen resolvers.

    Usage:
        async with AvatarCacheRuntime(settings) as runtime:
            resolver = runtime.new_resolver("lobby")
            await resolver.resolve_many(players)
    """

    def __init__(
        self,
        settings: Settings,
        channel: AvatarChannel | None = None,
        kv_store: KeyValueStore | None = None,
        clock: Callable[[], int] = now_millis,
    ) -> None:
        """Initialize the runtime.

        Args:
            settings: Application settings.
            channel: Server channel; defaults to HttpAvatarChannel.
            kv_store: Host key-value store; defaults to SQLiteKVStore at
                KV_STORE_PATH.
            clock: Millisecond clock used for index timestamps.
        """
        self.settings = settings
        self._owns_kv_store = kv_store is None
        self.kv_store: KeyValueStore = kv_store or SQLiteKVStore(
            settings.KV_STORE_PATH, max_bytes=settings.KV_STORE_MAX_BYTES
        )
        self.channel: AvatarChannel = channel or HttpAvatarChannel.from_settings(settings)
        self.index = CacheIndex(self.kv_store, clock=clock)
        self.blob_store = AvatarBlobStore(
            settings.CACHE_DIR,
            self.index,
            default_max_age=settings.cache_max_age,
            max_entries=settings.AVATAR_CACHE_SIZE,
        )
        self.self_loader = SelfAvatarLoader(self.kv_store)
        self._resolvers: list[AvatarResolver] = []

    async def open(self) -> AvatarCacheRuntime:
        """Open the key-value store."""
        if isinstance(self.kv_store, SQLiteKVStore):
            await self.kv_store.init()
        logger.debug("Avatar cache runtime opened", cache_dir=str(self.settings.CACHE_DIR))
        return self

    async def close(self) -> None:
        """Close resolvers, the channel and (if owned) the key-value store."""
        for resolver in self._resolvers:
            await resolver.close()
        self._resolvers.clear()
        await self.channel.close()
        if self._owns_kv_store:
            await self.kv_store.close()

    async def __aenter__(self) -> AvatarCacheRuntime:
        return await self.open()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def new_resolver(self, name: str = "resolver") -> AvatarResolver:
        """Create a resolver for one screen and attach it to the self loader."""
        resolver = AvatarResolver(self.blob_store, self.channel, name=name)
        self._resolvers.append(resolver)
        self.self_loader.attach(resolver)
        return resolver

    async def release_resolver(self, resolver: AvatarResolver) -> None:
        """Tear down a screen's resolver."""
        self.self_loader.detach(resolver)
        if resolver in self._resolvers:
            self._resolvers.remove(resolver)
        await resolver.close()
