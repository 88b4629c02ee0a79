"""
Avatar cache and synchronization layer for the family games client.

Turns opaque per-player avatar IDs into displayable images through a
two-tier cache: a per-screen in-memory sync map in front of a shared
on-disk blob store, with coalesced server fetches on misses.
"""

from avatarsync.cache import (
    AvatarBlobStore,
    CacheIndex,
    InMemoryKVStore,
    KeyValueStore,
    SQLiteKVStore,
    purge_legacy_avatar_cache,
)
from avatarsync.maintenance import run_housekeeping
from avatarsync.runtime import AvatarCacheRuntime
from avatarsync.sync import (
    AvatarChannel,
    AvatarResolver,
    HttpAvatarChannel,
    SelfAvatarLoader,
    SelfProfile,
)
from avatarsync.types import Player

__version__ = "0.1.0"

__all__ = [
    "AvatarBlobStore",
    "AvatarCacheRuntime",
    "AvatarChannel",
    "AvatarResolver",
    "CacheIndex",
    "HttpAvatarChannel",
    "InMemoryKVStore",
    "KeyValueStore",
    "Player",
    "SQLiteKVStore",
    "SelfAvatarLoader",
    "SelfProfile",
    "__version__",
    "purge_legacy_avatar_cache",
    "run_housekeeping",
]
