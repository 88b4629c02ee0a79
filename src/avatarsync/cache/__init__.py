"""
Cache package for avatar persistence.

This package provides the two persistent tiers of the avatar cache:
- Key-value store (kv_store.py): SQLite-backed and in-memory host stores
- Cache index (index.py): avatar ID -> last write timestamp
- File cache (file_cache.py): one blob file per avatar ID, with eviction
- Legacy purge (legacy.py): cleanup of the deprecated in-store cache
"""

from avatarsync.cache.base import KeyValueStore
from avatarsync.cache.file_cache import AvatarBlobStore
from avatarsync.cache.index import CACHE_INDEX_KEY, CacheIndex
from avatarsync.cache.kv_store import InMemoryKVStore, SQLiteKVStore
from avatarsync.cache.legacy import purge_legacy_avatar_cache

__all__ = [
    "AvatarBlobStore",
    "CACHE_INDEX_KEY",
    "CacheIndex",
    "InMemoryKVStore",
    "KeyValueStore",
    "SQLiteKVStore",
    "purge_legacy_avatar_cache",
]
