"""
Purge of the deprecated in-store avatar cache.

The old scheme kept whole base64 avatars as individual values of the host
key-value store (``avatar_cache:<id>``) plus an index under
``avatar_cache_index``. Under sustained multiplayer use that filled the
size-limited store. Nothing writes there anymore; this module reclaims
whatever is left.
"""

from __future__ import annotations

from avatarsync.cache.base import KeyValueStore
from avatarsync.exceptions import StorageError
from avatarsync.logging import get_logger

logger = get_logger(__name__)

LEGACY_PREFIX = "avatar_cache:"
LEGACY_INDEX_KEY = "avatar_cache_index"


def is_legacy_key(key: str) -> bool:
    """Check whether a key belongs to the deprecated avatar cache."""
    return key.startswith(LEGACY_PREFIX) or key == LEGACY_INDEX_KEY


async def purge_legacy_avatar_cache(kv_store: KeyValueStore) -> int:
    """Remove every deprecated avatar cache key from ``kv_store``.

    Idempotent: once the legacy keys are gone further calls remove nothing.
    Storage failures are logged and reported as nothing removed.

    Returns:
        Number of keys removed.
    """
    try:
        keys = await kv_store.get_all_keys()
        to_remove = [key for key in keys if is_legacy_key(key)]
        if not to_remove:
            return 0
        removed = await kv_store.multi_remove(to_remove)
    except StorageError as e:
        logger.warning("Failed purging legacy avatar cache", error=str(e))
        return 0

    logger.info("Legacy avatar cache purged", keys_removed=removed)
    return removed
