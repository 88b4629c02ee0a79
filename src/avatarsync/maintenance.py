"""
Avatar cache housekeeping.

Runs the sequence the client performs when the lobby opens: reclaim the
deprecated in-store cache, evict old blobs, then log what is left.
"""

from __future__ import annotations

from datetime import timedelta

from avatarsync.cache.base import KeyValueStore
from avatarsync.cache.file_cache import AvatarBlobStore
from avatarsync.cache.legacy import purge_legacy_avatar_cache
from avatarsync.logging import get_logger
from avatarsync.types import CacheStatus, HousekeepingReport

logger = get_logger(__name__)


def log_cache_status(status: CacheStatus) -> None:
    """Log a cache status snapshot, one debug line per indexed avatar."""
    logger.info(
        "Avatar cache status",
        cache_dir=status.cache_dir,
        files=status.file_count,
        index_entries=status.index_count,
        total_kb=round(status.total_bytes / 1024, 1),
    )
    for entry in status.entries:
        logger.debug(
            "Cached avatar",
            avatar_id=entry.avatar_id,
            size_kb=round(entry.size_bytes / 1024, 1) if entry.size_bytes is not None else None,
            written_at=entry.written_at.isoformat(),
        )


async def run_housekeeping(
    blob_store: AvatarBlobStore,
    kv_store: KeyValueStore,
    max_age: timedelta | int | None = None,
    max_entries: int | None = None,
) -> HousekeepingReport:
    """Purge the legacy cache, evict, and report the cache status.

    Args:
        blob_store: The avatar blob store.
        kv_store: Host key-value store holding legacy entries.
        max_age: Eviction TTL override (zero clears everything).
        max_entries: Entry cap override.

    Returns:
        HousekeepingReport with the outcome of each step.
    """
    report = HousekeepingReport()
    report.legacy_keys_removed = await purge_legacy_avatar_cache(kv_store)
    report.eviction = await blob_store.evict(max_age, max_entries=max_entries)
    report.status = await blob_store.status()
    log_cache_status(report.status)
    return report
