"""
File-based avatar blob cache.

One file per avatar ID under a cache directory: ``<cache_dir>/<avatar_id>.jpg``.
Files hold the decoded image bytes only; the data URI prefix is stripped on
write and re-added on read. Last-write timestamps live in the CacheIndex
and drive age-based eviction, optionally capped by an entry count.

Every I/O failure degrades to a cache miss or a skipped write. Nothing here
raises to the caller for a missing or unreadable avatar.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from uuid import uuid4

import aiofiles
import aiofiles.os

from avatarsync.cache.index import CacheIndex
from avatarsync.exceptions import DecodeError
from avatarsync.logging import get_logger
from avatarsync.types import (
    AvatarId,
    CacheEntryStatus,
    CacheStatus,
    EvictionReport,
    decode_data_uri,
    encode_data_uri,
    is_data_uri,
    millis_to_datetime,
)

logger = get_logger(__name__)

BLOB_SUFFIX = ".jpg"
DEFAULT_MAX_AGE = timedelta(days=7)


def _to_millis(max_age: timedelta | int | float) -> int:
    """Normalize a max age (timedelta or milliseconds) to milliseconds."""
    if isinstance(max_age, timedelta):
        millis = int(max_age.total_seconds() * 1000)
    else:
        millis = int(max_age)
    if millis < 0:
        raise ValueError("max_age must be >= 0.")
    return millis


class AvatarBlobStore:
    """Directory-backed avatar cache keyed by avatar ID.

    The directory is created lazily on first use. Blob writes are atomic
    (temp file then rename), so a failed write never clobbers a previous
    blob for the same ID.
    """

    def __init__(
        self,
        cache_dir: str | Path,
        index: CacheIndex,
        default_max_age: timedelta = DEFAULT_MAX_AGE,
        max_entries: int | None = None,
    ) -> None:
        """Initialize the blob store.

        Args:
            cache_dir: Directory holding the avatar files.
            index: Cache index recording last-write timestamps.
            default_max_age: TTL used by evict() when none is given.
            max_entries: Entry cap applied by evict() after the TTL pass.
        """
        if max_entries is not None and max_entries < 0:
            raise ValueError("max_entries must be >= 0.")
        self.cache_dir = Path(cache_dir)
        self.index = index
        self.default_max_age = default_max_age
        self.max_entries = max_entries
        self._dir_ready = False

    async def _ensure_dir(self) -> None:
        """Create the cache directory if it doesn't exist."""
        if self._dir_ready:
            return
        await aiofiles.os.makedirs(self.cache_dir, exist_ok=True)
        self._dir_ready = True

    def blob_path(self, avatar_id: AvatarId) -> Path | None:
        """Resolve the file path for an avatar ID.

        Returns None for IDs that are empty, contain path separators or NUL
        bytes, or would resolve outside the cache directory.
        """
        if not avatar_id or avatar_id in (".", ".."):
            return None
        if any(c in avatar_id for c in ("/", "\\", "\x00")):
            return None
        root = self.cache_dir.resolve()
        candidate = (self.cache_dir / f"{avatar_id}{BLOB_SUFFIX}").resolve()
        try:
            candidate.relative_to(root)
        except ValueError:
            return None
        return candidate

    async def exists(self, avatar_id: AvatarId) -> bool:
        """Check whether a blob file is present for ``avatar_id``."""
        path = self.blob_path(avatar_id)
        if path is None:
            return False
        try:
            await self._ensure_dir()
            return await aiofiles.os.path.isfile(path)
        except OSError:
            return False

    async def read(self, avatar_id: AvatarId) -> str | None:
        """Read a cached avatar as a data URI, or None on any miss."""
        path = self.blob_path(avatar_id)
        if path is None:
            return None
        try:
            async with aiofiles.open(path, "rb") as f:
                data = await f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.debug("Avatar blob unreadable", avatar_id=avatar_id, error=str(e))
            return None

        if not data:
            logger.debug("Empty avatar blob treated as miss", avatar_id=avatar_id)
            return None
        return encode_data_uri(data)

    async def write(self, avatar_id: AvatarId, blob: str) -> bool:
        """Persist a data URI (or bare base64 payload) for ``avatar_id``.

        Returns:
            True when the blob is on disk and indexed, False otherwise.
        """
        if not avatar_id or not blob:
            return False

        path = self.blob_path(avatar_id)
        if path is None:
            logger.warning("Refusing to cache avatar with unsafe ID", avatar_id=avatar_id)
            return False

        try:
            data = decode_data_uri(blob)
        except DecodeError as e:
            logger.warning("Avatar payload is not valid base64", avatar_id=avatar_id, error=str(e))
            return False

        tmp_path = path.with_name(f".{path.name}.{uuid4().hex}.tmp")
        try:
            await self._ensure_dir()
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(data)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            logger.warning("Error saving avatar to cache", avatar_id=avatar_id, error=str(e))
            try:
                await aiofiles.os.remove(tmp_path)
            except OSError:
                pass
            return False

        if not await self.index.touch(avatar_id):
            # Every blob on disk must have an index entry
            logger.warning("Avatar cached but not indexed, removing", avatar_id=avatar_id)
            await self._remove_file(avatar_id)
            return False

        logger.debug("Avatar cached", avatar_id=avatar_id, size=len(data))
        return True

    async def _remove_file(self, avatar_id: AvatarId) -> bool:
        """Delete a blob file, ignoring I/O errors."""
        path = self.blob_path(avatar_id)
        if path is None:
            return False
        try:
            await aiofiles.os.remove(path)
        except OSError:
            return False
        return True

    async def delete(self, avatar_id: AvatarId) -> bool:
        """Delete one cached avatar and its index entry (best effort)."""
        removed = await self._remove_file(avatar_id)
        await self.index.discard([avatar_id])
        return removed

    async def get_or_adopt(self, avatar_id: AvatarId | None, fallback: str | None) -> str | None:
        """Return the cached avatar, adopting ``fallback`` when it is inline.

        A cache hit wins. On a miss, a data URI fallback is saved under
        ``avatar_id`` and returned; any other fallback (remote URL, None)
        is returned unchanged.
        """
        if not avatar_id:
            return fallback

        cached = await self.read(avatar_id)
        if cached:
            return cached

        if fallback and is_data_uri(fallback):
            await self.write(avatar_id, fallback)
        return fallback

    async def evict(
        self,
        max_age: timedelta | int | float | None = None,
        max_entries: int | None = None,
    ) -> EvictionReport:
        """Evict expired avatars, then the oldest beyond the entry cap.

        An entry expires when ``now - written_at >= max_age``; a zero max
        age therefore clears everything. The index is rewritten once at the
        end, under the index lock.

        Args:
            max_age: TTL as a timedelta or in milliseconds. Defaults to
                the store's ``default_max_age``.
            max_entries: Entry cap. Defaults to the store's ``max_entries``;
                None on both means no cap.

        Returns:
            EvictionReport listing evicted IDs.
        """
        max_age_ms = _to_millis(self.default_max_age if max_age is None else max_age)
        cap = self.max_entries if max_entries is None else max_entries
        if cap is not None and cap < 0:
            raise ValueError("max_entries must be >= 0.")

        async with self.index.lock:
            index = await self.index.load()
            now = self.index.clock()

            kept: dict[AvatarId, int] = {}
            expired: list[AvatarId] = []
            for avatar_id, stamp in index.items():
                if now - stamp >= max_age_ms:
                    expired.append(avatar_id)
                else:
                    kept[avatar_id] = stamp

            over_capacity: list[AvatarId] = []
            if cap is not None and len(kept) > cap:
                oldest_first = sorted(kept.items(), key=lambda item: (item[1], item[0]))
                for avatar_id, _ in oldest_first[: len(kept) - cap]:
                    over_capacity.append(avatar_id)
                    del kept[avatar_id]

            for avatar_id in expired + over_capacity:
                await self._remove_file(avatar_id)

            if expired or over_capacity:
                await self.index.save(kept)

        report = EvictionReport(
            expired=tuple(expired),
            over_capacity=tuple(over_capacity),
            remaining=len(kept),
        )
        logger.info(
            "Avatar cache cleaned",
            expired=len(report.expired),
            over_capacity=len(report.over_capacity),
            remaining=report.remaining,
        )
        return report

    async def status(self) -> CacheStatus:
        """Inspect the cache directory and index."""
        await self._ensure_dir()
        try:
            names = await aiofiles.os.listdir(self.cache_dir)
        except OSError:
            names = []
        files = [n for n in names if n.endswith(BLOB_SUFFIX) and not n.startswith(".")]

        index = await self.index.load()
        entries: list[CacheEntryStatus] = []
        for avatar_id, stamp in sorted(index.items(), key=lambda item: (item[1], item[0])):
            size: int | None = None
            path = self.blob_path(avatar_id)
            if path is not None:
                try:
                    size = (await aiofiles.os.stat(path)).st_size
                except OSError:
                    size = None
            entries.append(
                CacheEntryStatus(
                    avatar_id=avatar_id,
                    written_at=millis_to_datetime(stamp),
                    size_bytes=size,
                )
            )

        return CacheStatus(
            cache_dir=str(self.cache_dir),
            file_count=len(files),
            index_count=len(index),
            entries=tuple(entries),
        )
