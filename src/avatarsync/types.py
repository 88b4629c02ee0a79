"""
Core types for the avatar sync layer.

This module defines the fundamental data structures used throughout the system:
- Frozen dataclasses for players and cache reports
- Data URI encoding/decoding helpers
- Helper functions for timestamps and temporary avatar identifiers
"""

from __future__ import annotations

import base64
import binascii
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from avatarsync.exceptions import DecodeError

# Opaque server-assigned key naming one immutable image version
AvatarId = str

TEMPORARY_ID_PREFIX = "local_"

DEFAULT_DATA_URI_PREFIX = "data:image/jpeg;base64,"

_DATA_URI_PREFIX_RE = re.compile(r"^data:image/[a-z0-9.+-]+;base64,", re.IGNORECASE)


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def now_millis() -> int:
    """Get the current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def millis_to_datetime(millis: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


def make_temporary_id(handle: str, millis: int | None = None) -> AvatarId:
    """Build a client-side temporary avatar ID (``local_<handle>_<millis>``).

    Temporary IDs only mark optimistic self-overrides; they are never
    fetched from the server and never written to the blob store.
    """
    stamp = now_millis() if millis is None else millis
    return f"{TEMPORARY_ID_PREFIX}{handle}_{stamp}"


def is_temporary_id(avatar_id: str | None) -> bool:
    """Check whether an avatar ID was generated locally."""
    return bool(avatar_id) and avatar_id.startswith(TEMPORARY_ID_PREFIX)


def is_data_uri(value: str | None) -> bool:
    """Check whether a value is an inline base64 image data URI."""
    return bool(value) and _DATA_URI_PREFIX_RE.match(value) is not None


def strip_data_uri_prefix(value: str) -> str:
    """Remove a leading ``data:image/<type>;base64,`` prefix if present."""
    return _DATA_URI_PREFIX_RE.sub("", value, count=1)


def decode_data_uri(value: str) -> bytes:
    """Decode a data URI (or bare base64 payload) into raw bytes.

    Raises:
        DecodeError: If the payload is empty or not valid base64.
    """
    payload = strip_data_uri_prefix(value).strip()
    if not payload:
        raise DecodeError("Empty avatar payload")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError("Invalid base64 avatar payload", {"error": str(e)}) from e


def encode_data_uri(data: bytes, prefix: str = DEFAULT_DATA_URI_PREFIX) -> str:
    """Encode raw image bytes as a displayable data URI."""
    return prefix + base64.b64encode(data).decode("ascii")


@dataclass(frozen=True)
class Player:
    """A player entry from a room/game snapshot.

    Only ``handle`` and ``avatar_id`` matter for avatar resolution.
    """

    handle: str | None
    avatar_id: AvatarId | None = None
    name: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Player:
        """Build a Player from a server snapshot entry.

        Accepts both the wire keys (``username``, ``avatarId``) and the
        Python field names.
        """
        handle = payload.get("username", payload.get("handle"))
        avatar_id = payload.get("avatarId", payload.get("avatar_id"))
        return cls(
            handle=handle or None,
            avatar_id=avatar_id or None,
            name=payload.get("name"),
        )

    @property
    def resolvable(self) -> bool:
        """Whether this player has both a handle and an avatar ID."""
        return bool(self.handle) and bool(self.avatar_id)


@dataclass(frozen=True)
class CacheEntryStatus:
    """One indexed avatar and its on-disk state."""

    avatar_id: AvatarId
    written_at: datetime
    size_bytes: int | None  # None when the indexed file is missing


@dataclass(frozen=True)
class CacheStatus:
    """Snapshot of the avatar blob cache."""

    cache_dir: str
    file_count: int
    index_count: int
    entries: tuple[CacheEntryStatus, ...] = ()

    @property
    def total_bytes(self) -> int:
        """Total size of all indexed files that exist."""
        return sum(e.size_bytes or 0 for e in self.entries)

    @property
    def stale_entries(self) -> tuple[AvatarId, ...]:
        """Index entries whose blob file is gone."""
        return tuple(e.avatar_id for e in self.entries if e.size_bytes is None)


@dataclass(frozen=True)
class EvictionReport:
    """Result of an eviction pass over the cache index."""

    expired: tuple[AvatarId, ...] = ()
    over_capacity: tuple[AvatarId, ...] = ()
    remaining: int = 0

    @property
    def evicted(self) -> tuple[AvatarId, ...]:
        """All evicted avatar IDs, expired first."""
        return self.expired + self.over_capacity


@dataclass
class HousekeepingReport:
    """Result of the startup housekeeping sequence."""

    legacy_keys_removed: int = 0
    eviction: EvictionReport = field(default_factory=EvictionReport)
    status: CacheStatus | None = None
