"""
Loader for the local user's own profile and avatar.

Reads handle, display name and the locally chosen image straight from the
host key-value store and the file system, so the user's own avatar can be
shown before any server round trip. Nothing here touches the blob cache or
the network.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path

import aiofiles
import orjson

from avatarsync.cache.base import KeyValueStore
from avatarsync.exceptions import StorageError
from avatarsync.logging import get_logger
from avatarsync.sync.resolver import AvatarResolver
from avatarsync.types import encode_data_uri, make_temporary_id

logger = get_logger(__name__)

USERNAME_KEY = "auth:username"
PROFILE_NAME_KEY = "profile:name"
PROFILE_AVATAR_KEY = "profile:avatar"


@dataclass(frozen=True)
class SelfProfile:
    """The local user's own identity and avatar."""

    handle: str | None = None
    name: str | None = None
    avatar_uri: str | None = None


def _decode_stored_value(raw: str | None) -> str | None:
    """Decode a stored string value.

    Values written by the client's storage helpers may be JSON-encoded
    strings; plain strings are returned as-is.
    """
    if raw is None:
        return None
    try:
        value = orjson.loads(raw)
    except orjson.JSONDecodeError:
        return raw.strip() or None
    if isinstance(value, str):
        return value.strip() or None
    return raw.strip() or None


class SelfAvatarLoader:
    """Loads the local profile and pushes the local avatar into resolvers."""

    def __init__(
        self,
        kv_store: KeyValueStore,
        resolvers: list[AvatarResolver] | None = None,
    ) -> None:
        self.kv_store = kv_store
        self._resolvers: list[AvatarResolver] = list(resolvers or [])
        self._profile = SelfProfile()
        self._loading = False

    @property
    def profile(self) -> SelfProfile:
        """The last loaded profile."""
        return self._profile

    @property
    def is_loading(self) -> bool:
        return self._loading

    def attach(self, resolver: AvatarResolver) -> None:
        """Register a resolver that should receive local overrides."""
        if resolver not in self._resolvers:
            self._resolvers.append(resolver)

    def detach(self, resolver: AvatarResolver) -> None:
        """Stop sending local overrides to a resolver."""
        if resolver in self._resolvers:
            self._resolvers.remove(resolver)

    async def _get(self, key: str) -> str | None:
        try:
            return _decode_stored_value(await self.kv_store.get_item(key))
        except StorageError as e:
            logger.error("Error loading profile value", key=key, error=str(e))
            return None

    async def _read_avatar(self, avatar_path: str) -> str | None:
        try:
            async with aiofiles.open(Path(avatar_path), "rb") as f:
                data = await f.read()
        except OSError as e:
            logger.error("Error loading own avatar", path=avatar_path, error=str(e))
            return None
        if not data:
            return None
        return encode_data_uri(data)

    async def load(self) -> SelfProfile:
        """Read the local profile. Never raises for missing or unreadable data."""
        self._loading = True
        try:
            handle, name, avatar_path = await asyncio.gather(
                self._get(USERNAME_KEY),
                self._get(PROFILE_NAME_KEY),
                self._get(PROFILE_AVATAR_KEY),
            )
            avatar_uri = await self._read_avatar(avatar_path) if avatar_path else None
            self._profile = SelfProfile(handle=handle, name=name, avatar_uri=avatar_uri)
        finally:
            self._loading = False

        logger.debug(
            "Own profile loaded",
            handle=self._profile.handle,
            has_avatar=self._profile.avatar_uri is not None,
        )
        return self._profile

    async def refresh(self) -> SelfProfile:
        """Reload the profile, e.g. after the user edited it."""
        return await self.load()

    def set_local_override(self, handle: str | None, display_uri: str | None) -> None:
        """Write ``handle -> display_uri`` into every attached resolver."""
        for resolver in self._resolvers:
            resolver.set_local_override(handle, display_uri)

    def temporary_avatar_id(self) -> str | None:
        """Local placeholder ID for the own avatar until the server assigns one.

        The ID only marks the optimistic override; resolvers skip it and it
        never names a blob on disk.
        """
        if not self._profile.handle:
            return None
        return make_temporary_id(self._profile.handle)

    async def apply_local_override(self) -> SelfProfile:
        """Reload the profile and show the local avatar for the own handle."""
        profile = await self.load()
        if profile.handle and profile.avatar_uri:
            self.set_local_override(profile.handle, profile.avatar_uri)
        return profile
