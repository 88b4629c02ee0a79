"""
Avatar resolver: the fetch coordinator and its sync map.

Each screen owns one AvatarResolver. It turns (handle, avatar ID) pairs
into display URIs, reading the shared blob store first and the server
second, and keeps the results in a per-instance sync map that the
presentation layer reads with peek() on every render.

Concurrent requests for the same avatar ID share one flight: the in-flight
lookup and the insertion of a new flight happen in one synchronous step,
so at most one network request per avatar ID is outstanding per resolver.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from avatarsync.cache.file_cache import AvatarBlobStore
from avatarsync.exceptions import AvatarFetchError
from avatarsync.logging import get_logger, log_context
from avatarsync.sync.channel import AvatarChannel
from avatarsync.types import AvatarId, Player, is_data_uri, is_temporary_id

logger = get_logger(__name__)


@dataclass
class _Flight:
    """One outstanding resolution of an avatar ID."""

    avatar_id: AvatarId
    handles: set[str] = field(default_factory=set)
    task: asyncio.Task[str | None] | None = None


class AvatarResolver:
    """Resolves player avatars into display URIs.

    The sync map (handle -> display URI) lives only as long as this
    instance. Independent resolvers share the blob store but never share
    sync maps or in-flight state.
    """

    def __init__(
        self,
        blob_store: AvatarBlobStore,
        channel: AvatarChannel,
        name: str = "resolver",
    ) -> None:
        """Initialize the resolver.

        Args:
            blob_store: Shared on-disk avatar cache.
            channel: Transport used for cache misses.
            name: Owner name (usually the screen), used in logs.
        """
        self.blob_store = blob_store
        self.channel = channel
        self.name = name
        self._sync_map: dict[str, str] = {}
        # handle -> avatar ID its sync map entry was resolved from
        self._resolved_from: dict[str, AvatarId] = {}
        # handle -> avatar ID most recently asked for; only that flight may publish
        self._requested: dict[str, AvatarId] = {}
        self._in_flight: dict[AvatarId, _Flight] = {}

    def peek(self, handle: str | None) -> str | None:
        """Read the display URI for a handle. Never triggers a fetch."""
        if not handle:
            return None
        return self._sync_map.get(handle)

    def is_loading(self, avatar_id: AvatarId | None) -> bool:
        """Check whether an avatar ID is currently being resolved."""
        return bool(avatar_id) and avatar_id in self._in_flight

    def snapshot(self) -> dict[str, str]:
        """Copy of the current sync map."""
        return dict(self._sync_map)

    def set_local_override(self, handle: str | None, display_uri: str | None) -> None:
        """Write a display URI straight into the sync map.

        Bypasses the blob store entirely. A later successful resolve() for
        the same handle replaces the override with the cache-backed URI.
        """
        if not handle or not display_uri:
            return
        self._sync_map[handle] = display_uri
        self._resolved_from.pop(handle, None)
        logger.debug("Local avatar override set", screen=self.name, handle=handle)

    def clear(self) -> None:
        """Drop every sync map entry. In-flight resolutions keep running."""
        logger.debug("Clearing avatar sync map", screen=self.name, entries=len(self._sync_map))
        self._sync_map.clear()
        self._resolved_from.clear()

    async def close(self) -> None:
        """Tear down the resolver's session state."""
        self.clear()

    async def resolve(self, handle: str | None, avatar_id: AvatarId | None) -> str | None:
        """Resolve one player's avatar.

        Args:
            handle: Player handle the result is stored under.
            avatar_id: Server-assigned avatar ID.

        Returns:
            Display URI, or None if the player has no avatar, the ID is a
            temporary local one, or the resolution failed (retry later).
        """
        if not handle or not avatar_id:
            return None
        if is_temporary_id(avatar_id):
            logger.debug("Skipping temporary avatar ID", avatar_id=avatar_id)
            return None

        self._requested[handle] = avatar_id
        if self._resolved_from.get(handle) == avatar_id and handle in self._sync_map:
            return self._sync_map[handle]

        with log_context(screen=self.name, handle=handle):
            flight = self._in_flight.get(avatar_id)
            if flight is None:
                flight = _Flight(avatar_id=avatar_id)
                self._in_flight[avatar_id] = flight
                flight.task = asyncio.ensure_future(self._run_flight(flight))
            else:
                logger.debug("Avatar already in flight", avatar_id=avatar_id)
            flight.handles.add(handle)

        return await asyncio.shield(flight.task)

    async def resolve_many(self, players: Iterable[Player | Mapping[str, Any]]) -> None:
        """Resolve avatars for a player list concurrently.

        Players without a handle or avatar ID are skipped. Each resolution
        is independent: a failed one stays unset and can be retried.
        """
        targets = [
            p if isinstance(p, Player) else Player.from_payload(p)
            for p in players
        ]
        targets = [p for p in targets if p.resolvable]
        if not targets:
            return

        logger.debug("Syncing players", screen=self.name, count=len(targets))
        results = await asyncio.gather(
            *[self.resolve(p.handle, p.avatar_id) for p in targets],
            return_exceptions=True,
        )

        resolved = 0
        for player, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Avatar resolution crashed",
                    screen=self.name,
                    handle=player.handle,
                    avatar_id=player.avatar_id,
                    error=str(result),
                )
            elif result is not None:
                resolved += 1

        logger.info("Avatar sync complete", screen=self.name, requested=len(targets), resolved=resolved)

    async def _run_flight(self, flight: _Flight) -> str | None:
        """Resolve one avatar ID from disk or network and publish it."""
        avatar_id = flight.avatar_id
        try:
            cached = await self.blob_store.read(avatar_id)
            if cached:
                logger.debug("Avatar from cache", avatar_id=avatar_id)
                self._publish(flight, cached)
                return cached

            logger.debug("Downloading avatar", avatar_id=avatar_id)
            try:
                avatar_url = await self.channel.get_avatar(avatar_id)
            except AvatarFetchError as e:
                logger.warning("Error downloading avatar", avatar_id=avatar_id, error=str(e))
                return None
            except Exception as e:
                logger.warning(
                    "Avatar channel failed",
                    avatar_id=avatar_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                return None

            if is_data_uri(avatar_url):
                if not await self.blob_store.write(avatar_id, avatar_url):
                    logger.warning("Downloaded avatar not cached", avatar_id=avatar_id)

            self._publish(flight, avatar_url)
            return avatar_url
        finally:
            self._in_flight.pop(avatar_id, None)

    def _publish(self, flight: _Flight, display_uri: str) -> None:
        """Store a resolved URI for the handles still waiting on this avatar ID.

        A handle that has since asked for a different avatar is skipped.
        """
        for handle in flight.handles:
            if self._requested.get(handle) != flight.avatar_id:
                continue
            self._sync_map[handle] = display_uri
            self._resolved_from[handle] = flight.avatar_id
