"""
Custom exception hierarchy for the avatar sync layer.

All exceptions inherit from AvatarSyncError, which carries optional context
for structured logging. None of them are meant to reach the presentation
layer: the cache and resolver boundaries turn them into cache misses.
"""

from __future__ import annotations

from typing import Any


class AvatarSyncError(Exception):
    """Base exception for all avatar sync errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class StorageError(AvatarSyncError):
    """Raised when the host key-value store or the blob directory fails.

    Context should include:
        - operation: The storage operation (get, set, remove, write, ...)
        - key: The key or avatar ID involved, if any
    """

    pass


class StorageFullError(StorageError):
    """Raised when the size-limited key-value store has no room left.

    This is the failure the deprecated in-store avatar cache used to
    trigger under sustained multiplayer use.
    """

    pass


class AvatarFetchError(AvatarSyncError):
    """Raised when fetching an avatar from the server fails.

    Context should include:
        - avatar_id: The requested avatar ID
        - error: Server-reported or transport error text
    """

    pass


class MalformedResponseError(AvatarFetchError):
    """Raised when the server answers with an unexpected payload shape."""

    pass


class DecodeError(AvatarSyncError):
    """Raised when a stored or received blob is not valid base64 image data."""

    pass
