"""
Request/response channel to the game server's avatar service.

The server answers ``getAvatar`` requests keyed by avatar ID with either
``{"ok": true, "avatar": {"avatarUrl": ...}}`` or
``{"ok": false, "error": "..."}``. AvatarChannel validates that contract;
subclasses only move payloads over their transport.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from avatarsync.config import Settings
from avatarsync.exceptions import AvatarFetchError, MalformedResponseError
from avatarsync.logging import get_logger
from avatarsync.types import AvatarId

logger = get_logger(__name__)

GET_AVATAR_EVENT = "getAvatar"

USER_AGENT = "avatarsync/0.1"


class AvatarPayload(BaseModel):
    """Avatar body of a successful response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    avatar_url: str = Field(alias="avatarUrl", min_length=1)
    avatar_id: str | None = Field(default=None, alias="avatarId")


class AvatarResponse(BaseModel):
    """Server response to a getAvatar request."""

    model_config = ConfigDict(extra="ignore")

    ok: bool
    avatar: AvatarPayload | None = None
    error: str | None = None


class AvatarChannel(ABC):
    """Base class for avatar transports."""

    @abstractmethod
    async def request(self, event: str, payload: dict[str, Any]) -> Any:
        """Send one request and return the decoded response body."""
        ...

    async def close(self) -> None:
        """Close the underlying transport."""
        return None

    async def get_avatar(self, avatar_id: AvatarId) -> str:
        """Fetch the avatar URL (data URI or remote URL) for an avatar ID.

        Raises:
            AvatarFetchError: If the transport fails or the server reports an error.
            MalformedResponseError: If the response does not match the contract.
        """
        raw = await self.request(GET_AVATAR_EVENT, {"avatarId": avatar_id})

        try:
            response = AvatarResponse.model_validate(raw)
        except ValidationError as e:
            raise MalformedResponseError(
                "Unexpected avatar response shape",
                {"avatar_id": avatar_id, "error": str(e)},
            ) from e

        if not response.ok:
            raise AvatarFetchError(
                "Server refused avatar request",
                {"avatar_id": avatar_id, "error": response.error or "unknown error"},
            )
        if response.avatar is None:
            raise MalformedResponseError(
                "Avatar response has no avatar", {"avatar_id": avatar_id}
            )
        return response.avatar.avatar_url


class HttpAvatarChannel(AvatarChannel):
    """AvatarChannel over HTTP: POSTs JSON to ``<base_url>/avatars/<event>``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        max_attempts: int = 3,
        retry_backoff: float = 0.5,
    ) -> None:
        """Initialize the channel.

        Args:
            base_url: Server base URL.
            timeout: Request timeout in seconds.
            client: Optional preconfigured client (e.g. with a mock transport).
            max_attempts: Attempts per request on transport errors.
            retry_backoff: Base of the exponential wait between attempts, in seconds.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1.")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_backoff = retry_backoff
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: Settings) -> HttpAvatarChannel:
        """Build a channel from application settings."""
        return cls(
            settings.server_url,
            timeout=settings.REQUEST_TIMEOUT,
            max_attempts=settings.REQUEST_RETRIES,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": USER_AGENT},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this channel created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def request(self, event: str, payload: dict[str, Any]) -> Any:
        """POST the payload and return the decoded JSON body."""
        client = await self._get_client()
        url = f"{self.base_url}/avatars/{event}"

        # Retry transport failures only
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(httpx.TransportError),
            wait=wait_exponential(multiplier=self.retry_backoff, max=4),
            stop=stop_after_attempt(self.max_attempts),
            reraise=True,
        )
        try:
            response = await retrying(client.post, url, json=payload)
        except httpx.HTTPError as e:
            raise AvatarFetchError(
                "Avatar request failed", {"event": event, "url": url, "error": str(e)}
            ) from e

        try:
            return response.json()
        except ValueError as e:
            if response.is_error:
                raise AvatarFetchError(
                    "Avatar request failed",
                    {"event": event, "url": url, "status_code": response.status_code},
                ) from e
            raise MalformedResponseError(
                "Avatar response is not JSON", {"event": event, "url": url}
            ) from e
