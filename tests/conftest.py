"""
Pytest configuration and fixtures for avatar sync tests.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any, Generator
from unittest.mock import patch

import pytest

from avatarsync.cache.file_cache import AvatarBlobStore
from avatarsync.cache.index import CacheIndex
from avatarsync.cache.kv_store import InMemoryKVStore
from avatarsync.config import Settings, clear_settings_cache
from avatarsync.sync.channel import AvatarChannel

JPEG_URI = "data:image/jpeg;base64,Zm9v"
OTHER_URI = "data:image/jpeg;base64,YmFy"


def ok_response(avatar_url: str) -> dict[str, Any]:
    """Build a successful getAvatar response body."""
    return {"ok": True, "avatar": {"avatarUrl": avatar_url}}


class FakeClock:
    """Settable millisecond clock."""

    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, millis: int) -> None:
        self.now += millis


class FakeChannel(AvatarChannel):
    """In-process avatar channel recording every request.

    Responses map avatar ID to a response body or an exception to raise.
    When a gate is given, requests block until it is set.
    """

    def __init__(
        self,
        responses: dict[str, Any] | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.responses = dict(responses or {})
        self.gate = gate
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    async def request(self, event: str, payload: dict[str, Any]) -> Any:
        self.calls.append((event, payload))
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        response = self.responses.get(
            payload.get("avatarId"), {"ok": False, "error": "Avatar not found"}
        )
        if isinstance(response, BaseException):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True

    def calls_for(self, avatar_id: str) -> int:
        return sum(1 for _, payload in self.calls if payload.get("avatarId") == avatar_id)


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def clock() -> FakeClock:
    """Provide a controllable clock for index timestamps."""
    return FakeClock()


@pytest.fixture
def kv_store() -> InMemoryKVStore:
    """Provide an empty in-memory key-value store."""
    return InMemoryKVStore()


@pytest.fixture
def cache_index(kv_store: InMemoryKVStore, clock: FakeClock) -> CacheIndex:
    """Provide a cache index on the in-memory store."""
    return CacheIndex(kv_store, clock=clock)


@pytest.fixture
def blob_store(temp_dir: Path, cache_index: CacheIndex) -> AvatarBlobStore:
    """Provide a blob store in a not-yet-created directory."""
    return AvatarBlobStore(temp_dir / "avatars", cache_index)


@pytest.fixture
def channel_factory() -> type[FakeChannel]:
    """Provide the FakeChannel class."""
    return FakeChannel


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "CACHE_DIR": str(temp_dir / "env_cache" / "avatars"),
        "KV_STORE_PATH": str(temp_dir / "env_cache" / "storage.db"),
        "CACHE_EXPIRY_DAYS": "3",
        "AVATAR_CACHE_SIZE": "10",
        "SERVER_URL": "http://test-server:4000/",
        "REQUEST_TIMEOUT": "5",
        "REQUEST_RETRIES": "2",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Generator[Settings, None, None]:
    """Provide a Settings instance with mock configuration."""
    from avatarsync.config import get_settings

    settings = get_settings()
    settings.ensure_directories()
    yield settings
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
