"""
Base classes for the host key-value store.

The avatar cache index, the self profile and the deprecated in-store avatar
cache all live in one flat string key-value store, shaped after the mobile
client's async storage:
- get_item / set_item / remove_item for single keys
- get_all_keys / multi_remove for bulk maintenance
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable


class KeyValueStore(ABC):
    """Abstract interface for host key-value store implementations."""

    @abstractmethod
    async def get_item(self, key: str) -> str | None:
        """Get a value, or None if the key is absent."""
        ...

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        """Set a value, replacing any previous one."""
        ...

    @abstractmethod
    async def remove_item(self, key: str) -> bool:
        """Remove a key. Return True when something was removed."""
        ...

    @abstractmethod
    async def get_all_keys(self) -> list[str]:
        """List every key in the store."""
        ...

    @abstractmethod
    async def multi_remove(self, keys: Iterable[str]) -> int:
        """Remove many keys at once. Return the number removed."""
        ...

    async def close(self) -> None:
        """Release any underlying resources."""
        return None
