"""
Stores Module - Injectable key-value stores for process state.
==============================================================

All mutable state (result cache entries, admission windows, blocks and
sequential-pattern sessions) goes through a ``KeyValueStore`` so it can be
swapped for a shared backend or isolated per test.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterator, Optional


class KeyValueStore(ABC):
    """Unified interface for state storage backends."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Retrieve a value, or None when absent."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store a value, replacing any previous one."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a value (no error when absent)."""

    @abstractmethod
    def keys(self) -> list[str]:
        """List all keys currently stored."""

    def items(self) -> Iterator[tuple[str, Any]]:
        for key in self.keys():
            value = self.get(key)
            if value is not None:
                yield key, value

    def clear(self) -> None:
        for key in self.keys():
            self.delete(key)

    def __len__(self) -> int:
        return len(self.keys())

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class MemoryStore(KeyValueStore):
    """Process-local dictionary store."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)

    def clear(self) -> None:
        self._data.clear()
