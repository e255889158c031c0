"""
In-Memory Storage Implementation

Dict-backed key-value store. Data lives as long as the process; used by
tests and for throwaway sessions.
"""

from typing import Optional

from fintra.services.storage.interface import KeyValueStoreInterface


class InMemoryKeyValueStore(KeyValueStoreInterface):
    """Key-value store kept in a plain dict."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> bool:
        self._data[key] = value
        return True

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def keys(self) -> list[str]:
        return list(self._data)

    def snapshot(self) -> dict[str, str]:
        """Copy of the stored data."""
        return dict(self._data)
