"""
Abstract Storage Interface

The finance store persists each collection as one serialized text blob
under a stable key. The storage backend therefore only has to offer a
key-value contract: get a string, set a string.

This allows us to:
1. Keep the data on disk, in Google Sheets or in memory
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

Methods are async: storage I/O is the only point where a store command
suspends.
"""

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStoreInterface(ABC):
    """
    Abstract interface for key-value storage.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Read the value stored under a key.

        Args:
            key: The storage key

        Returns:
            The stored text, or None when the key is absent

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> bool:
        """
        Store a value under a key, replacing any previous value.

        Args:
            key: The storage key
            value: The text to store

        Returns:
            True if saved successfully

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Remove a key.

        Returns:
            True if the key existed
        """
        pass

    @abstractmethod
    async def keys(self) -> list[str]:
        """List every stored key."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
