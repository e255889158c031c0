"""
Storage Services Package

Provides the abstract key-value interface and its implementations:
in memory, a JSON file on disk and Google Sheets.
"""

from typing import Optional

from fintra.config import get_settings
from fintra.config.settings import StorageSettings
from fintra.services.storage.interface import (
    ConnectionError,
    KeyValueStoreInterface,
    NotFoundError,
    StorageError,
)
from fintra.services.storage.memory import InMemoryKeyValueStore
from fintra.services.storage.json_file import JsonFileKeyValueStore
from fintra.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsKeyValueStore,
)


def create_key_value_store(
    settings: Optional[StorageSettings] = None,
) -> KeyValueStoreInterface:
    """Build the adapter selected by FINTRA_STORAGE_BACKEND."""
    settings = settings or get_settings().storage

    if settings.backend == "memory":
        return InMemoryKeyValueStore()
    if settings.backend == "google_sheets":
        return GoogleSheetsKeyValueStore(GoogleSheetsClient())
    return JsonFileKeyValueStore(settings.data_path)


__all__ = [
    # Interface
    "KeyValueStoreInterface",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsKeyValueStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    # Factory
    "create_key_value_store",
]
