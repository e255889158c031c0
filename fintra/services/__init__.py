"""Services package."""

from fintra.services.backup import (
    BackupData,
    BackupImportError,
    ImportPreview,
    ImportResult,
    build_export_document,
    dumps_document,
    parse_import_document,
)
from fintra.services.codec import CorruptDataError, StorageKeys
from fintra.services.storage import (
    ConnectionError,
    GoogleSheetsClient,
    GoogleSheetsKeyValueStore,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStoreInterface,
    NotFoundError,
    StorageError,
    create_key_value_store,
)

__all__ = [
    # Backup
    "BackupData",
    "BackupImportError",
    "ImportPreview",
    "ImportResult",
    "build_export_document",
    "dumps_document",
    "parse_import_document",
    # Codec
    "CorruptDataError",
    "StorageKeys",
    # Storage services
    "ConnectionError",
    "GoogleSheetsClient",
    "GoogleSheetsKeyValueStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStoreInterface",
    "NotFoundError",
    "StorageError",
    "create_key_value_store",
]
