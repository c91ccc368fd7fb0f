"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage:
an on-device key-value store for authentication state and an append-only
audit store.
"""

from moola_auth.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    KeyValueStoreInterface,
    StorageError,
)
from moola_auth.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryKeyValueStore,
)
from moola_auth.services.storage.file_store import FileKeyValueStore
from moola_auth.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "KeyValueStoreInterface",
    # Exceptions
    "ConnectionError",
    "StorageError",
    # Implementations
    "FileKeyValueStore",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "InMemoryAuditStorage",
    "InMemoryKeyValueStore",
]
