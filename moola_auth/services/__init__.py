"""Services package."""

from moola_auth.services.clock import Clock, SystemClock
from moola_auth.services.pin import (
    LOCKOUT_SCHEDULE,
    OBVIOUS_PINS,
    PinIssue,
    PinService,
)
from moola_auth.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    FileKeyValueStore,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    InMemoryAuditStorage,
    InMemoryKeyValueStore,
    KeyValueStoreInterface,
    StorageError,
)

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    # PIN service
    "LOCKOUT_SCHEDULE",
    "OBVIOUS_PINS",
    "PinIssue",
    "PinService",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "FileKeyValueStore",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "InMemoryAuditStorage",
    "InMemoryKeyValueStore",
    "KeyValueStoreInterface",
    "StorageError",
]
