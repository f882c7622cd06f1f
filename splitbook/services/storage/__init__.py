"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Ships an in-memory backend and a Google Sheets backend; both are swappable.
"""

from splitbook.services.storage.interface import (
    EXPENSES,
    GROUPS,
    SPLIT_LEDGERS,
    USERS,
    ActivityStorageInterface,
    ConcurrencyConflictError,
    DocumentSnapshot,
    DocumentStoreInterface,
    DuplicateError,
    FieldFilter,
    NotFoundError,
    ProfileDirectoryInterface,
    StorageConnectionError,
    StorageError,
    Transaction,
)
from splitbook.services.storage.memory import (
    InMemoryActivityStorage,
    InMemoryDocumentStore,
    InMemoryProfileDirectory,
)
from splitbook.services.storage.google_sheets import (
    GoogleSheetsActivityStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
)

__all__ = [
    # Collections
    "EXPENSES",
    "GROUPS",
    "SPLIT_LEDGERS",
    "USERS",
    # Interfaces
    "ActivityStorageInterface",
    "DocumentSnapshot",
    "DocumentStoreInterface",
    "FieldFilter",
    "ProfileDirectoryInterface",
    "Transaction",
    # Exceptions
    "ConcurrencyConflictError",
    "DuplicateError",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryActivityStorage",
    "InMemoryDocumentStore",
    "InMemoryProfileDirectory",
    # Google Sheets implementation
    "GoogleSheetsActivityStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
]
