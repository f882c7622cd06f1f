"""Services package."""

from splitbook.services.profiles import DocumentProfileDirectory
from splitbook.services.storage import (
    ActivityStorageInterface,
    DocumentStoreInterface,
    GoogleSheetsActivityStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryActivityStorage,
    InMemoryDocumentStore,
    InMemoryProfileDirectory,
    NotFoundError,
    ProfileDirectoryInterface,
    StorageError,
)

__all__ = [
    "ActivityStorageInterface",
    "DocumentProfileDirectory",
    "DocumentStoreInterface",
    "GoogleSheetsActivityStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
    "InMemoryActivityStorage",
    "InMemoryDocumentStore",
    "InMemoryProfileDirectory",
    "NotFoundError",
    "ProfileDirectoryInterface",
    "StorageError",
]
