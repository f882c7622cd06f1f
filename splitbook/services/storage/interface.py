"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real document database later
2. Use in-memory storage for testing
3. Keep the settlement logic decoupled from storage implementation

The core treats storage as a document store: schemaless dicts grouped in
named collections, plus a transaction primitive with read-your-writes
semantics. Retrying conflicting transactions is the store's job, not the
caller's.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel, Field

from splitbook.models.activity import ActivityEvent
from splitbook.models.group import UserProfile


T = TypeVar("T")

# Collection names
EXPENSES = "expenses"
SPLIT_LEDGERS = "splitExpenses"
GROUPS = "groups"
USERS = "users"


class FieldFilter(BaseModel):
    """A single query condition on a top-level document field."""

    field: str
    op: str = Field(default="==", pattern="^(==|array_contains|in)$")
    value: Any

    def matches(self, data: dict) -> bool:
        actual = data.get(self.field)
        if self.op == "==":
            return actual == self.value
        if self.op == "array_contains":
            return isinstance(actual, list) and self.value in actual
        return actual in self.value


class DocumentSnapshot(BaseModel):
    """A document as returned by a query."""

    id: str
    data: dict[str, Any]


class Transaction(ABC):
    """
    Unit of work handed to a run_transaction callback.

    Writes are buffered until the callback returns and are visible to
    later reads inside the same transaction.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        """Read a document, or None if it does not exist."""
        pass

    @abstractmethod
    async def set(self, collection: str, doc_id: str, data: dict) -> None:
        """Create or overwrite a document."""
        pass

    @abstractmethod
    async def update(self, collection: str, doc_id: str, partial: dict) -> None:
        """
        Merge top-level fields into an existing document.

        Raises:
            NotFoundError: If the document doesn't exist
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document (no-op if missing)."""
        pass


class DocumentStoreInterface(ABC):
    """
    Abstract interface for document storage.

    Any storage implementation (Google Sheets, Firestore, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        """
        Retrieve a document by ID.

        Returns:
            The document data if found, None otherwise
        """
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Optional[list[FieldFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[DocumentSnapshot]:
        """
        List documents matching all filters.

        Args:
            collection: Collection name
            filters: Conditions that must all hold
            order_by: Top-level field to sort on
            descending: Sort direction
            limit: Maximum number of results
        """
        pass

    @abstractmethod
    async def create(
        self,
        collection: str,
        data: dict,
        doc_id: Optional[str] = None,
    ) -> str:
        """
        Create a document.

        Returns:
            The new document's ID

        Raises:
            DuplicateError: If doc_id is given and already exists
        """
        pass

    @abstractmethod
    async def update(self, collection: str, doc_id: str, partial: dict) -> None:
        """
        Merge top-level fields into an existing document.

        Raises:
            NotFoundError: If the document doesn't exist
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> bool:
        """
        Delete a document.

        Returns:
            True if a document was deleted
        """
        pass

    @abstractmethod
    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        """
        Run fn atomically.

        fn may be called more than once if it conflicts with a concurrent
        writer, so it must not have side effects outside the transaction.

        Returns:
            Whatever fn returns on the attempt that commits
        """
        pass


class ActivityStorageInterface(ABC):
    """
    Abstract interface for activity log storage.

    Activity logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: ActivityEvent) -> bool:
        """
        Append an activity event to the log.

        Returns:
            True if logged successfully

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get_events_for_group(
        self,
        group_id: str,
        limit: int = 100,
    ) -> list[ActivityEvent]:
        """Events for one group, newest first."""
        pass

    @abstractmethod
    async def get_events_for_expense(
        self,
        expense_id: str,
    ) -> list[ActivityEvent]:
        """Events for one expense, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[ActivityEvent]:
        """The most recent events, newest first."""
        pass


class ProfileDirectoryInterface(ABC):
    """
    Abstract interface for the user directory.

    User management lives elsewhere; the core only looks profiles up.
    """

    @abstractmethod
    async def get_profile(self, uid: str) -> Optional[UserProfile]:
        pass

    @abstractmethod
    async def get_profile_by_email(self, email: str) -> Optional[UserProfile]:
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""

    def __init__(self, collection: str, doc_id: str, message: Optional[str] = None):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(message or f"{collection}/{doc_id} not found")


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConcurrencyConflictError(StorageError):
    """A document read by a transaction changed before it committed."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
