"""
In-Memory Storage Implementation

Keeps documents in process memory. Used by tests and local runs that
don't need persistence.

Documents are deep-copied on the way in and out so callers can never
mutate stored state behind the store's back.
"""

import asyncio
import copy
from typing import Optional
from uuid import uuid4

from splitbook.models.activity import ActivityEvent
from splitbook.models.group import UserProfile
from splitbook.services.storage.interface import (
    ActivityStorageInterface,
    ConcurrencyConflictError,
    DocumentSnapshot,
    DocumentStoreInterface,
    DuplicateError,
    FieldFilter,
    NotFoundError,
    ProfileDirectoryInterface,
)
from splitbook.services.storage.transactions import DocKey, OptimisticTransactionMixin


class InMemoryDocumentStore(OptimisticTransactionMixin, DocumentStoreInterface):
    """
    Dict-backed document store with optimistic transactions.

    Layout: {collection: {doc_id: (version, data)}}
    """

    def __init__(self, max_attempts: int = 5):
        self._collections: dict[str, dict[str, tuple[int, dict]]] = {}
        self._lock = asyncio.Lock()
        self._max_attempts = max_attempts

    def _collection(self, name: str) -> dict[str, tuple[int, dict]]:
        return self._collections.setdefault(name, {})

    async def _read_versioned(
        self, collection: str, doc_id: str
    ) -> tuple[Optional[dict], Optional[int]]:
        entry = self._collection(collection).get(doc_id)
        if entry is None:
            return None, None
        version, data = entry
        return copy.deepcopy(data), version

    async def _commit(
        self,
        reads: dict[DocKey, Optional[int]],
        writes: dict[DocKey, Optional[dict]],
    ) -> None:
        async with self._lock:
            for (collection, doc_id), seen_version in reads.items():
                entry = self._collection(collection).get(doc_id)
                current_version = entry[0] if entry else None
                if current_version != seen_version:
                    raise ConcurrencyConflictError(
                        f"{collection}/{doc_id} changed during transaction"
                    )

            for (collection, doc_id), data in writes.items():
                docs = self._collection(collection)
                if data is None:
                    docs.pop(doc_id, None)
                    continue
                previous = docs.get(doc_id)
                version = previous[0] + 1 if previous else 1
                docs[doc_id] = (version, copy.deepcopy(data))

    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        data, _ = await self._read_versioned(collection, doc_id)
        return data

    async def query(
        self,
        collection: str,
        filters: Optional[list[FieldFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[DocumentSnapshot]:
        filters = filters or []
        results = [
            DocumentSnapshot(id=doc_id, data=copy.deepcopy(data))
            for doc_id, (_, data) in self._collection(collection).items()
            if all(f.matches(data) for f in filters)
        ]

        if order_by:
            results.sort(
                key=lambda snap: (
                    snap.data.get(order_by) is None,
                    "" if snap.data.get(order_by) is None else snap.data.get(order_by),
                ),
                reverse=descending,
            )

        if limit is not None:
            results = results[:limit]
        return results

    async def create(
        self,
        collection: str,
        data: dict,
        doc_id: Optional[str] = None,
    ) -> str:
        doc_id = doc_id or uuid4().hex
        async with self._lock:
            docs = self._collection(collection)
            if doc_id in docs:
                raise DuplicateError(f"{collection}/{doc_id} already exists")
            docs[doc_id] = (1, copy.deepcopy(data))
        return doc_id

    async def update(self, collection: str, doc_id: str, partial: dict) -> None:
        async with self._lock:
            docs = self._collection(collection)
            if doc_id not in docs:
                raise NotFoundError(collection, doc_id)
            version, data = docs[doc_id]
            merged = {**data, **copy.deepcopy(partial)}
            docs[doc_id] = (version + 1, merged)

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with self._lock:
            return self._collection(collection).pop(doc_id, None) is not None


class InMemoryActivityStorage(ActivityStorageInterface):
    """Append-only activity log kept in a list."""

    def __init__(self):
        self._events: list[ActivityEvent] = []

    @property
    def events(self) -> list[ActivityEvent]:
        return list(self._events)

    async def append_event(self, event: ActivityEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_for_group(
        self,
        group_id: str,
        limit: int = 100,
    ) -> list[ActivityEvent]:
        events = [e for e in self._events if e.group_id == group_id]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]

    async def get_events_for_expense(
        self,
        expense_id: str,
    ) -> list[ActivityEvent]:
        events = [e for e in self._events if e.related_expense_id == expense_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[ActivityEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]


class InMemoryProfileDirectory(ProfileDirectoryInterface):
    """Profile lookups over a fixed set of profiles."""

    def __init__(self, profiles: Optional[list[UserProfile]] = None):
        self._profiles = {p.uid: p for p in profiles or []}

    def add(self, profile: UserProfile) -> None:
        self._profiles[profile.uid] = profile

    async def get_profile(self, uid: str) -> Optional[UserProfile]:
        return self._profiles.get(uid)

    async def get_profile_by_email(self, email: str) -> Optional[UserProfile]:
        email = email.strip().lower()
        for profile in self._profiles.values():
            if profile.email.lower() == email:
                return profile
        return None
