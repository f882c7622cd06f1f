"""
Optimistic Transactions

Shared by every document store that has no native transactions.

Each stored document carries a version number. A transaction records the
version of every document it reads and buffers its writes. On commit the
store re-checks those versions under a lock; if any changed, the commit
fails with ConcurrencyConflictError and the whole callback is re-run.
"""

import copy
from abc import abstractmethod
from typing import Awaitable, Callable, Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from splitbook.services.storage.interface import (
    ConcurrencyConflictError,
    NotFoundError,
    Transaction,
)


T = TypeVar("T")

DocKey = tuple[str, str]

logger = structlog.get_logger(__name__)


class BufferedTransaction(Transaction):
    """Transaction that records read versions and buffers writes."""

    def __init__(self, store: "OptimisticTransactionMixin"):
        self._store = store
        self.reads: dict[DocKey, Optional[int]] = {}
        # None marks a delete
        self.writes: dict[DocKey, Optional[dict]] = {}

    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        key = (collection, doc_id)
        if key in self.writes:
            pending = self.writes[key]
            return copy.deepcopy(pending) if pending is not None else None

        data, version = await self._store._read_versioned(collection, doc_id)
        self.reads.setdefault(key, version)
        return data

    async def set(self, collection: str, doc_id: str, data: dict) -> None:
        self.writes[(collection, doc_id)] = copy.deepcopy(data)

    async def update(self, collection: str, doc_id: str, partial: dict) -> None:
        current = await self.get(collection, doc_id)
        if current is None:
            raise NotFoundError(collection, doc_id)
        current.update(copy.deepcopy(partial))
        self.writes[(collection, doc_id)] = current

    async def delete(self, collection: str, doc_id: str) -> None:
        key = (collection, doc_id)
        if key not in self.reads and key not in self.writes:
            # Deleting unseen documents still has to notice concurrent writers
            _, version = await self._store._read_versioned(collection, doc_id)
            self.reads[key] = version
        self.writes[key] = None


class OptimisticTransactionMixin:
    """
    Provides run_transaction on top of versioned reads and a checked commit.
    """

    _max_attempts: int = 5

    @abstractmethod
    async def _read_versioned(
        self, collection: str, doc_id: str
    ) -> tuple[Optional[dict], Optional[int]]:
        """Return (data, version); (None, None) if the document is absent."""

    @abstractmethod
    async def _commit(
        self,
        reads: dict[DocKey, Optional[int]],
        writes: dict[DocKey, Optional[dict]],
    ) -> None:
        """
        Atomically verify read versions and apply writes.

        Raises:
            ConcurrencyConflictError: If any read document changed
        """

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=0.01, max=0.5),
            retry=retry_if_exception_type(ConcurrencyConflictError),
            reraise=True,
        )
        result = None
        async for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(
                        "transaction_retry",
                        attempt=attempt.retry_state.attempt_number,
                    )
                txn = BufferedTransaction(self)
                result = await fn(txn)
                await self._commit(txn.reads, txn.writes)
        return result
