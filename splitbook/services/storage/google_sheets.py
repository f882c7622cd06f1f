"""
Google Sheets Storage Implementation

DESIGN DECISION: A spreadsheet is the shared-ledger backend when no
database is available. People in a group can open the sheet and read
their splits without any tooling.

TRADEOFFS:
- Every query reads the whole worksheet and filters in Python
- There are no native transactions, so commits re-check row versions
  under a process lock
- One app instance per spreadsheet

Each collection is one worksheet; each document is one row:
[id, version, updated_at, data_json].
"""

import asyncio
import json
from datetime import datetime
from typing import Optional
from uuid import uuid4

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from splitbook.config import get_settings
from splitbook.models.activity import ActivityEvent
from splitbook.services.storage.interface import (
    ActivityStorageInterface,
    ConcurrencyConflictError,
    DocumentSnapshot,
    DocumentStoreInterface,
    DuplicateError,
    FieldFilter,
    NotFoundError,
    StorageConnectionError,
    StorageError,
)
from splitbook.services.storage.transactions import DocKey, OptimisticTransactionMixin


logger = structlog.get_logger(__name__)

# Column layout for document worksheets
DOCUMENT_COLUMNS = [
    "id",
    "version",
    "updated_at",
    "data_json",
]

# Column layout for the activity worksheet
ACTIVITY_COLUMNS = [
    "event_id",
    "timestamp",
    "actor_id",
    "actor_display_name",
    "action_type",
    "severity",
    "details",
    "group_id",
    "ledger_id",
    "related_expense_id",
    "related_expense_name",
    "related_member_id",
    "related_member_name",
    "previous_value",
    "new_value",
    "data_json",
]


class GoogleSheetsClient:
    """
    Opens the configured spreadsheet with a service account.

    Connecting is retried with exponential backoff; worksheets are
    created on first use.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Authorize once and reuse the gspread client.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StorageConnectionError(
                    f"No service account key at {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """The spreadsheet named by GOOGLE_SHEETS_SPREADSHEET_ID."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StorageConnectionError(
                    f"No spreadsheet with id {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str]) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_activity_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.activity_sheet_name, ACTIVITY_COLUMNS)


class GoogleSheetsDocumentStore(OptimisticTransactionMixin, DocumentStoreInterface):
    """
    Google Sheets implementation of the document store.

    Sheets has no transactions. Commits are serialized by a process-wide
    lock and re-check row versions before writing, which is enough for a
    single app instance per spreadsheet.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        max_attempts: int = 5,
    ):
        self._client = client or GoogleSheetsClient()
        self._lock = asyncio.Lock()
        self._max_attempts = max_attempts

    def _sheet(self, collection: str) -> gspread.Worksheet:
        return self._client.get_worksheet(collection, DOCUMENT_COLUMNS)

    @staticmethod
    def _to_row(doc_id: str, version: int, data: dict) -> list:
        return [
            doc_id,
            str(version),
            datetime.utcnow().isoformat(),
            json.dumps(data),
        ]

    @staticmethod
    def _find_row(
        sheet: gspread.Worksheet, doc_id: str
    ) -> tuple[Optional[int], Optional[int], Optional[dict]]:
        """Return (row_index, version, data) for a document; row_index is 1-based."""
        all_rows = sheet.get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
            if row and row[0] == doc_id:
                version = int(row[1]) if len(row) > 1 and row[1] else 0
                data = json.loads(row[3]) if len(row) > 3 and row[3] else {}
                return idx, version, data
        return None, None, None

    @staticmethod
    def _write_row(sheet: gspread.Worksheet, idx: int, row: list) -> None:
        # One range write, so version and data change together
        sheet.update(
            range_name=f"A{idx}:D{idx}",
            values=[row],
            value_input_option="RAW",
        )

    # gspread is blocking; the methods below run in a worker thread

    def _read_sync(self, collection: str, doc_id: str) -> tuple[Optional[dict], Optional[int]]:
        _, version, data = self._find_row(self._sheet(collection), doc_id)
        return data, version

    def _rows_sync(self, collection: str) -> list[list[str]]:
        return self._sheet(collection).get_all_values()[1:]  # Skip header

    def _commit_sync(
        self,
        reads: dict[DocKey, Optional[int]],
        writes: dict[DocKey, Optional[dict]],
    ) -> None:
        for (collection, doc_id), seen_version in reads.items():
            _, current_version, _ = self._find_row(self._sheet(collection), doc_id)
            if current_version != seen_version:
                raise ConcurrencyConflictError(
                    f"{collection}/{doc_id} changed during transaction"
                )

        for (collection, doc_id), data in writes.items():
            sheet = self._sheet(collection)
            idx, version, _ = self._find_row(sheet, doc_id)
            if data is None:
                if idx is not None:
                    sheet.delete_rows(idx)
                continue
            if idx is None:
                sheet.append_row(self._to_row(doc_id, 1, data), value_input_option="RAW")
            else:
                self._write_row(sheet, idx, self._to_row(doc_id, version + 1, data))

    def _create_sync(self, collection: str, doc_id: str, data: dict) -> None:
        sheet = self._sheet(collection)
        idx, _, _ = self._find_row(sheet, doc_id)
        if idx is not None:
            raise DuplicateError(f"{collection}/{doc_id} already exists")
        sheet.append_row(self._to_row(doc_id, 1, data), value_input_option="RAW")

    def _update_sync(self, collection: str, doc_id: str, partial: dict) -> None:
        sheet = self._sheet(collection)
        idx, version, data = self._find_row(sheet, doc_id)
        if idx is None:
            raise NotFoundError(collection, doc_id)
        self._write_row(sheet, idx, self._to_row(doc_id, version + 1, {**data, **partial}))

    def _delete_sync(self, collection: str, doc_id: str) -> bool:
        sheet = self._sheet(collection)
        idx, _, _ = self._find_row(sheet, doc_id)
        if idx is None:
            return False
        sheet.delete_rows(idx)
        return True

    async def _read_versioned(
        self, collection: str, doc_id: str
    ) -> tuple[Optional[dict], Optional[int]]:
        try:
            return await asyncio.to_thread(self._read_sync, collection, doc_id)
        except Exception as e:
            raise StorageError(f"Failed to read {collection}/{doc_id}: {e}")

    async def _commit(
        self,
        reads: dict[DocKey, Optional[int]],
        writes: dict[DocKey, Optional[dict]],
    ) -> None:
        async with self._lock:
            try:
                await asyncio.to_thread(self._commit_sync, reads, writes)
            except ConcurrencyConflictError:
                raise
            except Exception as e:
                raise StorageError(f"Failed to commit transaction: {e}")

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
        try:
            all_rows = await asyncio.to_thread(self._rows_sync, collection)
        except Exception as e:
            raise StorageError(f"Failed to query {collection}: {e}")

        results = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                data = json.loads(row[3])
            except (IndexError, ValueError):
                logger.warning("malformed_row_skipped", collection=collection, doc_id=row[0])
                continue
            if all(f.matches(data) for f in filters):
                results.append(DocumentSnapshot(id=row[0], data=data))

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
            try:
                await asyncio.to_thread(self._create_sync, collection, doc_id, data)
            except DuplicateError:
                raise
            except Exception as e:
                raise StorageError(f"Failed to create {collection}/{doc_id}: {e}")
        return doc_id

    async def update(self, collection: str, doc_id: str, partial: dict) -> None:
        async with self._lock:
            try:
                await asyncio.to_thread(self._update_sync, collection, doc_id, partial)
            except NotFoundError:
                raise
            except Exception as e:
                raise StorageError(f"Failed to update {collection}/{doc_id}: {e}")

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with self._lock:
            try:
                return await asyncio.to_thread(self._delete_sync, collection, doc_id)
            except Exception as e:
                raise StorageError(f"Failed to delete {collection}/{doc_id}: {e}")


class GoogleSheetsActivityStorage(ActivityStorageInterface):
    """
    Google Sheets implementation of activity log storage.

    Activity events are append-only. Sheet access runs in a worker
    thread so a slow API call never stalls the event loop.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _all_events_sync(self) -> list[ActivityEvent]:
        try:
            all_rows = self._client.get_activity_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get activity events: {e}")

        events = []
        for row in all_rows:
            if row and row[0]:
                try:
                    events.append(ActivityEvent.from_sheets_row(row))
                except Exception:
                    logger.warning("malformed_activity_row_skipped", event_id=row[0])
        return events

    async def _all_events(self) -> list[ActivityEvent]:
        return await asyncio.to_thread(self._all_events_sync)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append_sync(self, row: list) -> None:
        self._client.get_activity_sheet().append_row(row, value_input_option="RAW")

    async def append_event(self, event: ActivityEvent) -> bool:
        """Append an activity event."""
        try:
            await asyncio.to_thread(self._append_sync, event.to_sheets_row())
            return True
        except Exception as e:
            raise StorageError(f"Failed to write activity event: {e}")

    async def get_events_for_group(
        self,
        group_id: str,
        limit: int = 100,
    ) -> list[ActivityEvent]:
        events = [e for e in await self._all_events() if e.group_id == group_id]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]

    async def get_events_for_expense(
        self,
        expense_id: str,
    ) -> list[ActivityEvent]:
        events = [e for e in await self._all_events() if e.related_expense_id == expense_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[ActivityEvent]:
        events = await self._all_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
