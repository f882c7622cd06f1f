"""
Tests for the Google Sheets backends.

No network: worksheets are replaced by an in-process fake that behaves
like gspread's Worksheet for the calls the store makes.
"""

import asyncio
import threading

import pytest

from splitbook.models import ActivityEventBuilder
from splitbook.services.storage import (
    DuplicateError,
    FieldFilter,
    GoogleSheetsActivityStorage,
    GoogleSheetsDocumentStore,
    NotFoundError,
    StorageError,
)
from splitbook.services.storage.google_sheets import ACTIVITY_COLUMNS


class FakeWorksheet:
    """Row storage with gspread's 1-based indexing."""

    def __init__(self, header):
        self.rows = [list(header)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def update(self, range_name=None, values=None, value_input_option=None):
        # Only whole-row ranges like "A2:D2" are used
        row = int(range_name.split(":")[0][1:])
        self.rows[row - 1] = [str(v) for v in values[0]]

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeSheetsClient:
    """Stands in for GoogleSheetsClient."""

    def __init__(self):
        self.sheets = {}

    def get_worksheet(self, title, columns):
        if title not in self.sheets:
            self.sheets[title] = FakeWorksheet(columns)
        return self.sheets[title]

    def get_activity_sheet(self):
        return self.get_worksheet("ActivityLog", ACTIVITY_COLUMNS)


class FailingWriteWorksheet(FakeWorksheet):
    """Appends work; rewriting an existing row fails."""

    def update(self, range_name=None, values=None, value_input_option=None):
        raise RuntimeError("write quota exceeded")


class GatedWorksheet(FakeWorksheet):
    """Reads block until another task opens the gate."""

    def __init__(self, header, gate):
        super().__init__(header)
        self.gate = gate
        self.opened = None

    def get_all_values(self):
        self.opened = self.gate.wait(timeout=2)
        return super().get_all_values()


class BrokenSheetsClient(FakeSheetsClient):
    """Every worksheet access fails."""

    def get_worksheet(self, title, columns):
        raise RuntimeError("quota exceeded")


@pytest.fixture
def sheets_client():
    return FakeSheetsClient()


@pytest.fixture
def sheets_store(sheets_client):
    return GoogleSheetsDocumentStore(sheets_client)


class TestGoogleSheetsDocumentStore:
    """Tests for the Sheets document store."""

    async def test_create_writes_one_row(self, sheets_store, sheets_client):
        """Each document is one row with a version and JSON data."""
        doc_id = await sheets_store.create("expenses", {"amount": "10.00"}, doc_id="e1")
        assert doc_id == "e1"

        rows = sheets_client.sheets["expenses"].rows
        assert rows[0] == ["id", "version", "updated_at", "data_json"]
        assert rows[1][0] == "e1"
        assert rows[1][1] == "1"
        assert await sheets_store.get("expenses", "e1") == {"amount": "10.00"}

    async def test_duplicate_id(self, sheets_store):
        """Test that ids are unique per worksheet."""
        await sheets_store.create("expenses", {}, doc_id="e1")
        with pytest.raises(DuplicateError):
            await sheets_store.create("expenses", {}, doc_id="e1")

    async def test_update_and_delete(self, sheets_store, sheets_client):
        """Updates bump the row version; deletes remove the row."""
        await sheets_store.create("groups", {"name": "Trip", "memberIds": ["a"]}, doc_id="g1")
        await sheets_store.update("groups", "g1", {"name": "Ski trip"})

        assert await sheets_store.get("groups", "g1") == {"name": "Ski trip", "memberIds": ["a"]}
        assert sheets_client.sheets["groups"].rows[1][1] == "2"

        assert await sheets_store.delete("groups", "g1") is True
        assert await sheets_store.delete("groups", "g1") is False
        assert len(sheets_client.sheets["groups"].rows) == 1

    async def test_update_missing(self, sheets_store):
        """Test that updating a missing row fails with NotFoundError."""
        with pytest.raises(NotFoundError):
            await sheets_store.update("groups", "nope", {"name": "x"})

    async def test_query(self, sheets_store):
        """Filters run in Python over all rows."""
        await sheets_store.create("groups", {"memberIds": ["a", "b"], "createdAt": "2024-01-01"})
        await sheets_store.create("groups", {"memberIds": ["b"], "createdAt": "2024-02-01"})
        await sheets_store.create("groups", {"memberIds": ["c"], "createdAt": "2024-03-01"})

        result = await sheets_store.query(
            "groups",
            filters=[FieldFilter(field="memberIds", op="array_contains", value="b")],
            order_by="createdAt",
            descending=True,
        )
        assert [s.data["createdAt"] for s in result] == ["2024-02-01", "2024-01-01"]

    async def test_malformed_rows_skipped(self, sheets_store, sheets_client):
        """Rows with broken JSON don't break queries."""
        await sheets_store.create("groups", {"name": "ok"})
        sheets_client.sheets["groups"].rows.append(["bad", "1", "", "{not json"])
        result = await sheets_store.query("groups")
        assert [s.data["name"] for s in result] == ["ok"]

    async def test_transaction_conflict_retried(self, sheets_store):
        """Optimistic versioning works on Sheets too."""
        await sheets_store.create("ledgers", {"count": 0}, doc_id="l1")
        attempts = []

        async def increment(txn):
            attempts.append(1)
            data = await txn.get("ledgers", "l1")
            if len(attempts) == 1:
                await sheets_store.update("ledgers", "l1", {"count": 5})
            await txn.set("ledgers", "l1", {"count": data["count"] + 1})

        await sheets_store.run_transaction(increment)
        assert len(attempts) == 2
        assert await sheets_store.get("ledgers", "l1") == {"count": 6}

    async def test_transaction_creates_and_deletes(self, sheets_store):
        """Test buffered set and delete on commit."""
        await sheets_store.create("ledgers", {"a": 1}, doc_id="old")

        async def swap(txn):
            await txn.delete("ledgers", "old")
            await txn.set("ledgers", "new", {"a": 2})

        await sheets_store.run_transaction(swap)
        assert await sheets_store.get("ledgers", "old") is None
        assert await sheets_store.get("ledgers", "new") == {"a": 2}

    async def test_api_failure_wrapped(self):
        """Sheets errors surface as StorageError."""
        store = GoogleSheetsDocumentStore(BrokenSheetsClient())
        with pytest.raises(StorageError):
            await store.get("groups", "g1")
        with pytest.raises(StorageError):
            await store.query("groups")

    async def test_failed_row_write_changes_nothing(self, sheets_client):
        """A row is rewritten in one call, so a failed write leaves it intact."""
        header = ["id", "version", "updated_at", "data_json"]
        sheets_client.sheets["ledgers"] = FailingWriteWorksheet(header)
        store = GoogleSheetsDocumentStore(sheets_client)
        await store.create("ledgers", {"n": 1}, doc_id="l1")

        async def bump(txn):
            await txn.set("ledgers", "l1", {"n": 2})

        with pytest.raises(StorageError):
            await store.run_transaction(bump)

        assert sheets_client.sheets["ledgers"].rows[1][:2] == ["l1", "1"]
        assert await store.get("ledgers", "l1") == {"n": 1}

    async def test_sheet_calls_leave_event_loop_free(self, sheets_client, sheets_store):
        """Other tasks keep running while a sheet call is in flight."""
        gate = threading.Event()
        header = ["id", "version", "updated_at", "data_json"]
        sheets_client.sheets["groups"] = GatedWorksheet(header, gate)

        async def open_gate():
            gate.set()

        await asyncio.gather(sheets_store.query("groups"), open_gate())
        assert sheets_client.sheets["groups"].opened is True


class TestGoogleSheetsActivityStorage:
    """Tests for the Sheets activity log."""

    async def test_append_and_read_back(self, sheets_client):
        """Events round-trip through rows and are filtered by group."""
        storage = GoogleSheetsActivityStorage(sheets_client)
        first = ActivityEventBuilder.group_created("alice", "Alice", "g1", "Trip", 2)
        second = ActivityEventBuilder.member_added("alice", "Alice", "g1", "bob", "Bob")
        other = ActivityEventBuilder.group_created("carol", "Carol", "g2", "Flat", 1)

        for event in (first, second, other):
            assert await storage.append_event(event) is True

        events = await storage.get_events_for_group("g1")
        assert {e.event_id for e in events} == {first.event_id, second.event_id}
        assert len(await storage.get_recent_events(limit=2)) == 2

    async def test_concurrent_append_and_read(self, sheets_client):
        """Test appends and reads running side by side."""
        sheets_client.get_activity_sheet()
        storage = GoogleSheetsActivityStorage(sheets_client)
        event = ActivityEventBuilder.group_created("alice", "Alice", "g1", "Trip", 2)
        appended, _ = await asyncio.gather(
            storage.append_event(event),
            storage.get_events_for_group("g1"),
        )
        assert appended is True
        assert [e.event_id for e in await storage.get_recent_events()] == [event.event_id]
