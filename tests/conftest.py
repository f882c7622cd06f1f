"""Shared fixtures: an in-memory store wired to every service."""

from datetime import date
from decimal import Decimal

import pytest

from splitbook.activity import ActivityRecorder
from splitbook.expenses import ExpenseService
from splitbook.groups import GroupService
from splitbook.ledger import SettlementLedgerService
from splitbook.models import CurrencyCode, ExpenseInput, UserProfile
from splitbook.queries import BalanceQueryExecutor
from splitbook.services.storage import (
    ActivityStorageInterface,
    InMemoryActivityStorage,
    InMemoryDocumentStore,
    InMemoryProfileDirectory,
    StorageError,
)


class FailingActivityStorage(ActivityStorageInterface):
    """Activity storage whose writes always fail."""

    async def append_event(self, event):
        raise StorageError("activity sheet unavailable")

    async def get_events_for_group(self, group_id, limit=100):
        return []

    async def get_events_for_expense(self, expense_id):
        return []

    async def get_recent_events(self, limit=100):
        return []


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def activity_storage():
    return InMemoryActivityStorage()


@pytest.fixture
def profiles():
    return InMemoryProfileDirectory([
        UserProfile(uid="alice", email="alice@example.com", display_name="Alice"),
        UserProfile(uid="bob", email="bob@example.com", display_name="Bob"),
        UserProfile(uid="carol", email="carol@example.com", display_name="Carol"),
        UserProfile(uid="dave", email="dave@example.com"),
    ])


@pytest.fixture
def recorder(activity_storage, profiles):
    return ActivityRecorder(activity_storage, profiles=profiles)


@pytest.fixture
def ledger_service(store, recorder, profiles):
    return SettlementLedgerService(store, recorder, profiles)


@pytest.fixture
def expense_service(store, recorder, ledger_service):
    return ExpenseService(store, recorder, ledger_service)


@pytest.fixture
def group_service(store, recorder, profiles):
    return GroupService(store, recorder, profiles)


@pytest.fixture
def reports(expense_service, ledger_service):
    return BalanceQueryExecutor(expense_service, ledger_service)


@pytest.fixture
def add_expense(expense_service):
    """Record an expense and return it."""
    async def _add(
        payer_id="alice",
        amount="100.00",
        currency=CurrencyCode.USD,
        description="Dinner",
        group_id=None,
    ):
        result = await expense_service.add_expense(
            payer_id,
            ExpenseInput(
                description=description,
                amount=Decimal(amount),
                currency=currency,
                category="food",
                date=date(2024, 3, 1),
                group_id=group_id,
            ),
        )
        return result.expense
    return _add


@pytest.fixture
def failing_recorder(profiles):
    """Recorder whose activity storage rejects every write."""
    return ActivityRecorder(FailingActivityStorage(), profiles=profiles)
