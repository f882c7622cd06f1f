"""
Application Wiring for Splitbook

This module ties together all the components of the settlement core:
1. A document store (in-memory or Google Sheets)
2. Activity recording (structlog + activity storage)
3. The ledger, expense and group services
4. Balance reports and ledger consistency checks

DESIGN DECISION: Nothing in the core reaches for a module-level client.
Every service receives its collaborators here, so tests can build the
same graph around an in-memory store.
"""

from typing import Optional

import structlog

from splitbook.activity import ActivityRecorder
from splitbook.config import LedgerSettings, get_settings
from splitbook.expenses import ExpenseService
from splitbook.groups import GroupService
from splitbook.ledger import SettlementLedgerService
from splitbook.queries import BalanceQueryExecutor
from splitbook.services.profiles import DocumentProfileDirectory
from splitbook.services.storage import (
    ActivityStorageInterface,
    DocumentStoreInterface,
    GoogleSheetsActivityStorage,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryActivityStorage,
    InMemoryDocumentStore,
    ProfileDirectoryInterface,
)
from splitbook.validation import LedgerValidator


logger = structlog.get_logger(__name__)


class AppComponents:
    """Fully wired services sharing one store and one activity recorder."""

    def __init__(
        self,
        store: DocumentStoreInterface,
        activity_storage: ActivityStorageInterface,
        profiles: ProfileDirectoryInterface,
        recorder: ActivityRecorder,
        ledgers: SettlementLedgerService,
        expenses: ExpenseService,
        groups: GroupService,
        reports: BalanceQueryExecutor,
        validator: LedgerValidator,
        sheets_client: Optional[GoogleSheetsClient] = None,
    ):
        self.store = store
        self.activity_storage = activity_storage
        self.profiles = profiles
        self.recorder = recorder
        self.ledgers = ledgers
        self.expenses = expenses
        self.groups = groups
        self.reports = reports
        self.validator = validator
        self.sheets_client = sheets_client


def _create_storage(
    settings: LedgerSettings,
) -> tuple[DocumentStoreInterface, ActivityStorageInterface, Optional[GoogleSheetsClient]]:
    if settings.storage_backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            return (
                GoogleSheetsDocumentStore(
                    sheets_client,
                    max_attempts=settings.transaction_max_attempts,
                ),
                GoogleSheetsActivityStorage(sheets_client),
                sheets_client,
            )
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", backend="google_sheets", error=str(e))

    return (
        InMemoryDocumentStore(max_attempts=settings.transaction_max_attempts),
        InMemoryActivityStorage(),
        None,
    )


def create_app_components(
    settings: Optional[LedgerSettings] = None,
    store: Optional[DocumentStoreInterface] = None,
    activity_storage: Optional[ActivityStorageInterface] = None,
    profiles: Optional[ProfileDirectoryInterface] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Ledger settings. Defaults to get_settings().ledger.
        store: Document store to use instead of the configured backend.
        activity_storage: Activity storage to use with an injected store.
        profiles: Profile directory. Defaults to the store's `users`
                  collection.

    Returns:
        AppComponents with every service wired to the same store
    """
    settings = settings or get_settings().ledger

    sheets_client = None
    if store is None:
        store, configured_activity, sheets_client = _create_storage(settings)
        activity_storage = activity_storage or configured_activity
    elif activity_storage is None:
        activity_storage = InMemoryActivityStorage()

    profiles = profiles or DocumentProfileDirectory(store)
    recorder = ActivityRecorder(
        activity_storage,
        profiles=profiles,
        persist=settings.activity_log_enabled,
    )

    ledgers = SettlementLedgerService(store, recorder, profiles)
    expenses = ExpenseService(
        store,
        recorder,
        ledgers,
        cascade_delete_splits=settings.cascade_delete_splits,
    )
    groups = GroupService(store, recorder, profiles)

    logger.info(
        "app_components_created",
        storage_backend=settings.storage_backend,
        environment=settings.app_environment,
    )

    return AppComponents(
        store=store,
        activity_storage=activity_storage,
        profiles=profiles,
        recorder=recorder,
        ledgers=ledgers,
        expenses=expenses,
        groups=groups,
        reports=BalanceQueryExecutor(expenses, ledgers),
        validator=LedgerValidator(store),
        sheets_client=sheets_client,
    )
