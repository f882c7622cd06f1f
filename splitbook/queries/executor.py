"""
Balance Query Execution

DESIGN DECISION: Reports are DETERMINISTIC projections.
This engine loads committed expenses and ledgers, folds them into net
balances and, for groups, a simplified transfer plan. Nothing it
computes is written back.

Running the same report twice over unchanged data yields the same
result, and any number of reports may run concurrently.
"""

import structlog

from splitbook.balances import compute_balances, compute_counterparty_balances, simplify
from splitbook.expenses import ExpenseService
from splitbook.ledger import SettlementLedgerService
from splitbook.models.ledger import BalanceReport, BalanceScope
from splitbook.services.storage import StorageError


logger = structlog.get_logger(__name__)


class QueryExecutionError(Exception):
    """A report could not be built because its data could not be loaded."""
    pass


class BalanceQueryExecutor:
    """
    Builds balance reports for a group or a user.

    GUARANTEES:
    - Only uses committed data from storage
    - Never mixes currencies
    - Debts below one cent are never listed
    """

    def __init__(
        self,
        expenses: ExpenseService,
        ledgers: SettlementLedgerService,
        include_group_splits_in_debts: bool = False,
    ):
        self._expenses = expenses
        self._ledgers = ledgers
        self._include_group_splits = include_group_splits_in_debts

    async def group_report(self, group_id: str) -> BalanceReport:
        """
        Net balance of every member plus the transfers that settle the group.
        """
        try:
            expenses = await self._expenses.list_expenses_for_group(group_id)
            ledgers = await self._ledgers.list_ledgers_for_group(group_id)
        except StorageError as e:
            raise QueryExecutionError(f"Could not load group {group_id}: {e}") from e

        scope = BalanceScope.for_group(group_id)
        balances = compute_balances(scope, expenses, ledgers)
        transfers = simplify(balances)

        logger.info(
            "group_report_built",
            group_id=group_id,
            expense_count=len(expenses),
            ledger_count=len(ledgers),
            transfer_count=len(transfers),
        )
        return BalanceReport(scope=scope, balances=balances, transfers=transfers)

    async def user_report(self, user_id: str) -> BalanceReport:
        """
        A user's own net balances plus what they owe, and are owed by,
        each other person.
        """
        try:
            expenses = await self._expenses.list_expenses_for_user(user_id)
            ledgers = await self._ledgers.list_ledgers_for_user(user_id)
        except StorageError as e:
            raise QueryExecutionError(f"Could not load balances for {user_id}: {e}") from e

        scope = BalanceScope.for_user(user_id)
        balances = compute_balances(scope, expenses, ledgers)
        counterparties = compute_counterparty_balances(
            user_id,
            ledgers,
            include_group_splits=self._include_group_splits,
        )

        logger.info(
            "user_report_built",
            user_id=user_id,
            ledger_count=len(ledgers),
            counterparty_count=len(counterparties),
        )
        return BalanceReport(scope=scope, balances=balances, counterparties=counterparties)
