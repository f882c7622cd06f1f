"""
Expense Service

Records, edits and deletes expenses.

An expense and its split ledger are separate documents. Editing an
expense never rewrites its ledger: the ledger keeps the total and
description it was created with.

DESIGN DECISION: Deleting an expense does NOT delete its split ledgers
unless cascade is switched on (settings.ledger.cascade_delete_splits or
per call). Ledgers left behind are reported as orphaned on the result
and in the activity log, never silently dropped.
"""

from datetime import datetime
from typing import Optional

import structlog

from splitbook.activity import ACTIVITY_WARNING, ActivityRecorder
from splitbook.groups import NotGroupMemberError
from splitbook.ledger import SettlementLedgerService
from splitbook.models.activity import ActivityEventBuilder
from splitbook.models.expense import (
    Expense,
    ExpenseDeletionResult,
    ExpenseInput,
    ExpenseMutationResult,
    ExpenseUpdate,
)
from splitbook.models.group import Group
from splitbook.services.storage import (
    EXPENSES,
    GROUPS,
    DocumentStoreInterface,
    FieldFilter,
    NotFoundError,
    Transaction,
)


logger = structlog.get_logger(__name__)


class ExpenseService:
    """CRUD over expenses, with activity for group expenses."""

    def __init__(
        self,
        store: DocumentStoreInterface,
        recorder: ActivityRecorder,
        ledgers: SettlementLedgerService,
        cascade_delete_splits: bool = False,
    ):
        self._store = store
        self._recorder = recorder
        self._ledgers = ledgers
        self._cascade_delete_splits = cascade_delete_splits

    async def add_expense(self, payer_id: str, data: ExpenseInput) -> ExpenseMutationResult:
        """
        Record an expense paid by payer_id.

        Raises:
            NotFoundError: If data.group_id names a missing group
            NotGroupMemberError: If the payer is not in that group
        """
        group: Optional[Group] = None
        if data.group_id is not None:
            group_data = await self._store.get(GROUPS, data.group_id)
            if group_data is None:
                raise NotFoundError(GROUPS, data.group_id)
            group = Group.from_document(data.group_id, group_data)
            if not group.is_member(payer_id):
                raise NotGroupMemberError(data.group_id, payer_id)

        expense = Expense(
            payer_id=payer_id,
            group_name=group.name if group else None,
            **data.model_dump(),
        )
        expense_id = await self._store.create(EXPENSES, expense.to_document())
        expense = expense.model_copy(update={"id": expense_id})

        logger.info(
            "expense_added",
            expense_id=expense_id,
            amount=str(expense.amount),
            currency=expense.currency.value,
            group_id=expense.group_id,
        )

        warnings = []
        if group is not None:
            recorded = await self._recorder.emit(
                ActivityEventBuilder.expense_added_to_group,
                actor_id=payer_id,
                actor_name=await self._recorder.resolve_name(payer_id),
                group_id=group.id,
                expense_id=expense_id,
                expense_description=expense.description,
                amount=expense.money.format(),
            )
            if not recorded:
                warnings.append(ACTIVITY_WARNING)
        return ExpenseMutationResult(expense=expense, warnings=warnings)

    async def get_expense(self, expense_id: str) -> Optional[Expense]:
        """Retrieve an expense by ID, or None."""
        data = await self._store.get(EXPENSES, expense_id)
        if data is None:
            return None
        return Expense.from_document(expense_id, data)

    async def update_expense(
        self,
        expense_id: str,
        update: ExpenseUpdate,
        actor_id: str,
    ) -> ExpenseMutationResult:
        """
        Apply an explicit edit to an expense's own fields.

        If the amount or currency changes on an expense that has been
        split, the result carries a warning: the split keeps its
        original total until it is edited.

        Raises:
            NotFoundError: If the expense doesn't exist
            ValueError: If the edited expense is invalid
        """
        changes = update.changes()

        async def _update(txn: Transaction) -> Expense:
            data = await txn.get(EXPENSES, expense_id)
            if data is None:
                raise NotFoundError(EXPENSES, expense_id)
            current = Expense.from_document(expense_id, data)
            edited = Expense.model_validate({
                **current.model_dump(),
                **changes,
                "updated_at": datetime.utcnow(),
            })
            await txn.set(EXPENSES, expense_id, edited.to_document())
            return edited

        expense = await self._store.run_transaction(_update)
        logger.info("expense_updated", expense_id=expense_id, fields=sorted(changes))

        warnings = []
        if update.touches_amount:
            for ledger in await self._ledgers.find_ledgers_for_expense(expense_id):
                warnings.append(
                    f'The split of "{ledger.original_expense_description}" still uses '
                    f"its original total of {ledger.total.format()}. Edit the split to match."
                )

        recorded = await self._recorder.emit(
            ActivityEventBuilder.expense_updated,
            actor_id=actor_id,
            actor_name=await self._recorder.resolve_name(actor_id),
            expense_id=expense_id,
            expense_description=expense.description,
            changed_fields=sorted(changes),
            group_id=expense.group_id,
        )
        if not recorded:
            warnings.append(ACTIVITY_WARNING)
        return ExpenseMutationResult(expense=expense, warnings=warnings)

    async def delete_expense(
        self,
        expense_id: str,
        actor_id: str,
        cascade: Optional[bool] = None,
    ) -> ExpenseDeletionResult:
        """
        Delete an expense.

        Args:
            cascade: Also delete the expense's split ledgers.
                     Defaults to the service's configured behaviour.

        Raises:
            NotFoundError: If the expense doesn't exist
        """
        expense = await self.get_expense(expense_id)
        if expense is None:
            raise NotFoundError(EXPENSES, expense_id)
        if cascade is None:
            cascade = self._cascade_delete_splits

        ledgers = await self._ledgers.find_ledgers_for_expense(expense_id)
        await self._store.delete(EXPENSES, expense_id)

        result = ExpenseDeletionResult(expense_id=expense_id)
        if cascade:
            for ledger in ledgers:
                deleted = await self._ledgers.delete_ledger(ledger.id, actor_id)
                result.deleted_ledger_ids.append(ledger.id)
                result.warnings.extend(deleted.warnings)
        else:
            result.orphaned_ledger_ids = [ledger.id for ledger in ledgers]

        if result.orphaned_ledger_ids:
            logger.warning(
                "expense_deleted_with_orphaned_splits",
                expense_id=expense_id,
                orphaned_ledger_ids=result.orphaned_ledger_ids,
            )
            result.warnings.append(
                f"{len(result.orphaned_ledger_ids)} split(s) still refer to the deleted "
                f'expense "{expense.description}". Delete them separately if they are '
                f"no longer needed."
            )
        else:
            logger.info("expense_deleted", expense_id=expense_id)

        recorded = await self._recorder.emit(
            ActivityEventBuilder.expense_deleted,
            actor_id=actor_id,
            actor_name=await self._recorder.resolve_name(actor_id),
            expense_id=expense_id,
            expense_description=expense.description,
            orphaned_ledger_ids=result.orphaned_ledger_ids,
            group_id=expense.group_id,
        )
        if not recorded and ACTIVITY_WARNING not in result.warnings:
            result.warnings.append(ACTIVITY_WARNING)
        return result

    async def list_expenses_for_user(
        self,
        user_id: str,
        limit: Optional[int] = None,
    ) -> list[Expense]:
        """Expenses paid by user_id, most recent date first."""
        return await self._query([FieldFilter(field="userId", value=user_id)], limit)

    async def list_expenses_for_group(
        self,
        group_id: str,
        limit: Optional[int] = None,
    ) -> list[Expense]:
        """Expenses tagged to a group, most recent date first."""
        return await self._query([FieldFilter(field="groupId", value=group_id)], limit)

    async def _query(self, filters: list[FieldFilter], limit: Optional[int]) -> list[Expense]:
        snapshots = await self._store.query(
            EXPENSES,
            filters=filters,
            order_by="date",
            descending=True,
            limit=limit,
        )
        return [Expense.from_document(snap.id, snap.data) for snap in snapshots]
