"""
Settlement Ledger Service

The only component that writes SplitLedger documents.

DESIGN DECISION: Every mutation is a single-document read-modify-write
inside the store's transaction primitive. If another writer commits
first, the store re-runs the whole callback against fresh data, so a
settlement flip never clobbers a sibling participant's flag. The service
itself never loops or retries.

Activity events are emitted after the transaction commits. A failed
activity write does not undo the mutation; it comes back as a warning
on the result.

Lifecycle of a participant:
    unsettled -> settled      normal flow
    settled -> unsettled      allowed, logged as a reversal
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

import structlog

from splitbook.activity import ACTIVITY_WARNING, ActivityRecorder
from splitbook.models.expense import Expense
from splitbook.models.group import Group
from splitbook.models.ledger import (
    LedgerMutationResult,
    Participant,
    ShareInput,
    ShareUpdate,
    SplitLedger,
    SplitMethod,
    compute_involved_user_ids,
)
from splitbook.models.money import Money
from splitbook.services.storage import (
    EXPENSES,
    GROUPS,
    SPLIT_LEDGERS,
    DocumentStoreInterface,
    FieldFilter,
    NotFoundError,
    ProfileDirectoryInterface,
    StorageError,
    Transaction,
)
from splitbook.splitting import (
    SplitValidationError,
    allocate,
    check_participants,
    shares_from_participants,
)


logger = structlog.get_logger(__name__)


class ParticipantNotFoundError(NotFoundError):
    """The named user is not a participant of the ledger."""

    def __init__(self, ledger_id: str, user_id: str):
        self.user_id = user_id
        super().__init__(
            SPLIT_LEDGERS,
            ledger_id,
            message=f"User {user_id} is not a participant in split {ledger_id}",
        )


class SettlementLedgerService:
    """
    Creates, edits, settles and deletes split ledgers.

    Usage:
        service = SettlementLedgerService(store, recorder, profiles)
        result = await service.create(...)
        await service.set_participant_settlement(result.ledger.id, "bob", True, actor_id="bob")
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        recorder: ActivityRecorder,
        profiles: Optional[ProfileDirectoryInterface] = None,
    ):
        self._store = store
        self._recorder = recorder
        self._profiles = profiles

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def create(
        self,
        expense_id: str,
        description: str,
        total: Money,
        method: SplitMethod,
        payer_id: str,
        shares: list[ShareInput],
        group_id: Optional[str] = None,
        group_name: Optional[str] = None,
        notes: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> LedgerMutationResult:
        """
        Split an expense and persist the resulting ledger.

        The payer must be one of the participants and is marked settled.
        When group_id is set, every participant must be a group member.

        Raises:
            SplitValidationError: If the split is invalid
            NotFoundError: If the expense or group doesn't exist
        """
        check_participants(shares)
        if payer_id not in {share.user_id for share in shares}:
            raise SplitValidationError(
                f"The payer {payer_id} must be one of the participants.",
                field="paid_by",
                user_id=payer_id,
            )

        participants = allocate(total.amount, method, shares)
        for participant in participants:
            if participant.user_id == payer_id:
                participant.is_settled = True
        participants = await self._with_snapshots(participants)

        ledger_id = uuid4().hex
        ledger = SplitLedger(
            id=ledger_id,
            original_expense_id=expense_id,
            original_expense_description=description,
            currency=total.currency,
            split_method=method,
            total_amount=total.amount,
            paid_by=payer_id,
            participants=participants,
            group_id=group_id,
            group_name=group_name,
            notes=notes,
        )

        async def _create(txn: Transaction) -> SplitLedger:
            if await txn.get(EXPENSES, expense_id) is None:
                raise NotFoundError(EXPENSES, expense_id)

            stored = ledger
            if group_id is not None:
                group_data = await txn.get(GROUPS, group_id)
                if group_data is None:
                    raise NotFoundError(GROUPS, group_id)
                group = Group.from_document(group_id, group_data)
                for participant in participants:
                    if not group.is_member(participant.user_id):
                        raise SplitValidationError(
                            f"{participant.user_id} is not a member of the group "
                            f'"{group.name}".',
                            field="participants",
                            user_id=participant.user_id,
                        )
                if group_name is None:
                    stored = ledger.model_copy(update={"group_name": group.name})

            await txn.set(SPLIT_LEDGERS, ledger_id, stored.to_document())
            return stored

        created = await self._store.run_transaction(_create)

        logger.info(
            "ledger_created",
            ledger_id=ledger_id,
            expense_id=expense_id,
            split_method=method.value,
            total=str(total.amount),
            currency=total.currency.value,
            group_id=group_id,
        )

        warnings = []
        if not await self._recorder.record_expense_split(actor_id or payer_id, created):
            warnings.append(ACTIVITY_WARNING)
        return LedgerMutationResult(ledger=created, warnings=warnings)

    async def update_shares(
        self,
        ledger_id: str,
        update: ShareUpdate,
        actor_id: str,
    ) -> LedgerMutationResult:
        """
        Change a ledger's split method, shares or notes.

        The participant set is fixed: shares must name exactly the
        existing participants. Allocation is re-run against the
        ledger's original total; on any validation failure nothing is
        written. Settled flags are kept as they were.

        Raises:
            NotFoundError: If the ledger doesn't exist
            SplitValidationError: If the new shares don't reconcile
        """
        previous_method: Optional[SplitMethod] = None

        async def _update(txn: Transaction) -> SplitLedger:
            nonlocal previous_method
            data = await txn.get(SPLIT_LEDGERS, ledger_id)
            if data is None:
                raise NotFoundError(SPLIT_LEDGERS, ledger_id)
            ledger = SplitLedger.from_document(ledger_id, data)
            previous_method = ledger.split_method

            changes: dict = {"updated_at": datetime.utcnow()}
            if update.notes is not None:
                changes["notes"] = update.notes

            if update.method is not None or update.shares is not None:
                method = update.method or ledger.split_method
                shares = self._ordered_shares(ledger, update.shares)
                try:
                    allocated = allocate(ledger.total_amount, method, shares)
                except SplitValidationError as e:
                    e.ledger_id = ledger_id
                    raise
                participants = self._carry_over(ledger.participants, allocated)
                changes["split_method"] = method
                changes["participants"] = participants
                changes["involved_user_ids"] = compute_involved_user_ids(
                    ledger.paid_by, participants
                )

            updated = ledger.model_copy(update=changes)
            await txn.set(SPLIT_LEDGERS, ledger_id, updated.to_document())
            return updated

        updated = await self._store.run_transaction(_update)

        logger.info(
            "ledger_shares_updated",
            ledger_id=ledger_id,
            previous_method=previous_method.value,
            split_method=updated.split_method.value,
        )

        warnings = []
        if not await self._recorder.record_split_updated(
            actor_id, updated, previous_method.value
        ):
            warnings.append(ACTIVITY_WARNING)
        return LedgerMutationResult(ledger=updated, warnings=warnings)

    async def set_participant_settlement(
        self,
        ledger_id: str,
        user_id: str,
        settled: bool,
        actor_id: str,
    ) -> LedgerMutationResult:
        """
        Mark one participant's share as settled or unsettled.

        Setting the flag to the value it already has writes nothing and
        records nothing.

        Raises:
            NotFoundError: If the ledger doesn't exist
            ParticipantNotFoundError: If user_id is not a participant
        """
        was_settled = settled

        async def _flip(txn: Transaction) -> SplitLedger:
            nonlocal was_settled
            data = await txn.get(SPLIT_LEDGERS, ledger_id)
            if data is None:
                raise NotFoundError(SPLIT_LEDGERS, ledger_id)
            ledger = SplitLedger.from_document(ledger_id, data)

            participant = ledger.get_participant(user_id)
            if participant is None:
                raise ParticipantNotFoundError(ledger_id, user_id)

            was_settled = participant.is_settled
            if was_settled == settled:
                return ledger

            participant.is_settled = settled
            ledger.updated_at = datetime.utcnow()
            await txn.update(
                SPLIT_LEDGERS,
                ledger_id,
                {
                    "participants": [
                        p.model_dump(mode="json", by_alias=True) for p in ledger.participants
                    ],
                    "updatedAt": ledger.updated_at.isoformat(),
                },
            )
            return ledger

        ledger = await self._store.run_transaction(_flip)

        if was_settled == settled:
            return LedgerMutationResult(ledger=ledger)

        reversal = was_settled and not settled
        log = logger.warning if reversal else logger.info
        log(
            "participant_settlement_updated",
            ledger_id=ledger_id,
            user_id=user_id,
            settled=settled,
            reversal=reversal,
        )

        warnings = []
        participant = ledger.get_participant(user_id)
        if not await self._recorder.record_settlement_updated(
            actor_id, ledger, participant, was_settled
        ):
            warnings.append(ACTIVITY_WARNING)
        return LedgerMutationResult(ledger=ledger, warnings=warnings)

    async def delete_ledger(self, ledger_id: str, actor_id: str) -> LedgerMutationResult:
        """
        Delete a whole ledger. Returns the ledger as it was.

        Raises:
            NotFoundError: If the ledger doesn't exist
        """
        async def _delete(txn: Transaction) -> SplitLedger:
            data = await txn.get(SPLIT_LEDGERS, ledger_id)
            if data is None:
                raise NotFoundError(SPLIT_LEDGERS, ledger_id)
            await txn.delete(SPLIT_LEDGERS, ledger_id)
            return SplitLedger.from_document(ledger_id, data)

        deleted = await self._store.run_transaction(_delete)
        logger.info("ledger_deleted", ledger_id=ledger_id, expense_id=deleted.original_expense_id)

        warnings = []
        if not await self._recorder.record_split_deleted(actor_id, deleted):
            warnings.append(ACTIVITY_WARNING)
        return LedgerMutationResult(ledger=deleted, warnings=warnings)

    async def split_expense_in_group(
        self,
        expense_id: str,
        group_id: str,
        actor_id: str,
        notes: Optional[str] = None,
    ) -> LedgerMutationResult:
        """
        Split an expense equally among all current members of a group.

        Members are taken in the group's member order, so the last
        member absorbs the rounding remainder.

        Raises:
            NotFoundError: If the expense or group doesn't exist
            SplitValidationError: If the payer is not a group member
        """
        expense_data = await self._store.get(EXPENSES, expense_id)
        if expense_data is None:
            raise NotFoundError(EXPENSES, expense_id)
        expense = Expense.from_document(expense_id, expense_data)

        group_data = await self._store.get(GROUPS, group_id)
        if group_data is None:
            raise NotFoundError(GROUPS, group_id)
        group = Group.from_document(group_id, group_data)

        shares = []
        for member_id in group.member_ids:
            detail = group.member_detail(member_id)
            shares.append(ShareInput(
                user_id=member_id,
                display_name=detail.display_name if detail else None,
                email=detail.email if detail else None,
            ))

        return await self.create(
            expense_id=expense_id,
            description=expense.description,
            total=expense.money,
            method=SplitMethod.EQUALLY,
            payer_id=expense.payer_id,
            shares=shares,
            group_id=group_id,
            group_name=group.name,
            notes=notes,
            actor_id=actor_id,
        )

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_ledger(self, ledger_id: str) -> Optional[SplitLedger]:
        """Retrieve a ledger by ID, or None."""
        data = await self._store.get(SPLIT_LEDGERS, ledger_id)
        if data is None:
            return None
        return SplitLedger.from_document(ledger_id, data)

    async def list_ledgers_for_user(self, user_id: str) -> list[SplitLedger]:
        """Ledgers the user pays or participates in, newest first."""
        return await self._query([
            FieldFilter(field="involvedUserIds", op="array_contains", value=user_id),
        ])

    async def list_ledgers_for_group(self, group_id: str) -> list[SplitLedger]:
        """Ledgers tagged to a group, newest first."""
        return await self._query([FieldFilter(field="groupId", value=group_id)])

    async def find_ledgers_for_expense(self, expense_id: str) -> list[SplitLedger]:
        """Ledgers created from one expense. Normally at most one."""
        return await self._query([FieldFilter(field="originalExpenseId", value=expense_id)])

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _query(self, filters: list[FieldFilter]) -> list[SplitLedger]:
        snapshots = await self._store.query(
            SPLIT_LEDGERS,
            filters=filters,
            order_by="createdAt",
            descending=True,
        )
        return [SplitLedger.from_document(snap.id, snap.data) for snap in snapshots]

    async def _with_snapshots(self, participants: list[Participant]) -> list[Participant]:
        """Fill missing display names and emails from the profile directory."""
        if self._profiles is None:
            return participants

        for participant in participants:
            if participant.display_name and participant.email:
                continue
            try:
                profile = await self._profiles.get_profile(participant.user_id)
            except StorageError as e:
                logger.warning(
                    "participant_profile_lookup_failed",
                    user_id=participant.user_id,
                    error=str(e),
                )
                continue
            if profile is None:
                continue
            participant.display_name = participant.display_name or profile.display_name
            participant.email = participant.email or profile.email
        return participants

    @staticmethod
    def _ordered_shares(
        ledger: SplitLedger,
        shares: Optional[list[ShareInput]],
    ) -> list[ShareInput]:
        """
        New shares in the ledger's participant order.

        Without new shares, the current amounts and percentages are
        reused, e.g. when only the method changes.
        """
        if shares is None:
            return shares_from_participants(ledger.participants)

        by_user = {}
        for share in shares:
            if share.user_id in by_user:
                raise SplitValidationError(
                    f"Participant {share.user_id} appears more than once.",
                    field="participants",
                    user_id=share.user_id,
                    ledger_id=ledger.id,
                )
            by_user[share.user_id] = share

        if set(by_user) != set(ledger.participant_ids):
            raise SplitValidationError(
                "Participants cannot be added or removed when editing a split.",
                field="participants",
                ledger_id=ledger.id,
            )
        return [by_user[user_id] for user_id in ledger.participant_ids]

    @staticmethod
    def _carry_over(
        existing: list[Participant],
        allocated: list[Participant],
    ) -> list[Participant]:
        """Keep settled flags and name snapshots across a reallocation."""
        previous = {p.user_id: p for p in existing}
        result = []
        for participant in allocated:
            before = previous[participant.user_id]
            result.append(participant.model_copy(update={
                "is_settled": before.is_settled,
                "display_name": before.display_name,
                "email": before.email,
            }))
        return result
