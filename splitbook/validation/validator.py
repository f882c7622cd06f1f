"""
Two-Stage Ledger Consistency Checks

DESIGN DECISION: Stored ledgers are checked in two distinct stages:

STAGE 1 - STRUCTURAL CHECKS:
- Participants present and unique
- Shares reconcile to the total within one cent
- Payer is a participant and is settled
- involvedUserIds matches payer + participants
- This catches ledgers written by older code or edited by hand

STAGE 2 - REFERENCE CHECKS:
- The originating expense still exists (orphan detection)
- The expense's amount and currency still match the ledger snapshot
- This needs access to storage

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for a human to resolve.
"""

from decimal import Decimal
from typing import Optional

from splitbook.models.expense import Expense
from splitbook.models.ledger import SplitLedger, SplitMethod, compute_involved_user_ids
from splitbook.models.money import amounts_equal, quantize_cents
from splitbook.models.validation import ValidationIssue, ValidationResult
from splitbook.services.storage import (
    EXPENSES,
    SPLIT_LEDGERS,
    DocumentStoreInterface,
)


class LedgerValidator:
    """
    Checks split ledgers for consistency.

    Stage 1 runs without storage. Stage 2 is skipped when no store is
    given.
    """

    def __init__(self, store: Optional[DocumentStoreInterface] = None):
        """
        Initialize validator.

        Args:
            store: Document store for reference checks.
                   If None, orphan detection is skipped.
        """
        self._store = store

    def _validate_structure(self, ledger: SplitLedger) -> list[ValidationIssue]:
        """
        Stage 1: structural checks on a single ledger.
        """
        issues = []

        if ledger.total_amount <= 0:
            issues.append(ValidationIssue(
                field="total_amount",
                issue_type="invalid_value",
                message=f"Total amount must be positive, found {ledger.total.format()}",
                severity="error",
            ))

        if not ledger.participants:
            issues.append(ValidationIssue(
                field="participants",
                issue_type="missing",
                message="Split has no participants",
                severity="error",
            ))
            return issues

        seen = set()
        for participant in ledger.participants:
            if participant.user_id in seen:
                issues.append(ValidationIssue(
                    field="participants",
                    issue_type="duplicate",
                    message=f"Participant {participant.user_id} appears more than once",
                    severity="error",
                    user_id=participant.user_id,
                ))
            seen.add(participant.user_id)

            if participant.amount_owed < 0:
                issues.append(ValidationIssue(
                    field="amount_owed",
                    issue_type="invalid_value",
                    message=f"Participant {participant.user_id} has a negative share",
                    severity="error",
                    user_id=participant.user_id,
                ))

        owed = sum((p.amount_owed for p in ledger.participants), Decimal("0"))
        if not amounts_equal(owed, ledger.total_amount):
            issues.append(ValidationIssue(
                field="participants",
                issue_type="sum_mismatch",
                message=(
                    f"Shares add up to {quantize_cents(owed)} but the total "
                    f"is {quantize_cents(ledger.total_amount)}"
                ),
                severity="error",
            ))

        if ledger.split_method == SplitMethod.BY_PERCENTAGE:
            percentages = [p.percentage for p in ledger.participants]
            if any(pct is None for pct in percentages):
                issues.append(ValidationIssue(
                    field="percentage",
                    issue_type="missing",
                    message="Percentage split has participants without a percentage",
                    severity="warning",
                ))
            elif not amounts_equal(sum(percentages, Decimal("0")), Decimal("100")):
                issues.append(ValidationIssue(
                    field="percentage",
                    issue_type="sum_mismatch",
                    message=f"Percentages add up to {sum(percentages, Decimal('0'))}%",
                    severity="warning",
                ))

        payer = ledger.get_participant(ledger.paid_by)
        if payer is None:
            issues.append(ValidationIssue(
                field="paid_by",
                issue_type="payer_missing",
                message=f"Payer {ledger.paid_by} is not a participant",
                severity="warning",
                user_id=ledger.paid_by,
            ))
        elif not payer.is_settled:
            issues.append(ValidationIssue(
                field="paid_by",
                issue_type="payer_unsettled",
                message=f"Payer {ledger.paid_by} is marked as unsettled",
                severity="info",
                user_id=ledger.paid_by,
            ))

        expected_ids = compute_involved_user_ids(ledger.paid_by, ledger.participants)
        if set(ledger.involved_user_ids) != set(expected_ids):
            issues.append(ValidationIssue(
                field="involved_user_ids",
                issue_type="index_stale",
                message="involvedUserIds does not match the payer and participants",
                severity="warning",
            ))

        return issues

    async def _validate_references(self, ledger: SplitLedger) -> list[ValidationIssue]:
        """
        Stage 2: checks against the originating expense.
        """
        if self._store is None:
            return []

        data = await self._store.get(EXPENSES, ledger.original_expense_id)
        if data is None:
            return [ValidationIssue(
                field="original_expense_id",
                issue_type="orphaned",
                message=(
                    f'The expense "{ledger.original_expense_description}" '
                    f"this split was created from no longer exists"
                ),
                severity="warning",
            )]

        issues = []
        expense = Expense.from_document(ledger.original_expense_id, data)
        if expense.currency != ledger.currency:
            issues.append(ValidationIssue(
                field="currency",
                issue_type="expense_changed",
                message=(
                    f"Expense currency is now {expense.currency.value}, "
                    f"the split uses {ledger.currency.value}"
                ),
                severity="warning",
            ))
        elif not amounts_equal(expense.amount, ledger.total_amount):
            issues.append(ValidationIssue(
                field="total_amount",
                issue_type="expense_changed",
                message=(
                    f"Expense amount is now {expense.money.format()}, "
                    f"the split still uses {ledger.total.format()}"
                ),
                severity="warning",
            ))
        return issues

    async def validate(self, ledger: SplitLedger) -> ValidationResult:
        """
        Run both stages on one ledger.
        """
        issues = self._validate_structure(ledger)
        issues.extend(await self._validate_references(ledger))
        return ValidationResult(ledger_id=ledger.id, issues=issues)

    async def validate_all(self) -> list[ValidationResult]:
        """
        Check every stored ledger. Only ledgers with issues are returned.
        """
        if self._store is None:
            return []

        results = []
        for snap in await self._store.query(SPLIT_LEDGERS):
            result = await self.validate(SplitLedger.from_document(snap.id, snap.data))
            if result.issues:
                results.append(result)
        return results

    async def find_orphaned_ledgers(self) -> list[str]:
        """IDs of ledgers whose originating expense no longer exists."""
        if self._store is None:
            return []

        orphaned = []
        for snap in await self._store.query(SPLIT_LEDGERS):
            if await self._store.get(EXPENSES, snap.data.get("originalExpenseId", "")) is None:
                orphaned.append(snap.id)
        return orphaned
