"""
Split Allocator

Turns an expense total, a split method and a list of participants into
each participant's owed share.

DESIGN DECISION: Allocation is a pure function. It never touches storage
and never logs. Callers (the ledger service) own persistence and events.

Rounding rules, which are observable and must stay stable:

EQUALLY:
- Every participant but the last gets floor(total / n) to the cent
- The LAST participant in input order absorbs the remainder
- The shares therefore always add up to the total exactly

BY_AMOUNT:
- Caller supplies every amount; the allocator only validates the sum

BY_PERCENTAGE:
- Percentages must add up to 100
- Each amount is total * percentage / 100, rounded half-up to the cent
- No remainder fix-up is applied (unlike EQUALLY)

Whatever the method, the resulting amounts are checked against the total
one final time. A percentage split whose rounded amounts drift a full
cent away from the total is rejected rather than stored.
"""

from decimal import Decimal
from typing import Optional

from splitbook.models.ledger import Participant, ShareInput, SplitMethod
from splitbook.models.money import (
    NumberLike,
    amounts_equal,
    floor_cents,
    quantize_cents,
    to_decimal,
)


HUNDRED = Decimal("100")


class SplitValidationError(ValueError):
    """
    A split could not be allocated or does not reconcile.

    Carries enough context for an actionable message: the expected and
    actual sums, the field at fault and, where relevant, the participant
    and ledger concerned.
    """

    def __init__(
        self,
        message: str,
        expected: Optional[Decimal] = None,
        actual: Optional[Decimal] = None,
        field: Optional[str] = None,
        user_id: Optional[str] = None,
        ledger_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.expected = expected
        self.actual = actual
        self.field = field
        self.user_id = user_id
        self.ledger_id = ledger_id


def _fmt(value: Decimal) -> str:
    return str(quantize_cents(value))


def check_participants(shares: list[ShareInput]) -> None:
    """Reject an empty participant list or a user listed twice."""
    if not shares:
        raise SplitValidationError(
            "At least one participant is required to split an expense.",
            field="participants",
        )

    seen: set[str] = set()
    for share in shares:
        if share.user_id in seen:
            raise SplitValidationError(
                f"Participant {share.user_id} appears more than once.",
                field="participants",
                user_id=share.user_id,
            )
        seen.add(share.user_id)


def _split_equally(total: Decimal, shares: list[ShareInput]) -> list[Decimal]:
    count = len(shares)
    per_person = floor_cents(total / count)
    amounts = [per_person] * (count - 1)
    amounts.append(total - per_person * (count - 1))
    return amounts


def _split_by_amount(total: Decimal, shares: list[ShareInput]) -> list[Decimal]:
    amounts = []
    for share in shares:
        if share.amount_owed is None:
            raise SplitValidationError(
                f"An amount is required for participant {share.user_id}.",
                field="amount_owed",
                user_id=share.user_id,
            )
        if share.amount_owed < 0:
            raise SplitValidationError(
                f"The amount for participant {share.user_id} cannot be negative.",
                field="amount_owed",
                user_id=share.user_id,
            )
        amounts.append(share.amount_owed)

    actual = sum(amounts, Decimal("0"))
    if not amounts_equal(actual, total):
        raise SplitValidationError(
            f"The sum of amounts ({_fmt(actual)}) must equal "
            f"the total expense amount ({_fmt(total)}).",
            expected=total,
            actual=actual,
            field="amount_owed",
        )
    return amounts


def _split_by_percentage(total: Decimal, shares: list[ShareInput]) -> list[Decimal]:
    percentages = []
    for share in shares:
        if share.percentage is None:
            raise SplitValidationError(
                f"A percentage is required for participant {share.user_id}.",
                field="percentage",
                user_id=share.user_id,
            )
        if share.percentage < 0 or share.percentage > HUNDRED:
            raise SplitValidationError(
                f"The percentage for participant {share.user_id} "
                f"must be between 0 and 100.",
                field="percentage",
                user_id=share.user_id,
            )
        percentages.append(share.percentage)

    actual = sum(percentages, Decimal("0"))
    if not amounts_equal(actual, HUNDRED):
        raise SplitValidationError(
            f"The sum of percentages ({_fmt(actual)}%) must equal 100%.",
            expected=HUNDRED,
            actual=actual,
            field="percentage",
        )
    return [quantize_cents(total * pct / HUNDRED) for pct in percentages]


def allocate(
    total: NumberLike,
    method: SplitMethod,
    shares: list[ShareInput],
) -> list[Participant]:
    """
    Compute each participant's owed share of an expense.

    Args:
        total: Expense total, must be positive
        method: How to divide the total
        shares: Participants in order; for BY_AMOUNT each needs
                amount_owed, for BY_PERCENTAGE each needs percentage

    Returns:
        Participants in input order, all unsettled

    Raises:
        SplitValidationError: If the input is invalid or does not reconcile
    """
    total = to_decimal(total)
    if total <= 0:
        raise SplitValidationError(
            f"The total expense amount must be positive, got {_fmt(total)}.",
            actual=total,
            field="total_amount",
        )

    check_participants(shares)

    if method == SplitMethod.EQUALLY:
        amounts = _split_equally(total, shares)
    elif method == SplitMethod.BY_AMOUNT:
        amounts = _split_by_amount(total, shares)
    elif method == SplitMethod.BY_PERCENTAGE:
        amounts = _split_by_percentage(total, shares)
    else:
        raise SplitValidationError(f"Unsupported split method: {method}", field="split_method")

    allocated = sum(amounts, Decimal("0"))
    if not amounts_equal(allocated, total):
        raise SplitValidationError(
            f"The allocated shares ({_fmt(allocated)}) do not add up to "
            f"the total expense amount ({_fmt(total)}).",
            expected=total,
            actual=allocated,
            field="participants",
        )

    return [
        Participant(
            user_id=share.user_id,
            display_name=share.display_name,
            email=share.email,
            amount_owed=amount,
            percentage=share.percentage if method == SplitMethod.BY_PERCENTAGE else None,
        )
        for share, amount in zip(shares, amounts)
    ]


def shares_from_participants(participants: list[Participant]) -> list[ShareInput]:
    """Current shares of existing participants, e.g. to re-run an allocation."""
    return [
        ShareInput(
            user_id=p.user_id,
            amount_owed=p.amount_owed,
            percentage=p.percentage,
            display_name=p.display_name,
            email=p.email,
        )
        for p in participants
    ]
