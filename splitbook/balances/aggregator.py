"""
Balance Aggregator

Folds expenses and split ledgers into net balances.

DESIGN DECISION: Balances are a pure projection. They are recomputed on
every read from already-committed snapshots and never stored, so any
number of aggregations may run concurrently without coordination.

Rules, applied per currency and never across currencies:
1. An expense no ledger refers to is an un-split direct payment: its
   full amount is credited to the payer.
2. For each ledger, the payer is credited with the shares still
   outstanding (unsettled, non-payer participants) and each of those
   participants is debited their share.
3. net = paid_for_others - owed_to_others.

Settled participants contribute nothing on either side. A currency in
which a user has no activity is absent from the output, never zero.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable

from splitbook.models.expense import Expense
from splitbook.models.ledger import (
    BalanceScope,
    CounterpartyBalance,
    NetBalance,
    SplitLedger,
)
from splitbook.models.money import CurrencyCode, is_negligible


BalanceKey = tuple[str, CurrencyCode]


def _in_scope_expenses(scope: BalanceScope, expenses: Iterable[Expense]) -> list[Expense]:
    if scope.group_id is not None:
        return [e for e in expenses if e.group_id == scope.group_id]
    return [e for e in expenses if e.payer_id == scope.user_id]


def _in_scope_ledgers(scope: BalanceScope, ledgers: Iterable[SplitLedger]) -> list[SplitLedger]:
    if scope.group_id is not None:
        return [l for l in ledgers if l.group_id == scope.group_id]
    return [l for l in ledgers if scope.user_id in l.involved_user_ids]


def compute_balances(
    scope: BalanceScope,
    expenses: Iterable[Expense],
    ledgers: Iterable[SplitLedger],
) -> list[NetBalance]:
    """
    Compute net balances for a user or a group.

    For a group scope, every member with activity in the group gets one
    NetBalance per currency. For a user scope, only that user's
    balances are returned.

    Output is ordered by (currency, user_id).
    """
    expenses = list(expenses)
    ledgers = list(ledgers)

    covered_expense_ids = {l.original_expense_id for l in ledgers}

    paid: dict[BalanceKey, Decimal] = defaultdict(Decimal)
    owed: dict[BalanceKey, Decimal] = defaultdict(Decimal)

    for expense in _in_scope_expenses(scope, expenses):
        if expense.id in covered_expense_ids:
            continue
        paid[(expense.payer_id, expense.currency)] += expense.amount

    for ledger in _in_scope_ledgers(scope, ledgers):
        outstanding = ledger.outstanding_amount
        if outstanding != 0:
            paid[(ledger.paid_by, ledger.currency)] += outstanding

        for participant in ledger.participants:
            if participant.is_settled or participant.user_id == ledger.paid_by:
                continue
            if participant.amount_owed == 0:
                continue
            owed[(participant.user_id, ledger.currency)] += participant.amount_owed

    keys = set(paid) | set(owed)
    if scope.user_id is not None:
        keys = {key for key in keys if key[0] == scope.user_id}

    balances = [
        NetBalance(
            user_id=user_id,
            currency=currency,
            paid_for_others=paid.get((user_id, currency), Decimal("0")),
            owed_to_others=owed.get((user_id, currency), Decimal("0")),
            net_balance=(
                paid.get((user_id, currency), Decimal("0"))
                - owed.get((user_id, currency), Decimal("0"))
            ),
        )
        for user_id, currency in keys
    ]
    balances.sort(key=lambda b: (b.currency.value, b.user_id))
    return balances


def compute_counterparty_balances(
    user_id: str,
    ledgers: Iterable[SplitLedger],
    include_group_splits: bool = False,
) -> list[CounterpartyBalance]:
    """
    Net what one user and each other person owe each other, per currency.

    Only unsettled shares count. Group splits are left to the group's
    own settlement plan unless include_group_splits is set.

    Positive amounts are owed to user_id, negative amounts are owed by
    user_id. Amounts below one cent are dropped. Ordered by absolute
    amount, largest first.
    """
    totals: dict[BalanceKey, Decimal] = defaultdict(Decimal)

    for ledger in ledgers:
        if ledger.group_id is not None and not include_group_splits:
            continue
        if user_id not in ledger.involved_user_ids:
            continue

        if ledger.paid_by == user_id:
            for participant in ledger.participants:
                if participant.user_id == user_id or participant.is_settled:
                    continue
                totals[(participant.user_id, ledger.currency)] += participant.amount_owed
        else:
            participant = ledger.get_participant(user_id)
            if participant is None or participant.is_settled:
                continue
            totals[(ledger.paid_by, ledger.currency)] -= participant.amount_owed

    results = [
        CounterpartyBalance(counterparty_id=counterparty, currency=currency, amount=amount)
        for (counterparty, currency), amount in totals.items()
        if not is_negligible(amount)
    ]
    results.sort(key=lambda c: (c.currency.value, c.counterparty_id))
    results.sort(key=lambda c: abs(c.amount), reverse=True)
    return results
