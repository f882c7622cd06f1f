"""
Debt Simplifier

Turns net balances into a short list of "A pays B" transfers.

DESIGN DECISION: Greedy largest-first matching, run separately for each
currency. It is deterministic and usually close to the minimum number of
transfers, but not guaranteed minimal. The output is compared
literally by callers, so the algorithm and its ordering must not change:

1. Debtors (net < -0.01) and creditors (net > 0.01) are collected with
   their absolute amounts
2. The largest debtor pays the largest creditor min(debt, credit)
3. Whoever drops below one cent leaves the pool; repeat until a pool
   is empty
4. Any sub-cent residue is discarded

Ties in magnitude are broken by user id. Transfers are ordered by
currency code, then by amount descending.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable

import structlog

from splitbook.models.ledger import NetBalance, PairwiseDebt
from splitbook.models.money import EPSILON, CurrencyCode, is_negligible, quantize_cents


logger = structlog.get_logger(__name__)


def _largest_first(pool: list[list]) -> None:
    pool.sort(key=lambda entry: (-entry[1], entry[0]))


def _simplify_currency(currency: CurrencyCode, nets: dict[str, Decimal]) -> list[PairwiseDebt]:
    debtors = [[user_id, -net] for user_id, net in nets.items() if net < -EPSILON]
    creditors = [[user_id, net] for user_id, net in nets.items() if net > EPSILON]

    transfers = []
    while debtors and creditors:
        _largest_first(debtors)
        _largest_first(creditors)
        debtor, creditor = debtors[0], creditors[0]

        amount = min(debtor[1], creditor[1])
        transfers.append(PairwiseDebt(
            from_user_id=debtor[0],
            to_user_id=creditor[0],
            amount=quantize_cents(amount),
            currency=currency,
        ))

        debtor[1] -= amount
        creditor[1] -= amount
        if debtor[1] < EPSILON:
            debtors.pop(0)
        if creditor[1] < EPSILON:
            creditors.pop(0)

    residue = sum((d[1] for d in debtors), Decimal("0")) + sum((c[1] for c in creditors), Decimal("0"))
    if not is_negligible(residue):
        # Balances that don't net to zero mean the input was not one closed scope
        logger.warning(
            "simplify_unbalanced_residue",
            currency=currency.value,
            residue=str(residue),
        )
    return transfers


def simplify(balances: Iterable[NetBalance]) -> list[PairwiseDebt]:
    """
    Compute a settlement plan from net balances.

    Balances in different currencies are never netted against each
    other. Multiple entries for the same user and currency are summed.
    """
    by_currency: dict[CurrencyCode, dict[str, Decimal]] = defaultdict(lambda: defaultdict(Decimal))
    for balance in balances:
        by_currency[balance.currency][balance.user_id] += balance.net_balance

    transfers: list[PairwiseDebt] = []
    for currency in sorted(by_currency, key=lambda c: c.value):
        plan = _simplify_currency(currency, by_currency[currency])
        plan.sort(key=lambda t: t.amount, reverse=True)
        transfers.extend(plan)
    return transfers
