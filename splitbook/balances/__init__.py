"""Balance aggregation and debt simplification."""

from splitbook.balances.aggregator import compute_balances, compute_counterparty_balances
from splitbook.balances.simplifier import simplify

__all__ = ["compute_balances", "compute_counterparty_balances", "simplify"]
