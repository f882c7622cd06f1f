"""
Splitbook - Shared Expense Settlement Accounting

The settlement core of a personal/shared finance tracker. Turns raw
expenses and user-defined splits into per-person balances, a short list
of pairwise transfers that settle a group, and an auditable settlement
state as individual shares are marked paid.

DESIGN PRINCIPLES:
1. Shares always reconcile to the total (within one cent)
2. Currencies are never mixed
3. Fail early, fail visibly - no silent corrections
4. Every mutation is recorded in the activity log
5. Storage layer is swappable (injected, never global)
"""

__version__ = "1.0.0"
__author__ = "Splitbook Team"
