"""Expense bookkeeping package."""

from splitbook.expenses.service import ExpenseService

__all__ = ["ExpenseService"]
