"""Ledger consistency checks."""

from splitbook.validation.validator import LedgerValidator

__all__ = ["LedgerValidator"]
