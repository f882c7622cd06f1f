"""
Data Models Package

This package contains all Pydantic models used in the settlement core.
All data flowing through the system must conform to these schemas.
"""

from splitbook.models.money import (
    CENT,
    EPSILON,
    CurrencyCode,
    CurrencyMismatchError,
    Money,
    amounts_equal,
    floor_cents,
    format_amount,
    is_negligible,
    quantize_cents,
    to_decimal,
)
from splitbook.models.expense import (
    Expense,
    ExpenseDeletionResult,
    ExpenseInput,
    ExpenseMutationResult,
    ExpenseUpdate,
    Recurrence,
    RecurrenceFrequency,
)
from splitbook.models.ledger import (
    BalanceReport,
    BalanceScope,
    CounterpartyBalance,
    LedgerMutationResult,
    NetBalance,
    PairwiseDebt,
    Participant,
    ShareInput,
    ShareUpdate,
    SplitLedger,
    SplitMethod,
    compute_involved_user_ids,
)
from splitbook.models.group import (
    Group,
    GroupMemberDetail,
    GroupMutationResult,
    UserProfile,
)
from splitbook.models.activity import (
    ActivityActionType,
    ActivityEvent,
    ActivityEventBuilder,
    ActivitySeverity,
)
from splitbook.models.validation import (
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    # Money
    "CENT",
    "EPSILON",
    "CurrencyCode",
    "CurrencyMismatchError",
    "Money",
    "amounts_equal",
    "floor_cents",
    "format_amount",
    "is_negligible",
    "quantize_cents",
    "to_decimal",
    # Expenses
    "Expense",
    "ExpenseDeletionResult",
    "ExpenseInput",
    "ExpenseMutationResult",
    "ExpenseUpdate",
    "Recurrence",
    "RecurrenceFrequency",
    # Ledgers and derived views
    "BalanceReport",
    "BalanceScope",
    "CounterpartyBalance",
    "LedgerMutationResult",
    "NetBalance",
    "PairwiseDebt",
    "Participant",
    "ShareInput",
    "ShareUpdate",
    "SplitLedger",
    "SplitMethod",
    "compute_involved_user_ids",
    # Users and groups
    "Group",
    "GroupMemberDetail",
    "GroupMutationResult",
    "UserProfile",
    # Activity
    "ActivityActionType",
    "ActivityEvent",
    "ActivityEventBuilder",
    "ActivitySeverity",
    # Validation
    "ValidationIssue",
    "ValidationResult",
]
