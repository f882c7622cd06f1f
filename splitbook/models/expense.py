"""
Expense Models

An expense is an amount paid by one user, on a date, in a category,
optionally tagged to a group.

Expenses are the raw input of the balance computation. The split of an
expense lives in a separate SplitLedger document (see models/ledger.py).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from splitbook.models.money import CurrencyCode, Money, to_decimal


class RecurrenceFrequency(str, Enum):
    """How often a recurring expense repeats."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Recurrence(BaseModel):
    """Recurrence descriptor attached to an expense."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    frequency: RecurrenceFrequency
    end_date: Optional[date] = None


class Expense(BaseModel):
    """
    A single expense paid by one user.

    Persisted in the `expenses` collection. Field names on disk are
    camelCase; `payer_id` is stored as `userId`.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    id: Optional[str] = None
    description: str = Field(..., min_length=1, max_length=200)
    payer_id: str = Field(..., alias="userId", min_length=1)
    amount: Decimal = Field(..., gt=0)
    currency: CurrencyCode
    category: str = Field(..., min_length=1, max_length=50)
    expense_date: date = Field(..., alias="date")
    notes: Optional[str] = Field(default=None, max_length=1000)
    receipt_url: Optional[str] = None
    group_id: Optional[str] = None
    group_name: Optional[str] = None
    recurrence: Optional[Recurrence] = None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @model_validator(mode="after")
    def validate_recurrence(self) -> "Expense":
        if self.recurrence and self.recurrence.end_date:
            if self.recurrence.end_date < self.expense_date:
                raise ValueError("Recurrence end date cannot be before expense date")
        return self

    @property
    def money(self) -> Money:
        return Money(amount=self.amount, currency=self.currency)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> "Expense":
        return cls.model_validate({**data, "id": doc_id})


class ExpenseInput(BaseModel):
    """Fields a user provides when recording an expense."""
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    description: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0)
    currency: CurrencyCode
    category: str = Field(..., min_length=1, max_length=50)
    expense_date: date = Field(..., alias="date")
    notes: Optional[str] = None
    receipt_url: Optional[str] = None
    group_id: Optional[str] = None
    recurrence: Optional[Recurrence] = None
    tags: list[str] = Field(default_factory=list)

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v: Any) -> Any:
        """Accept tags as a comma-separated string."""
        if isinstance(v, str):
            return [tag.strip() for tag in v.split(",") if tag.strip()]
        return v


class ExpenseUpdate(BaseModel):
    """
    Explicit edit of an expense's own fields.

    Only fields that are set are applied. Group membership of an
    expense cannot be changed through an edit.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    description: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[Decimal] = Field(default=None, gt=0)
    currency: Optional[CurrencyCode] = None
    category: Optional[str] = Field(default=None, min_length=1, max_length=50)
    expense_date: Optional[date] = None
    notes: Optional[str] = None
    receipt_url: Optional[str] = None
    recurrence: Optional[Recurrence] = None
    tags: Optional[list[str]] = None

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Optional[Decimal]:
        return None if v is None else to_decimal(v)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)

    @property
    def touches_amount(self) -> bool:
        changed = self.model_fields_set
        return "amount" in changed or "currency" in changed


class ExpenseDeletionResult(BaseModel):
    """Outcome of deleting an expense."""

    expense_id: str
    deleted_ledger_ids: list[str] = Field(default_factory=list)
    orphaned_ledger_ids: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ExpenseMutationResult(BaseModel):
    """Outcome of adding or editing an expense."""

    expense: Expense
    warnings: list[str] = Field(default_factory=list)
