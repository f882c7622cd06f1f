"""
Split Ledger Models

A SplitLedger is the settlement record for one expense's split: who
paid, who owes what, and which shares have been settled.

INVARIANT: the participants' amount_owed values always sum to the
ledger's total within one cent. The allocator establishes this and every
update re-checks it.

Display fields (expense description, participant names) are snapshots
taken when the ledger is created. They are not kept in sync with the
source expense or profile and can go stale.

This module also holds the derived, never-persisted types produced by
the balance aggregator and the debt simplifier.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from splitbook.models.money import CurrencyCode, Money, to_decimal


class SplitMethod(str, Enum):
    """How an expense total is divided among participants."""
    EQUALLY = "equally"
    BY_AMOUNT = "byAmount"
    BY_PERCENTAGE = "byPercentage"


def _optional_decimal(v: Any) -> Optional[Decimal]:
    return None if v is None or v == "" else to_decimal(v)


class ShareInput(BaseModel):
    """
    One participant as supplied by the caller.

    amount_owed is required for byAmount splits, percentage for
    byPercentage splits; both are ignored for equal splits.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(..., min_length=1)
    amount_owed: Optional[Decimal] = None
    percentage: Optional[Decimal] = None
    display_name: Optional[str] = None
    email: Optional[str] = None

    @field_validator("amount_owed", "percentage", mode="before")
    @classmethod
    def coerce_decimal(cls, v: Any) -> Optional[Decimal]:
        return _optional_decimal(v)


class Participant(BaseModel):
    """One person's share within a ledger."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    amount_owed: Decimal
    percentage: Optional[Decimal] = None
    is_settled: bool = False

    @field_validator("amount_owed", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator("percentage", mode="before")
    @classmethod
    def coerce_percentage(cls, v: Any) -> Optional[Decimal]:
        return _optional_decimal(v)


class SplitLedger(BaseModel):
    """
    Settlement record for one expense's split.

    Persisted in the `splitExpenses` collection using the camelCase
    field layout: originalExpenseId, originalExpenseDescription,
    currency, splitMethod, totalAmount, paidBy, participants,
    involvedUserIds, groupId, groupName, notes, createdAt, updatedAt.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: Optional[str] = None
    original_expense_id: str
    original_expense_description: str
    currency: CurrencyCode
    split_method: SplitMethod
    total_amount: Decimal
    paid_by: str
    participants: list[Participant]
    involved_user_ids: list[str] = Field(default_factory=list)
    group_id: Optional[str] = None
    group_name: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None

    @field_validator("total_amount", mode="before")
    @classmethod
    def coerce_total(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @model_validator(mode="after")
    def fill_involved_user_ids(self) -> "SplitLedger":
        if not self.involved_user_ids:
            self.involved_user_ids = compute_involved_user_ids(
                self.paid_by, self.participants
            )
        return self

    @property
    def total(self) -> Money:
        return Money(amount=self.total_amount, currency=self.currency)

    @property
    def participant_ids(self) -> list[str]:
        return [p.user_id for p in self.participants]

    def get_participant(self, user_id: str) -> Optional[Participant]:
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None

    def unsettled_participants(self) -> list[Participant]:
        return [p for p in self.participants if not p.is_settled]

    @property
    def outstanding_amount(self) -> Decimal:
        """Sum still owed to the payer by unsettled participants."""
        return sum(
            (p.amount_owed for p in self.participants
             if not p.is_settled and p.user_id != self.paid_by),
            Decimal("0"),
        )

    @property
    def is_fully_settled(self) -> bool:
        return all(p.is_settled for p in self.participants)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> "SplitLedger":
        return cls.model_validate({**data, "id": doc_id})


def compute_involved_user_ids(paid_by: str, participants: list[Participant]) -> list[str]:
    """Payer first, then participants in order, without duplicates."""
    seen = [paid_by]
    for participant in participants:
        if participant.user_id not in seen:
            seen.append(participant.user_id)
    return seen


class ShareUpdate(BaseModel):
    """
    Explicit edit of an existing ledger's shares.

    The set of participants is fixed once a ledger exists. Shares, when
    given, must name exactly the existing participants.
    """

    method: Optional[SplitMethod] = None
    shares: Optional[list[ShareInput]] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def require_change(self) -> "ShareUpdate":
        if self.method is None and self.shares is None and self.notes is None:
            raise ValueError("Share update must change the method, the shares or the notes")
        return self


class LedgerMutationResult(BaseModel):
    """
    Outcome of a ledger mutation.

    warnings holds non-fatal problems, e.g. the activity log could not
    be written. The mutation itself has been committed.
    """

    ledger: SplitLedger
    warnings: list[str] = Field(default_factory=list)


# =============================================================================
# DERIVED VIEWS - recomputed on every read, never persisted
# =============================================================================

class BalanceScope(BaseModel):
    """Either one user or one group, never both."""
    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    group_id: Optional[str] = None

    @model_validator(mode="after")
    def exactly_one(self) -> "BalanceScope":
        if (self.user_id is None) == (self.group_id is None):
            raise ValueError("Balance scope needs exactly one of user_id or group_id")
        return self

    @classmethod
    def for_user(cls, user_id: str) -> "BalanceScope":
        return cls(user_id=user_id)

    @classmethod
    def for_group(cls, group_id: str) -> "BalanceScope":
        return cls(group_id=group_id)


class NetBalance(BaseModel):
    """
    A person's paid-minus-owed position in one currency.

    Positive net_balance: others owe this user.
    Negative net_balance: this user owes others.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    currency: CurrencyCode
    paid_for_others: Decimal = Decimal("0")
    owed_to_others: Decimal = Decimal("0")
    net_balance: Decimal

    @property
    def money(self) -> Money:
        return Money(amount=self.net_balance, currency=self.currency)


class PairwiseDebt(BaseModel):
    """One transfer in a settlement plan: from_user_id pays to_user_id."""
    model_config = ConfigDict(frozen=True)

    from_user_id: str
    to_user_id: str
    amount: Decimal
    currency: CurrencyCode

    @property
    def money(self) -> Money:
        return Money(amount=self.amount, currency=self.currency)

    def describe(self) -> str:
        return f"{self.from_user_id} pays {self.to_user_id} {self.money.format()}"


class CounterpartyBalance(BaseModel):
    """
    Net position between one user and one counterparty in one currency.

    Positive amount: the counterparty owes the user.
    Negative amount: the user owes the counterparty.
    """
    model_config = ConfigDict(frozen=True)

    counterparty_id: str
    currency: CurrencyCode
    amount: Decimal


class BalanceReport(BaseModel):
    """Balances and settlement plan for a scope, as shown to a user."""

    scope: BalanceScope
    generated_at: datetime = Field(default_factory=datetime.utcnow)
    balances: list[NetBalance] = Field(default_factory=list)
    transfers: list[PairwiseDebt] = Field(default_factory=list)
    counterparties: list[CounterpartyBalance] = Field(default_factory=list)

    @property
    def is_settled_up(self) -> bool:
        return not self.transfers and not self.counterparties
