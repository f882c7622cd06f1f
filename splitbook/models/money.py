"""
Money and Currency

All amounts in the system are Decimals tagged with a currency code.

DESIGN DECISION: Binary floats are never used for money. Inputs that
arrive as floats are converted through their string form so that 0.1
stays 0.1.

Two amounts are considered equal when they differ by less than one
cent (EPSILON). Amounts in different currencies are never combined.
"""

from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


EPSILON = Decimal("0.01")
CENT = Decimal("0.01")

NumberLike = Union[Decimal, int, float, str]


class CurrencyCode(str, Enum):
    """Supported currencies."""
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"
    CAD = "CAD"
    AUD = "AUD"
    INR = "INR"

    @property
    def display_name(self) -> str:
        return CURRENCY_DETAILS[self][0]

    @property
    def symbol(self) -> str:
        return CURRENCY_DETAILS[self][1]


CURRENCY_DETAILS: dict[CurrencyCode, tuple[str, str]] = {
    CurrencyCode.USD: ("US Dollar", "$"),
    CurrencyCode.EUR: ("Euro", "€"),
    CurrencyCode.GBP: ("British Pound", "£"),
    CurrencyCode.JPY: ("Japanese Yen", "¥"),
    CurrencyCode.CAD: ("Canadian Dollar", "CA$"),
    CurrencyCode.AUD: ("Australian Dollar", "A$"),
    CurrencyCode.INR: ("Indian Rupee", "₹"),
}


class CurrencyMismatchError(ValueError):
    """Attempted to combine amounts in different currencies."""

    def __init__(self, left: CurrencyCode, right: CurrencyCode):
        self.left = left
        self.right = right
        super().__init__(
            f"Cannot combine amounts in {left.value} and {right.value}"
        )


def to_decimal(value: NumberLike) -> Decimal:
    """
    Convert a number-like value to Decimal without binary float drift.

    Raises:
        ValueError: If the value is not a finite number
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Not a valid amount: {value!r}")

    if not result.is_finite():
        raise ValueError(f"Amount must be finite, got {value!r}")
    return result


def quantize_cents(value: NumberLike, rounding: str = ROUND_HALF_UP) -> Decimal:
    """Round to two decimal places (half-up unless told otherwise)."""
    return to_decimal(value).quantize(CENT, rounding=rounding)


def floor_cents(value: NumberLike) -> Decimal:
    """Round down to two decimal places."""
    return quantize_cents(value, rounding=ROUND_FLOOR)


def amounts_equal(a: NumberLike, b: NumberLike) -> bool:
    """True if two amounts differ by less than EPSILON."""
    return abs(to_decimal(a) - to_decimal(b)) < EPSILON


def is_negligible(value: NumberLike) -> bool:
    """True if an amount is too small to count as a balance."""
    return abs(to_decimal(value)) < EPSILON


def format_amount(amount: NumberLike, currency: CurrencyCode) -> str:
    """
    Format an amount for display, e.g. "$1,234.56" or "-€5.00".
    """
    value = quantize_cents(amount)
    sign = "-" if value < 0 else ""
    return f"{sign}{currency.symbol}{abs(value):,.2f}"


class Money(BaseModel):
    """
    A signed amount in one currency.

    Immutable. Arithmetic between different currencies raises
    CurrencyMismatchError.
    """
    model_config = ConfigDict(frozen=True)

    amount: Decimal = Field(
        ...,
        description="Signed amount"
    )
    currency: CurrencyCode = Field(
        ...,
        description="ISO currency code"
    )

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: NumberLike) -> Decimal:
        return to_decimal(v)

    @classmethod
    def zero(cls, currency: CurrencyCode) -> "Money":
        return cls(amount=Decimal("0"), currency=currency)

    def _check_currency(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)

    def __add__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def __neg__(self) -> "Money":
        return Money(amount=-self.amount, currency=self.currency)

    def is_close(self, other: "Money") -> bool:
        """Equality within one cent, same currency only."""
        self._check_currency(other)
        return amounts_equal(self.amount, other.amount)

    def is_negligible(self) -> bool:
        return is_negligible(self.amount)

    def rounded(self) -> "Money":
        return Money(amount=quantize_cents(self.amount), currency=self.currency)

    def format(self) -> str:
        return format_amount(self.amount, self.currency)

    def __str__(self) -> str:
        return self.format()
