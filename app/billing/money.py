"""
Fixed-point money type and tolerance helpers.

Every monetary field in the ledger is a decimal with 2 fraction digits.
Comparisons that decide state (is a payable paid? is a bank amount an
exact match?) use an absolute tolerance of one cent, never a percentage.

Types:
    Money: Decimal amount + currency with currency-safe arithmetic

Helpers:
    to_decimal: Parse user/wire input into a 2-place Decimal
    amounts_match: |a - b| < EPSILON
    is_settled: remaining <= EPSILON
    outstanding_balance: amount due minus active amounts

Usage:
    from billing.money import Money, amounts_match, is_settled

    net = Money("10000.00")
    share = net * Decimal("0.6")        # Money(amount=Decimal('6000.00'), currency='brl')
    fee = share * Decimal("0.10")       # 600.00
    print(share - fee)                  # "R$ 5400.00 BRL"

    amounts_match(Decimal("5100.00"), Decimal("5100.004"))  # True
    is_settled(Decimal("0.01"))                            # True
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from functools import total_ordering
from typing import TYPE_CHECKING

from billing.exceptions import InvalidAmount

if TYPE_CHECKING:
    from typing import Any

CENT = Decimal("0.01")
EPSILON = Decimal("0.01")
ZERO = Decimal("0.00")
DEFAULT_CURRENCY = "brl"


def quantize(value: Decimal) -> Decimal:
    """Round a Decimal to cents (half-up)."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """
    Parse a monetary value into a 2-place Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.10"), not the
    binary expansion.

    Raises:
        InvalidAmount: If the value is not a finite number
    """
    if isinstance(value, Money):
        return value.amount
    if isinstance(value, float):
        value = str(value)
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InvalidAmount(
            f"Invalid {field}: {value!r}",
            details={field: str(value)},
        ) from exc
    if not result.is_finite():
        raise InvalidAmount(
            f"Invalid {field}: {value!r}",
            details={field: str(value)},
        )
    return quantize(result)


def amounts_match(a: Decimal | Money, b: Decimal | Money) -> bool:
    """Whether two amounts are equal within one cent (strictly less than)."""
    return abs(to_decimal(a) - to_decimal(b)) < EPSILON


def is_settled(remaining: Decimal | Money) -> bool:
    """Whether a remaining balance counts as fully covered."""
    return to_decimal(remaining) <= EPSILON


@total_ordering
@dataclass(frozen=True)
class Money:
    """
    Represents a monetary amount.

    The amount is always quantized to cents on construction, so two
    Money values built from "10" and "10.001" compare equal.

    Attributes:
        amount: Decimal amount with 2 fraction digits
        currency: ISO 4217 currency code (default: 'brl')

    Example:
        total = Money("600.00") + Money("300.00")
        print(total)  # "R$ 900.00 BRL"

        Money("1.00", "usd") + Money("1.00")  # ValueError
    """

    amount: Decimal
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self) -> None:
        """Normalize the amount to a 2-place Decimal."""
        object.__setattr__(self, "amount", to_decimal(self.amount))
        object.__setattr__(self, "currency", self.currency.lower())

    @classmethod
    def zero(cls, currency: str = DEFAULT_CURRENCY) -> Money:
        """Return a zero amount."""
        return cls(ZERO, currency)

    def __str__(self) -> str:
        """Format as currency string (e.g., 'R$ 50.00 BRL')."""
        return f"R$ {self.amount:.2f} {self.currency.upper()}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return f"Money(amount={self.amount!r}, currency={self.currency!r})"

    def _check_currency(self, other: Money, operation: str) -> None:
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot {operation} Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )

    def __add__(self, other: Money) -> Money:
        """Add two Money objects (must have same currency)."""
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        """Subtract two Money objects (must have same currency)."""
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, ratio: Decimal | int) -> Money:
        """Scale by a ratio, rounding the product to cents."""
        if isinstance(ratio, (Money, float)):
            return NotImplemented
        return Money(quantize(self.amount * Decimal(ratio)), self.currency)

    __rmul__ = __mul__

    def __neg__(self) -> Money:
        return Money(-self.amount, self.currency)

    def __abs__(self) -> Money:
        return Money(abs(self.amount), self.currency)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def is_close(self, other: Money) -> bool:
        """Equality within one cent."""
        self._check_currency(other, "compare")
        return amounts_match(self.amount, other.amount)


def outstanding_balance(amount_due: Decimal | Money, paid_amounts) -> Decimal:
    """
    Amount still owed after the given (active) amounts.

    The one place a balance is computed; callers pass only non-reversed
    amounts. The result may be negative (overpayment).

    Example:
        outstanding_balance(Decimal("1000.00"), [Decimal("400.00")])  # 600.00
    """
    paid = sum((to_decimal(a) for a in paid_amounts), ZERO)
    return quantize(to_decimal(amount_due) - paid)
