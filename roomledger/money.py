"""
Currency arithmetic helpers.

DESIGN DECISION: All money is `Decimal`, never float, and every rounding
step uses ROUND_HALF_UP to two places. One rounding mode everywhere keeps
the conservation property (balances sum to zero) intact.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

Amount = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
DEFAULT_EPSILON = Decimal("0.01")


def to_decimal(value: Amount) -> Decimal:
    """Convert an int/float/str/Decimal to Decimal without float artifacts."""
    if isinstance(value, Decimal):
        return value
    # str() first so 0.1 becomes Decimal("0.1"), not its binary expansion
    return Decimal(str(value))


def round_currency(value: Amount) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Amount) -> int:
    """Convert a currency amount to integer minor units, rounding to the nearest cent."""
    return int((to_decimal(value) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def is_settled(value: Amount, epsilon: Amount = DEFAULT_EPSILON) -> bool:
    """True if a balance is within epsilon of zero."""
    return abs(to_decimal(value)) <= to_decimal(epsilon)
