"""
Money policy.

Amounts are stored and summed as integer cents. Decimal values
only exist at the boundary (schemas, reports). Conversion of an
amount to be posted never rounds: more than two decimal places is
rejected. Figures computed outside the ledger (expected balances
for reconciliation) go through round_to_cents instead.
"""

from decimal import Decimal, ROUND_HALF_UP

from property_ledger.errors import InvalidAmountError

CENT = Decimal("0.01")

# Tolerance for "balanced" / "matches" comparisons, in currency units
EPSILON = Decimal("0.01")
EPSILON_CENTS = 1


def to_cents(amount, allow_negative: bool = False) -> int:
    """Convert a currency amount to integer cents without rounding."""
    if isinstance(amount, float):
        amount = Decimal(str(amount))
    elif not isinstance(amount, Decimal):
        amount = Decimal(amount)

    if not amount.is_finite():
        raise InvalidAmountError(f"Amount {amount} is not a finite number")
    if amount != amount.quantize(CENT):
        raise InvalidAmountError(
            f"Amount {amount} has more than two decimal places"
        )
    if amount < 0 and not allow_negative:
        raise InvalidAmountError(f"Amount {amount} must not be negative")

    return int(amount.quantize(CENT) * 100)


def from_cents(cents: int) -> Decimal:
    """Convert integer cents back to a two-place Decimal."""
    return (Decimal(cents) / 100).quantize(CENT)


def round_to_cents(amount) -> int:
    """
    Cents for a figure computed outside the ledger, rounded half up.

    A float total such as 0.1 + 0.2 comes back as 30 cents.
    """
    if isinstance(amount, float):
        amount = Decimal(str(amount))
    elif not isinstance(amount, Decimal):
        amount = Decimal(amount)

    if not amount.is_finite():
        raise InvalidAmountError(f"Amount {amount} is not a finite number")
    return int(amount.quantize(CENT, rounding=ROUND_HALF_UP) * 100)
