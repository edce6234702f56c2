"""
Fixed-point money helpers.

Balances and amounts are stored as integer minor units (kobo) and exposed
as Decimal major units with two fractional digits.
"""

from decimal import Decimal, InvalidOperation

MINOR_UNITS_PER_MAJOR = 100
TWO_PLACES = Decimal("0.01")


def to_minor_units(amount) -> int:
    """
    Convert a major-unit amount to integer minor units.

    Raises:
        ValueError: if the amount is not a finite number or carries more
            precision than one minor unit.
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount!r}")

    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")

    minor = value * MINOR_UNITS_PER_MAJOR
    if minor != minor.to_integral_value():
        raise ValueError(f"Amount {amount} has more than two decimal places")
    return int(minor)


def from_minor_units(amount_minor: int) -> Decimal:
    """Convert integer minor units to a Decimal major-unit amount."""
    return (Decimal(amount_minor) / MINOR_UNITS_PER_MAJOR).quantize(TWO_PLACES)
