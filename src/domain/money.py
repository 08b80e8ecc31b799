from __future__ import annotations

from decimal import Decimal, InvalidOperation
from enum import StrEnum

from .errors import InvalidInput

MINOR_UNITS_PER_MAJOR = 100
_CENT = Decimal("0.01")


class Currency(StrEnum):
    INR = "INR"
    USD = "USD"
    EUR = "EUR"


def to_minor_units(value: Decimal | str | int) -> int:
    """Convert a major-unit amount ("12.34") into integer minor units (1234).

    Amounts with more than two decimal places are rejected instead of rounded.
    """
    if isinstance(value, bool):
        raise InvalidInput(f"Amount must be numeric, got {value!r}")
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InvalidInput(f"Amount {value!r} is not a valid decimal") from exc
    if not amount.is_finite():
        raise InvalidInput(f"Amount {value!r} is not finite")
    if amount.quantize(_CENT) != amount:
        raise InvalidInput(f"Amount {value!r} has more than two decimal places")
    return int(amount * MINOR_UNITS_PER_MAJOR)


def from_minor_units(minor_units: int) -> Decimal:
    return (Decimal(minor_units) / MINOR_UNITS_PER_MAJOR).quantize(_CENT)
