from decimal import Decimal

import pytest

from domain.errors import InvalidInput
from domain.money import Currency, from_minor_units, to_minor_units


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("12.34", 1234),
        ("100", 10000),
        (Decimal("0.01"), 1),
        ("-5.5", -550),
        (7, 700),
    ],
)
def test_to_minor_units(value: Decimal | str | int, expected: int) -> None:
    assert to_minor_units(value) == expected


@pytest.mark.parametrize("value", ["1.005", "abc", "", "NaN", "Infinity", True])
def test_to_minor_units_rejects_unrepresentable_amounts(value: object) -> None:
    with pytest.raises(InvalidInput):
        to_minor_units(value)  # type: ignore[arg-type]


def test_from_minor_units_has_two_decimals() -> None:
    assert from_minor_units(3333) == Decimal("33.33")
    assert from_minor_units(-5) == Decimal("-0.05")
    assert str(from_minor_units(10000)) == "100.00"


def test_supported_currencies() -> None:
    assert {currency.value for currency in Currency} == {"INR", "USD", "EUR"}
