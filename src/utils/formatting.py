from __future__ import annotations

from domain.money import from_minor_units


def format_currency(minor_units: int, currency: str | None = None) -> str:
    text = f"{from_minor_units(minor_units):.2f}"
    if currency:
        return f"{text} {currency}"
    return text


def format_signed_currency(minor_units: int, currency: str | None = None) -> str:
    sign = "+" if minor_units > 0 else ""
    return f"{sign}{format_currency(minor_units, currency)}"
