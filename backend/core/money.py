"""Money helpers. Amounts are Decimals in whole rupiah with two stored places."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_CENT = Decimal("0.01")
_UNIT = Decimal("1")
ZERO = Decimal("0.00")


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def round_to_unit(value: Decimal) -> Decimal:
    """Round to whole currency units; the gateway only accepts integer amounts."""
    return quantize_money(value.quantize(_UNIT, rounding=ROUND_HALF_UP))


def decimal_from_value(value: object, default: str | Decimal = "0") -> Decimal:
    if isinstance(value, Decimal):
        candidate = value
    else:
        try:
            candidate = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError):
            candidate = Decimal(str(default))
    return quantize_money(candidate)


def format_money(value: Decimal) -> str:
    return f"{Decimal(value).quantize(_CENT)}"
