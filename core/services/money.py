"""
Money Utilities - integer minor units (centavos) for every stored amount.

Catalog prices arrive as numeric strings or Decimals; everything downstream of
`to_minor_units` is an int. Floats never enter the totals.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union


def to_decimal(value: Union[str, int, float, Decimal, None]) -> Decimal:
    """
    Convert any value to Decimal safely.

    Returns Decimal("0") for None or unparseable input.
    """
    if value is None:
        return Decimal("0")

    if isinstance(value, Decimal):
        return value

    try:
        # Via string to avoid float precision issues
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")


def to_minor_units(value: Union[str, int, float, Decimal, None]) -> int:
    """
    Convert a major-unit amount to centavos.

    Example:
        to_minor_units("100.50") -> 10050
    """
    decimal_value = to_decimal(value)
    return int((decimal_value * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(minor: int) -> Decimal:
    """Convert centavos to a major-unit Decimal (10050 -> Decimal("100.50"))."""
    return Decimal(minor) / Decimal(100)


def percent_of(amount: int, percent: Union[int, Decimal]) -> int:
    """
    Percentage of an integer amount, rounded half up, in minor units.

    Example:
        percent_of(10000, 15) -> 1500
    """
    result = (Decimal(amount) * to_decimal(percent) / Decimal(100)).to_integral_value(
        rounding=ROUND_HALF_UP
    )
    return int(result)


def format_brl(minor: int) -> str:
    """Format centavos for humans: 123456 -> "R$ 1.234,56"."""
    value = from_minor_units(minor).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    formatted = f"{value:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return f"R$ {formatted}"
