from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

Number = Union[int, float, str, Decimal]

CENT = Decimal("0.01")


def to_decimal(value: Number) -> Decimal:
    """Convert any numeric input to Decimal without binary float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Number) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_str(value: Optional[Number]) -> Optional[str]:
    """Serialize money as a fixed two-decimal string ("250.00")."""
    if value is None:
        return None
    return str(quantize_money(value))


def display_amount(value: Number, symbol: str = "") -> str:
    """Human display: whole amounts without decimals (₱150), otherwise two places (₱62.50)."""
    amount = quantize_money(value)
    if amount == amount.to_integral_value():
        return f"{symbol}{int(amount)}"
    return f"{symbol}{amount}"
