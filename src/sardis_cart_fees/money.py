"""
Decimal money helpers for fee computation.

Amounts are ``Decimal`` end to end. Floats are refused at the boundary so
that binary rounding never leaks into a fee, and quantization to the
currency minor unit is done by ``round_money`` only.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Union

Money = Decimal

ZERO = Decimal("0")

# Minor-unit exponent per ISO currency; unknown codes fall back to 2.
CURRENCY_DECIMAL_PLACES: Dict[str, int] = {
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
    "CAD": 2,
    "AUD": 2,
    "CHF": 2,
    "MXN": 2,
    "JPY": 0,
    "KRW": 0,
}


def decimal_places(currency: str) -> int:
    """Number of minor-unit digits for a currency."""
    return CURRENCY_DECIMAL_PLACES.get(currency.upper(), 2)


def to_money(value: Union[Decimal, int, str]) -> Decimal:
    """
    Coerce a value into a Decimal amount.

    Raises:
        TypeError: If a float (or bool) is passed
        ValueError: If the value is not a finite number
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(
            f"Money must be Decimal, int or str, not {type(value).__name__}"
        )
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(value)
        except InvalidOperation as exc:
            raise ValueError(f"Invalid money amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Money amount must be finite: {value!r}")
    return amount


def round_money(amount: Decimal, currency: str = "USD") -> Decimal:
    """Round amount to the minor unit of the currency (half up)."""
    places = decimal_places(currency)
    quantize_str = "0." + "0" * places if places > 0 else "1"
    return amount.quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP)


def format_money(amount: Decimal, currency: str = "USD") -> str:
    """Display string for an amount, rounded for presentation only."""
    return f"{round_money(amount, currency):,} {currency.upper()}"


def percent_label(rate: Decimal) -> str:
    """Render a fractional rate as a percent label: 0.03 -> '3%'."""
    pct = (rate * 100).normalize()
    if pct == pct.to_integral_value():
        pct = pct.quantize(Decimal("1"))
    return f"{pct}%"
