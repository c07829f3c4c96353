"""
Display formatting helpers for wheel analytics payloads.

These produce the human-readable strings the dashboard shows next to the raw
numbers: currency, percentages, expiry labels, and contract names.
"""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from ..core.models import Position


def format_currency(value: Decimal | None) -> str:
    """Format a decimal value as currency."""
    if value is None:
        return "--"
    quantized = value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if quantized < 0 else ""
    quantized = abs(quantized)
    return f"{sign}${quantized:,.2f}"


def format_percent(value: Decimal | None) -> str:
    """Format a value already expressed in percent (``12.5`` -> ``12.5%``)."""
    if value is None:
        return "--"
    percent = value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    text = f"{percent:,.2f}"
    if text.endswith(".00"):
        text = text[:-3]
    elif text.endswith("0"):
        text = text[:-1]
    return f"{text}%"


def format_expiry_label(expiry: Optional[str]) -> str:
    """``2025-07-18`` -> ``Jul 18, 2025``; unparsed expiries are returned as given."""
    if not expiry:
        return "--"
    try:
        parsed = date.fromisoformat(expiry)
    except ValueError:
        return expiry
    return f"{parsed.strftime('%b')} {parsed.day}, {parsed.year}"


def format_contract_label(position: Position) -> str:
    """Short contract name such as ``NVDA $63 CALL Jul 18, 2025``."""
    strike = position.strike
    if strike == strike.to_integral_value():
        strike_text = f"{int(strike)}"
    else:
        strike_text = f"{strike.quantize(Decimal('0.01')):,.2f}"
    return f"{position.symbol} ${strike_text} {position.option_type} {format_expiry_label(position.expiry)}"
