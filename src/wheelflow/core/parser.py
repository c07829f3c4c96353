"""
Parse-or-default helpers for untrusted position and quote fields.

Extracted broker data arrives as strings like ``"$1,232.28"``, ``"(3.08)"``,
``"Unknown"``, empty strings, or plain numbers. Every numeric read in wheelflow
goes through :func:`parse_decimal` or :func:`parse_int`, which return ``None``
instead of raising so callers can apply their own fallback policy.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Tuple
from zoneinfo import ZoneInfo

EASTERN_TZ = ZoneInfo("US/Eastern")

MONTH_ABBREVIATIONS = {
    "JAN": "01",
    "FEB": "02",
    "MAR": "03",
    "APR": "04",
    "MAY": "05",
    "JUN": "06",
    "JUL": "07",
    "AUG": "08",
    "SEP": "09",
    "OCT": "10",
    "NOV": "11",
    "DEC": "12",
}

_ISO_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH_DAY_YEAR_PATTERN = re.compile(r"^(?P<month>[A-Za-z]{3})-(?P<day>\d{1,2})-(?P<year>\d{4})$")


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Parse a currency-like value into a Decimal, or ``None`` when not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        # str() keeps the shortest repr so 3.08 stays 3.08 rather than the binary expansion
        return Decimal(str(value))
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]

    text = text.replace("$", "").replace(",", "").strip()
    if text.startswith("-"):
        negative = not negative
        text = text[1:]
    elif text.startswith("+"):
        text = text[1:]

    if not text:
        return None

    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None

    return -amount if negative else amount


def parse_int(value: Any) -> Optional[int]:
    """Parse an integer count; fractional values are truncated toward zero."""
    amount = parse_decimal(value)
    if amount is None:
        return None
    return int(amount)


def parse_text(value: Any) -> str:
    """Coerce an optional field to a stripped string."""
    if value is None:
        return ""
    return str(value).strip()


def normalize_expiry(value: Any) -> Tuple[str, bool]:
    """
    Normalize an expiration string to ISO ``YYYY-MM-DD``.

    Returns ``(expiry, parsed)``. ISO input is returned unchanged and
    ``Mon-DD-YYYY`` (e.g. ``"Jul-18-2025"``) is converted through
    :data:`MONTH_ABBREVIATIONS`. Anything else is passed through untouched with
    ``parsed=False`` so the caller can surface it.
    """
    if isinstance(value, datetime):
        return value.date().isoformat(), True
    if isinstance(value, date):
        return value.isoformat(), True

    text = parse_text(value)
    if not text:
        return text, False

    if _ISO_PATTERN.match(text):
        try:
            date.fromisoformat(text)
        except ValueError:
            return text, False
        return text, True

    match = _MONTH_DAY_YEAR_PATTERN.match(text)
    if not match:
        return text, False

    month = MONTH_ABBREVIATIONS.get(match.group("month").upper())
    if month is None:
        return text, False

    candidate = f"{match.group('year')}-{month}-{int(match.group('day')):02d}"
    try:
        date.fromisoformat(candidate)
    except ValueError:
        return text, False
    return candidate, True


def today_eastern() -> date:
    """Return the current US/Eastern calendar date (option expiries settle on Eastern time)."""
    return datetime.now(EASTERN_TZ).date()


def days_until(expiry: str, *, as_of: Optional[date | datetime] = None) -> Optional[int]:
    """Return the non-negative day count from ``as_of`` to an ISO expiry, or ``None``."""
    try:
        expiration = date.fromisoformat(expiry)
    except (TypeError, ValueError):
        return None

    if as_of is None:
        as_of_date = today_eastern()
    elif isinstance(as_of, datetime):
        as_of_date = as_of.astimezone(EASTERN_TZ).date() if as_of.tzinfo else as_of.date()
    else:
        as_of_date = as_of
    return max((expiration - as_of_date).days, 0)
