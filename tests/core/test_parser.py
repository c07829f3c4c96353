"""Tests for the parse-or-default helpers."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from wheelflow.core.parser import days_until, normalize_expiry, parse_decimal, parse_int, parse_text


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("$1,232.28", Decimal("1232.28")),
        ("(3.08)", Decimal("-3.08")),
        ("-$5", Decimal("-5")),
        ("+2.5", Decimal("2.5")),
        (3.08, Decimal("3.08")),
        (4, Decimal("4")),
        (Decimal("63.00"), Decimal("63.00")),
    ],
)
def test_parse_decimal_reads_currency_strings(raw, expected):
    assert parse_decimal(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "Unknown", "--", "$", True, float("nan"), [1]])
def test_parse_decimal_returns_none_for_non_numeric(raw):
    assert parse_decimal(raw) is None


def test_parse_int_truncates_and_rejects_text():
    assert parse_int("4") == 4
    assert parse_int("-4.0") == -4
    assert parse_int("2.9") == 2
    assert parse_int("abc") is None


def test_parse_text_strips_and_handles_none():
    assert parse_text("  NVDA ") == "NVDA"
    assert parse_text(None) == ""


def test_normalize_expiry_converts_month_abbreviation():
    assert normalize_expiry("Jul-18-2025") == ("2025-07-18", True)
    assert normalize_expiry("jul-5-2025") == ("2025-07-05", True)


def test_normalize_expiry_keeps_iso_unchanged():
    assert normalize_expiry("2025-07-18") == ("2025-07-18", True)


def test_normalize_expiry_accepts_date_objects():
    assert normalize_expiry(date(2025, 7, 18)) == ("2025-07-18", True)
    assert normalize_expiry(datetime(2025, 7, 18, 16, 0)) == ("2025-07-18", True)


@pytest.mark.parametrize("raw", ["07/18/2025", "2025-02-30", "Foo-18-2025", "Feb-30-2025"])
def test_normalize_expiry_passes_through_unparsed(raw):
    assert normalize_expiry(raw) == (raw, False)


def test_days_until_counts_calendar_days_and_floors_at_zero():
    assert days_until("2025-07-18", as_of=date(2025, 7, 1)) == 17
    assert days_until("2025-07-18", as_of=date(2025, 8, 1)) == 0
    assert days_until("07/18/2025", as_of=date(2025, 7, 1)) is None
