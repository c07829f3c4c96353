"""Tests for quote normalization and quote/position matching."""

from datetime import date
from decimal import Decimal

from wheelflow.core.models import OptionQuote, Position
from wheelflow.services.quotes import (
    QuoteResult,
    QuoteUnavailable,
    derive_mid,
    find_quote,
    index_quotes,
    normalize_quote,
    parse_quote_response,
)

AS_OF = date(2025, 7, 1)


def _make_snapshot(**overrides) -> dict:
    snapshot = {
        "details": {
            "ticker": "O:NVDA250718C00063000",
            "strike_price": 63,
            "expiration_date": "2025-07-18",
            "contract_type": "call",
        },
        "greeks": {"delta": 0.85, "gamma": 0, "theta": -0.05},
        "day": {"close": 6.2, "volume": 1500},
        "last_quote": {"bid": 59000, "ask": 61000, "last_updated": 1721000000000},
        "implied_volatility": 0.42,
        "open_interest": 1200,
    }
    snapshot.update(overrides)
    return snapshot


def _make_position(**overrides) -> Position:
    return Position(
        symbol=overrides.get("symbol", "NVDA"),
        strike=overrides.get("strike", Decimal("63.00")),
        expiry=overrides.get("expiry", "2025-07-18"),
        option_type=overrides.get("option_type", "CALL"),
        contracts=overrides.get("contracts", -4),
    )


def test_snapshot_fixed_point_bid_ask_is_scaled_to_dollars():
    quote = normalize_quote(_make_snapshot(), as_of=AS_OF)

    assert isinstance(quote, OptionQuote)
    assert quote.ticker == "NVDA"
    assert quote.bid == Decimal("5.9")
    assert quote.ask == Decimal("6.1")
    assert quote.mid == Decimal("6.00")
    assert quote.price_source == "bid_ask"
    assert quote.dte == 17
    assert quote.open_interest == 1200
    assert quote.day_volume == 1500
    assert quote.last_updated == 1721000000000


def test_missing_greeks_stay_none_and_zero_stays_zero():
    quote = normalize_quote(_make_snapshot(), as_of=AS_OF)

    assert quote.delta == Decimal("0.85")
    assert quote.gamma == Decimal("0")
    assert quote.vega is None
    assert quote.iv == Decimal("0.42")


def test_dollar_bid_ask_is_not_rescaled():
    quote = normalize_quote(
        _make_snapshot(last_quote={"bid": 5.9, "ask": 6.1}), as_of=AS_OF
    )
    assert quote.mid == Decimal("6.0")


def test_close_is_used_when_bid_ask_missing():
    quote = normalize_quote(_make_snapshot(last_quote=None), as_of=AS_OF)

    assert quote.mid == Decimal("6.2")
    assert quote.price_source == "close"
    assert quote.bid is None


def test_crossed_market_falls_back_to_close():
    mid, source, _, _ = derive_mid(Decimal("6.5"), Decimal("6.1"), Decimal("6.2"))
    assert (mid, source) == (Decimal("6.2"), "close")


def test_no_price_is_unavailable_not_zero():
    result = normalize_quote(_make_snapshot(last_quote=None, day={}), as_of=AS_OF)

    assert isinstance(result, QuoteUnavailable)
    assert result.reason == "no_price"
    assert result.retryable is False


def test_missing_contract_details_is_unavailable():
    result = normalize_quote({"details": {"ticker": "O:NVDA250718C00063000"}})
    assert isinstance(result, QuoteUnavailable)
    assert result.reason == "other"


def test_flattened_endpoint_quote():
    quote = normalize_quote(
        {
            "ticker": "nvda",
            "strike": 63,
            "expiry": "2025-07-18",
            "type": "call",
            "mid": 6.01,
            "dte": 17,
            "delta": None,
            "openInterest": 50,
        }
    )

    assert quote.mid == Decimal("6.01")
    assert quote.price_source == "mid"
    assert quote.delta is None
    assert quote.open_interest == 50


def test_parse_quote_response_tags_failures():
    rate = parse_quote_response(
        {"success": False, "reason": "rate", "error": "Rate limit exceeded"}
    )
    missing = parse_quote_response({"success": False, "error": "Option not found"})
    other = parse_quote_response({"success": False, "error": "Polygon API error: 500"})

    assert (rate.reason, rate.retryable) == ("rate", True)
    assert (missing.reason, missing.retryable) == ("not_found", False)
    assert other.reason == "other"
    assert parse_quote_response(None).success is False


def test_parse_quote_response_success():
    result = parse_quote_response(
        {
            "success": True,
            "quote": {"ticker": "NVDA", "strike": 63, "expiry": "2025-07-18", "type": "call", "mid": 6},
        }
    )
    assert result.success is True
    assert result.quote.mid == Decimal("6")


def test_quotes_match_positions_by_normalized_key():
    quote = normalize_quote(_make_snapshot(), as_of=AS_OF)
    other = normalize_quote(
        _make_snapshot(
            details={
                "ticker": "O:NVDA250718C00070000",
                "strike_price": 70,
                "expiration_date": "2025-07-18",
                "contract_type": "call",
            }
        ),
        as_of=AS_OF,
    )
    index = index_quotes([QuoteResult.ok(other), QuoteResult.failed("boom"), None, quote])

    assert find_quote(index, _make_position(expiry="Jul-18-2025")) is quote
    assert find_quote(index, _make_position(strike=Decimal("70"))) is other
    assert find_quote(index, _make_position(option_type="PUT")) is None
