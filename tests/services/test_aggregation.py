"""Tests for portfolio, ticker, and time-bucket aggregation."""

from decimal import Decimal

from wheelflow.core.models import OptionQuote, Position
from wheelflow.services.aggregation import aggregate, aggregate_by_ticker, group_by_time_bucket
from wheelflow.services.json_serializer import dumps, serialize_portfolio_metrics
from wheelflow.services.quotes import QuoteResult


def _make_position(**overrides) -> Position:
    return Position(
        symbol=overrides.get("symbol", "NVDA"),
        strike=overrides.get("strike", Decimal("63")),
        expiry=overrides.get("expiry", "2025-07-18"),
        option_type=overrides.get("option_type", "CALL"),
        contracts=overrides.get("contracts", -1),
        premium_collected=overrides.get("premium_collected", Decimal("100")),
        current_value=overrides.get("current_value", Decimal("50")),
        days_to_expiry=overrides.get("days_to_expiry", 17),
    )


def _quote_for(position: Position, **overrides) -> OptionQuote:
    return OptionQuote(
        ticker=position.symbol,
        strike=position.strike,
        expiry=position.expiry,
        option_type=position.option_type,
        mid=overrides.get("mid", Decimal("0.50")),
        delta=overrides.get("delta"),
    )


def test_weighted_delta_skips_unknown_deltas():
    positions = [_make_position(strike=Decimal(strike)) for strike in ("60", "63", "66")]
    quotes = [
        QuoteResult.ok(_quote_for(positions[0], delta=Decimal("0.4"))),
        QuoteResult.ok(_quote_for(positions[1], delta=None)),
        QuoteResult.ok(_quote_for(positions[2], delta=Decimal("0.2"))),
    ]

    result = aggregate(positions, quotes)

    assert result.weighted_delta == Decimal("0.3")


def test_failed_quote_falls_back_to_last_known_value():
    quoted = _make_position(contracts=-2, premium_collected=Decimal("1000"))
    unquoted = _make_position(
        strike=Decimal("70"), premium_collected=Decimal("400"), current_value=Decimal("250")
    )
    quotes = [
        QuoteResult.ok(_quote_for(quoted, mid=Decimal("1.50"))),
        QuoteResult.failed("Rate limit exceeded", "rate"),
    ]

    result = aggregate([quoted, unquoted], quotes)

    assert result.position_count == 2
    assert result.quoted_count == 1
    assert result.total_cost_to_close == Decimal("550.00")
    assert result.total_premium_collected == Decimal("1400.00")
    assert result.net_unrealized_pnl == Decimal("850.00")
    assert result.unrealized_pnl_pct == Decimal("60.71")
    assert result.net_premium_remaining == Decimal("0.00")
    assert result.degraded_keys == (str(unquoted.contract_key),)
    assert result.weighted_delta is None


def test_raw_quote_responses_are_accepted():
    raw_leg = {
        "symbol": "NVDA",
        "strike": 63,
        "expiry": "2025-07-18",
        "type": "CALL",
        "contracts": -1,
        "premium": 100,
        "current_value": 50,
        "premium_unit": "total",
        "value_unit": "total",
        "days_to_expiry": 17,
    }
    quoted = _make_position(strike=Decimal("70"))
    quotes = [
        {"success": False, "error": "Rate limit exceeded", "reason": "rate"},
        {
            "success": True,
            "quote": {"ticker": "NVDA", "strike": 70, "expiry": "2025-07-18", "type": "call", "mid": 0.4},
        },
    ]

    result = aggregate([raw_leg, quoted], quotes)

    assert result.position_count == 2
    assert result.quoted_count == 1
    assert result.total_cost_to_close == Decimal("90.00")
    assert result.net_unrealized_pnl == Decimal("110.00")
    assert result.degraded_keys == ("NVDA-63-2025-07-18-CALL",)


def test_long_legs_subtract_from_net_pnl():
    long_leg = _make_position(contracts=1, premium_collected=Decimal("200"), current_value=Decimal("300"))

    result = aggregate([long_leg])

    assert result.net_unrealized_pnl == Decimal("100.00")
    assert result.net_premium_remaining == Decimal("100.00")


def test_quote_order_does_not_change_result():
    positions = [_make_position(strike=Decimal(strike)) for strike in ("60", "63")]
    quotes = [
        _quote_for(positions[0], mid=Decimal("1.10"), delta=Decimal("0.3")),
        _quote_for(positions[1], mid=Decimal("0.40"), delta=Decimal("0.6")),
    ]

    assert aggregate(positions, quotes) == aggregate(positions, list(reversed(quotes)))


def test_time_buckets_are_ordered_and_non_empty_only():
    near = _make_position(days_to_expiry=10, expiry="2025-07-11")
    expired = _make_position(strike=Decimal("64"), days_to_expiry=-3, expiry="2025-06-28")
    unknown = _make_position(strike=Decimal("65"), days_to_expiry=None, expiry="2025-07-18")
    far = _make_position(strike=Decimal("70"), days_to_expiry=200, expiry="2026-01-16")

    buckets = group_by_time_bucket([far, near, expired, unknown])

    assert [bucket.key for bucket in buckets] == ["30-days", "long-term"]
    assert buckets[0].label == "Next 30 Days"
    assert buckets[0].contract_keys == tuple(
        str(position.contract_key) for position in (near, expired, unknown)
    )
    assert buckets[0].latest_expiry == "2025-07-18"
    assert buckets[0].total_shares_at_risk == 300
    assert buckets[1].label == "Long Term (90+ Days)"


def test_bucket_boundaries_and_assignment_probability():
    at_thirty = _make_position(days_to_expiry=30)
    at_ninety = _make_position(strike=Decimal("70"), days_to_expiry=90, option_type="PUT")
    at_thirty_one = _make_position(strike=Decimal("72"), days_to_expiry=31)
    quotes = [
        _quote_for(at_ninety, delta=Decimal("-0.3")),
        _quote_for(at_thirty_one, delta=Decimal("0.5")),
    ]

    buckets = group_by_time_bucket([at_thirty, at_ninety, at_thirty_one], quotes)

    assert [bucket.key for bucket in buckets] == ["30-days", "90-days"]
    assert buckets[0].avg_assignment_probability is None
    assert buckets[1].avg_assignment_probability == Decimal("0.4")
    assert buckets[1].net_pnl == Decimal("100.00")


def test_ticker_totals_sorted_by_symbol():
    totals = aggregate_by_ticker(
        [_make_position(symbol="TSLA"), _make_position(symbol="AAPL", contracts=-3)]
    )

    assert [item.symbol for item in totals] == ["AAPL", "TSLA"]
    assert totals[0].contracts == -3


def test_aggregation_json_is_deterministic():
    positions = [
        _make_position(symbol="TSLA", days_to_expiry=120),
        _make_position(strike=Decimal("61"), days_to_expiry=5),
        _make_position(strike=Decimal("62"), days_to_expiry=45),
    ]
    quotes = [_quote_for(positions[1], delta=Decimal("0.25"))]

    first = dumps(serialize_portfolio_metrics(aggregate(positions, quotes)))
    second = dumps(serialize_portfolio_metrics(aggregate(positions, quotes)))

    assert first == second
