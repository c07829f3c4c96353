"""Tests for option-leg and share-lot normalization."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from wheelflow.config import get_settings
from wheelflow.core.models import SharePosition
from wheelflow.services.positions import (
    classify_amount_unit,
    normalize_position,
    normalize_positions,
    normalize_share_position,
    resolve_cost_basis,
)

AS_OF = date(2025, 7, 1)


def _make_raw(**overrides) -> dict:
    raw = {
        "symbol": "NVDA",
        "strike": "$63.00",
        "expiry": "Jul-18-2025",
        "optionType": "CALL",
        "contracts": -4,
        "premiumCollected": 3.08,
        "currentValue": 6.01,
    }
    raw.update(overrides)
    return raw


def _kinds(position) -> list[str]:
    return [warning.kind for warning in position.warnings]


def test_per_share_premium_is_scaled_to_position_total():
    position = normalize_position(_make_raw(), as_of=AS_OF)

    assert position.premium_collected == Decimal("1232.00")
    assert position.current_value == Decimal("2404.00")
    assert position.strike == Decimal("63.00")
    assert position.expiry == "2025-07-18"
    assert position.days_to_expiry == 17
    assert position.direction == "SHORT"
    assert _kinds(position).count("unit_ambiguity") == 2


def test_explicit_unit_tag_overrides_magnitude_heuristic():
    tagged = normalize_position(_make_raw(premiumCollected=30, premium_unit="total"), as_of=AS_OF)
    untagged = normalize_position(_make_raw(premiumCollected=30), as_of=AS_OF)

    assert tagged.premium_collected == Decimal("30")
    assert untagged.premium_collected == Decimal("12000")


def test_large_amounts_are_treated_as_totals():
    position = normalize_position(
        _make_raw(premiumCollected="1,232.28", currentValue="2404"), as_of=AS_OF
    )
    assert position.premium_collected == Decimal("1232.28")
    assert position.current_value == Decimal("2404")


def test_threshold_is_configurable_through_environment(monkeypatch):
    monkeypatch.setenv("WHEELFLOW_PER_SHARE_THRESHOLD", "10")
    get_settings.cache_clear()

    position = normalize_position(_make_raw(premiumCollected=30), as_of=AS_OF)

    assert position.premium_collected == Decimal("30")


def test_classify_amount_unit_policy():
    assert classify_amount_unit(Decimal("49.99")).unit == "per_share"
    assert classify_amount_unit(Decimal("49.99")).inferred is True
    assert classify_amount_unit(Decimal("50")).unit == "total"
    explicit = classify_amount_unit(Decimal("500"), "per-share")
    assert explicit.unit == "per_share"
    assert explicit.inferred is False
    assert classify_amount_unit(Decimal("20"), threshold=Decimal("10")).unit == "total"


def test_normalizing_a_position_twice_does_not_rescale():
    first = normalize_position(_make_raw(premiumCollected=0.10, contracts=-1), as_of=AS_OF)
    assert first.premium_collected == Decimal("10.00")

    assert normalize_position(first) is first

    again = normalize_position(first.model_dump(), as_of=AS_OF)
    assert again.premium_collected == first.premium_collected
    assert again.current_value == first.current_value
    assert again.contracts == first.contracts
    assert again.expiry == first.expiry
    assert again.direction == first.direction
    assert again.days_to_expiry == first.days_to_expiry


def test_sign_wins_over_conflicting_direction_tag():
    position = normalize_position(_make_raw(contracts=2, position="SHORT"), as_of=AS_OF)

    assert position.direction == "LONG"
    assert "direction_conflict" in _kinds(position)


def test_unparsed_expiry_is_kept_and_flagged():
    position = normalize_position(_make_raw(expiry="07/18/2025"), as_of=AS_OF)

    assert position.expiry == "07/18/2025"
    assert position.expiry_parsed is False
    assert position.days_to_expiry is None
    assert "unparseable_date" in _kinds(position)


def test_supplied_days_to_expiry_wins():
    position = normalize_position(_make_raw(daysToExpiry="3"), as_of=AS_OF)
    assert position.days_to_expiry == 3


def test_malformed_fields_fall_back_with_warnings():
    position = normalize_position(
        {"symbol": "nvda", "strike": "Unknown", "contracts": "", "premium": "n/a"}, as_of=AS_OF
    )

    assert position.symbol == "NVDA"
    assert position.strike == Decimal("0")
    assert position.contracts == 0
    assert position.option_type == "CALL"
    assert position.premium_collected == Decimal("0")
    fields = {warning.field for warning in position.warnings}
    assert {"strike", "contracts", "option_type", "premium_collected", "expiry"} <= fields


def test_descriptive_symbol_is_reduced_to_underlying():
    position = normalize_position(_make_raw(symbol="NVDA 63 Call"), as_of=AS_OF)

    assert position.symbol == "NVDA"
    assert position.contract_key.cache_key == "NVDA-63-2025-07-18-CALL"


def test_zero_contract_leg_does_not_scale_per_share_amounts():
    position = normalize_position(
        _make_raw(contracts=0, premiumCollected=3.08, currentValue=None), as_of=AS_OF
    )

    assert position.premium_collected == Decimal("0")
    assert "premium_collected" in {
        warning.field for warning in position.warnings if warning.kind == "missing_data"
    }


def test_normalize_positions_preserves_order():
    positions = normalize_positions(
        [_make_raw(symbol="TSLA"), _make_raw(symbol="AAPL")], as_of=AS_OF
    )
    assert [position.symbol for position in positions] == ["TSLA", "AAPL"]


def test_share_cost_basis_falls_back_to_spot_only_when_missing():
    missing = normalize_share_position(
        {"symbol": "nvda", "quantity": "400", "purchasePrice": "--"}, Decimal("67.21")
    )
    reported = normalize_share_position(
        {"symbol": "NVDA", "shares": 400, "costBasis": "$59.00"}, Decimal("67.21")
    )

    assert missing.cost_basis == Decimal("67.21")
    assert missing.cost_basis_source == "spot_fallback"
    assert [warning.field for warning in missing.warnings] == ["cost_basis"]
    assert reported.cost_basis == Decimal("59.00")
    assert reported.cost_basis_source == "reported"
    assert reported.quantity == Decimal("400")


def test_resolve_cost_basis_weights_lots_by_size():
    lots = [
        SharePosition(symbol="NVDA", quantity=Decimal("100"), cost_basis=Decimal("50")),
        SharePosition(symbol="NVDA", quantity=Decimal("300"), cost_basis=Decimal("60")),
        SharePosition(symbol="AAPL", quantity=Decimal("100"), cost_basis=Decimal("150")),
    ]

    assert resolve_cost_basis(lots, "nvda", Decimal("67")) == (Decimal("57.5"), False)
    assert resolve_cost_basis(lots, "TSLA", Decimal("250")) == (Decimal("250"), True)
    assert resolve_cost_basis([], "TSLA", None) == (None, True)
