"""Stateless HOLD / ROLL / LET_EXPIRE decisions for open option legs."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal, Optional

from ..config import AnalyticsSettings, get_settings
from ..core.models import CENT, OptionQuote, Position

RollAction = Literal["HOLD", "ROLL", "LET_EXPIRE"]

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class RuleOutcome:
    """Result of one trigger rule, with the numbers it compared."""

    triggered: bool
    threshold: Optional[Decimal]
    current: Optional[Decimal]
    detail: str


@dataclass(frozen=True)
class RollDecision:
    action: RollAction
    rule_a: RuleOutcome
    rule_b: RuleOutcome
    moneyness_pct: Optional[Decimal]
    conditional_trigger: str


def moneyness_pct(spot: Decimal, strike: Decimal) -> Optional[Decimal]:
    """``(spot - strike) / strike × 100``, or ``None`` when the strike is zero."""
    if strike == ZERO:
        return None
    return (spot - strike) / strike * HUNDRED


def _price_rule(spot: Decimal, strike: Decimal, settings: AnalyticsSettings) -> RuleOutcome:
    multiplier = settings.roll_price_multiplier
    if strike <= ZERO:
        return RuleOutcome(False, None, spot, "Strike unavailable; price rule not evaluated")
    threshold = strike * multiplier
    comparison = "≥" if spot >= threshold else "<"
    return RuleOutcome(
        triggered=spot >= threshold,
        threshold=threshold,
        current=spot,
        detail=f"Price {comparison} strike × {multiplier} (${threshold.quantize(CENT)})",
    )


def _delta_rule(
    delta: Optional[Decimal], moneyness: Optional[Decimal], settings: AnalyticsSettings
) -> RuleOutcome:
    delta_threshold = settings.roll_delta_threshold
    if delta is not None:
        current = abs(delta)
        comparison = "≥" if current >= delta_threshold else "<"
        return RuleOutcome(
            triggered=current >= delta_threshold,
            threshold=delta_threshold,
            current=current,
            detail=f"Delta {comparison} {delta_threshold}",
        )
    if moneyness is None:
        return RuleOutcome(False, delta_threshold, None, "Delta and moneyness unavailable")
    return RuleOutcome(
        triggered=moneyness > settings.roll_moneyness_pct,
        threshold=settings.roll_moneyness_pct,
        current=moneyness,
        detail=f"Delta estimated from moneyness > {settings.roll_moneyness_pct}%",
    )


def evaluate_roll_trigger(
    position: Position,
    quote: Optional[OptionQuote],
    spot: Decimal,
    *,
    settings: Optional[AnalyticsSettings] = None,
) -> RollDecision:
    """
    Decide whether ``position`` should be rolled, left to expire, or held.

    Rule A fires when ``spot >= strike × 1.08``. Rule B fires when ``|delta| >= 0.80``
    or, without a delta, when moneyness exceeds 5%. Either rule means ROLL;
    otherwise a position within 5 days of expiry is LET_EXPIRE, and anything else is
    HOLD. Nothing is remembered between calls.
    """
    settings = settings or get_settings()
    strike = position.strike
    moneyness = moneyness_pct(spot, strike)
    delta = quote.delta if quote is not None else None

    rule_a = _price_rule(spot, strike, settings)
    rule_b = _delta_rule(delta, moneyness, settings)
    days = max(position.days_to_expiry or 0, 0)

    if rule_a.triggered or rule_b.triggered:
        action: RollAction = "ROLL"
        conditional = "Roll immediately"
    elif days <= settings.let_expire_days:
        action = "LET_EXPIRE"
        conditional = f"Let expire on {position.expiry}"
    else:
        action = "HOLD"
        threshold = (strike * settings.roll_price_multiplier).quantize(
            CENT, rounding=ROUND_HALF_UP
        )
        conditional = (
            f"If {position.symbol} closes ≥ ${threshold} "
            f"or delta ≥ {settings.roll_delta_threshold}"
        )

    return RollDecision(
        action=action,
        rule_a=rule_a,
        rule_b=rule_b,
        moneyness_pct=(
            moneyness.quantize(CENT, rounding=ROUND_HALF_UP) if moneyness is not None else None
        ),
        conditional_trigger=conditional,
    )
