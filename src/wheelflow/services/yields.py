"""
Yield arithmetic for wheel cycles.

All inputs and outputs are :class:`~decimal.Decimal`; percentages are expressed
as ``12.5`` for 12.5%. These are planning estimates rather than pricing models.
"""

from __future__ import annotations

from decimal import Decimal

from ..core.models import CONTRACT_MULTIPLIER

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")
DAYS_PER_YEAR = Decimal("365")
DEFAULT_CYCLES_PER_YEAR = 9
ASSIGNMENT_DRAG = Decimal("0.3")

# (moneyness floor, base probability), checked top to bottom
_ASSIGNMENT_LADDER = (
    (Decimal("1.05"), Decimal("0.9")),
    (Decimal("1.02"), Decimal("0.7")),
    (Decimal("0.98"), Decimal("0.5")),
    (Decimal("0.95"), Decimal("0.3")),
)
_DEEP_OTM_PROBABILITY = Decimal("0.1")


def cycle_credit(mid: Decimal) -> Decimal:
    """Dollar credit for one contract sold at ``mid`` per share."""
    return mid * CONTRACT_MULTIPLIER


def gross_yield(credit: Decimal, shares: Decimal, price: Decimal, dte: int) -> Decimal:
    """Annualized return on ``shares × price`` of capital; 0 when any input is zero."""
    if shares == ZERO or price == ZERO or dte == 0:
        return ZERO
    period_return = credit / (shares * price)
    return period_return * DAYS_PER_YEAR / Decimal(dte) * HUNDRED


def compounded_return(gross: Decimal, cycles: int = DEFAULT_CYCLES_PER_YEAR) -> Decimal:
    """Compound ``gross`` split evenly over ``cycles`` per year."""
    if cycles <= 0:
        return ZERO
    per_cycle = gross / Decimal(cycles) / HUNDRED
    return ((ONE + per_cycle) ** cycles - ONE) * HUNDRED


def risk_adjusted_return(annual_return: Decimal, assignment_probability: Decimal) -> Decimal:
    return annual_return * (ONE - assignment_probability * ASSIGNMENT_DRAG)


def estimate_assignment_probability(spot: Decimal, strike: Decimal, dte: int) -> Decimal:
    """Moneyness ladder scaled up near expiry and down for long-dated contracts, capped at 1."""
    if strike <= ZERO:
        return ZERO
    if dte < 7:
        time_adjustment = Decimal("1.2")
    elif dte < 30:
        time_adjustment = ONE
    else:
        time_adjustment = Decimal("0.8")

    moneyness = spot / strike
    base = _DEEP_OTM_PROBABILITY
    for floor, probability in _ASSIGNMENT_LADDER:
        if moneyness > floor:
            base = probability
            break
    return min(base * time_adjustment, ONE)
