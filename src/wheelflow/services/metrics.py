"""Per-position valuation: intrinsic/extrinsic split, mark-to-market and wheel P&L."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Literal, Optional, Tuple

from loguru import logger

from ..core.models import CENT, CONTRACT_MULTIPLIER, ContractKey, OptionQuote, Position

ZERO = Decimal("0")
HUNDRED = Decimal("100")

MarkSource = Literal["quote", "position"]


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CalculatedMetrics:
    """Derived valuation for one option leg; recomputed every analysis cycle."""

    contract_key: ContractKey
    symbol: str
    option_type: str
    contracts: int
    direction: str
    days_to_expiry: Optional[int]
    premium_collected: Decimal
    current_value: Decimal
    mark_source: MarkSource
    intrinsic_value: Decimal
    extrinsic_value: Decimal
    mark_to_market_pnl: Decimal
    assignment_profit: Decimal
    wheel_pnl: Decimal
    cycle_return_pct: Decimal
    delta: Optional[Decimal] = None
    gamma: Optional[Decimal] = None
    theta: Optional[Decimal] = None
    vega: Optional[Decimal] = None
    iv: Optional[Decimal] = None
    degraded: bool = False
    degraded_reasons: Tuple[str, ...] = ()


def _position_multiplier(position: Position) -> Decimal:
    return CONTRACT_MULTIPLIER * Decimal(position.contract_count)


def cost_to_close(position: Position, quote: Optional[OptionQuote]) -> Decimal:
    """Total dollars to buy back (or sell out) the position right now, unrounded."""
    if quote is None:
        return position.current_value
    return quote.mid * _position_multiplier(position)


def intrinsic_per_share(option_type: str, strike: Decimal, spot: Decimal) -> Decimal:
    if option_type == "CALL":
        return max(ZERO, spot - strike)
    return max(ZERO, strike - spot)


def calculate_metrics(
    position: Position,
    quote: Optional[OptionQuote],
    spot: Optional[Decimal],
    cost_basis: Optional[Decimal],
) -> CalculatedMetrics:
    """
    Value ``position`` against the latest quote, spot price, and share cost basis.

    Without a quote the position's last-known ``current_value`` is used as the mark
    and the result is flagged ``degraded``; Greeks then stay ``None``. Without a
    spot price the whole mark is treated as intrinsic. A missing cost basis zeroes
    assignment profit and cycle return instead of failing. Every money field is
    rounded to cents only after the arithmetic is done.
    """
    multiplier = _position_multiplier(position)
    reasons: List[str] = []

    current_value = cost_to_close(position, quote)
    mark_source: MarkSource = "quote" if quote is not None else "position"
    if quote is None:
        reasons.append("no quote; using last-known position value")

    if spot is None:
        reasons.append("no spot price; intrinsic set to current value")
        intrinsic = current_value
    else:
        intrinsic = intrinsic_per_share(position.option_type, position.strike, spot) * multiplier
    extrinsic = max(ZERO, current_value - intrinsic)

    sign = Decimal(1) if position.is_short else Decimal(-1)
    mark_to_market = (position.premium_collected - current_value) * sign

    assignment_profit = ZERO
    cycle_return = ZERO
    if cost_basis is None:
        reasons.append("no cost basis; assignment profit and cycle return set to 0")
    elif position.option_type == "CALL":
        assignment_profit = (position.strike - cost_basis) * multiplier
    wheel_pnl = position.premium_collected + assignment_profit

    if cost_basis is not None:
        capital_at_risk = cost_basis * multiplier
        if capital_at_risk != ZERO:
            cycle_return = wheel_pnl / capital_at_risk * HUNDRED

    if reasons:
        logger.debug(f"Degraded metrics for {position.contract_key}: {'; '.join(reasons)}")

    return CalculatedMetrics(
        contract_key=position.contract_key,
        symbol=position.symbol,
        option_type=position.option_type,
        contracts=position.contracts,
        direction=position.direction,
        days_to_expiry=position.days_to_expiry,
        premium_collected=_cents(position.premium_collected),
        current_value=_cents(current_value),
        mark_source=mark_source,
        intrinsic_value=_cents(intrinsic),
        extrinsic_value=_cents(extrinsic),
        mark_to_market_pnl=_cents(mark_to_market),
        assignment_profit=_cents(assignment_profit),
        wheel_pnl=_cents(wheel_pnl),
        cycle_return_pct=_cents(cycle_return),
        delta=quote.delta if quote is not None else None,
        gamma=quote.gamma if quote is not None else None,
        theta=quote.theta if quote is not None else None,
        vega=quote.vega if quote is not None else None,
        iv=quote.iv if quote is not None else None,
        degraded=bool(reasons),
        degraded_reasons=tuple(reasons),
    )
