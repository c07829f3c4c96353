"""Wheel phase classification and strike-zone selection from technical levels."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, List, Literal, Mapping, Optional, Tuple, Union

from loguru import logger
from pydantic import ValidationError

from ..config import get_settings
from ..core.models import CENT, KeyLevel, PriceContext, SharePosition
from .positions import normalize_share_position

WheelPhase = Literal["COVERED_CALL", "CASH_SECURED_PUT"]

ZERO = Decimal("0")
TWO = Decimal("2")
HUNDRED = Decimal("100")
DEFAULT_VOLATILITY = Decimal("20")
IV_RANK_FLOOR = Decimal("20")
IV_RANK_CEILING = Decimal("80")


@dataclass(frozen=True)
class StrategyClassification:
    """Current wheel phase plus candidate strikes for the next short option."""

    phase: WheelPhase
    share_quantity: Decimal
    call_strike_zone: Tuple[Decimal, ...]
    put_strike_zone: Tuple[Decimal, ...]
    optimal_strike: Decimal
    supports: Tuple[KeyLevel, ...]
    resistances: Tuple[KeyLevel, ...]


def _coerce_level(level: Union[KeyLevel, Mapping[str, Any]]) -> Optional[KeyLevel]:
    if isinstance(level, KeyLevel):
        return level
    data = dict(level)
    if "level_type" not in data and "type" in data:
        data["level_type"] = data.pop("type")
    try:
        return KeyLevel.model_validate(data)
    except ValidationError:
        logger.warning(f"Skipping malformed key level {data!r}")
        return None


def split_levels(
    levels: Iterable[Union[KeyLevel, Mapping[str, Any]]],
) -> Tuple[Tuple[KeyLevel, ...], Tuple[KeyLevel, ...]]:
    """Return ``(supports, resistances)``: supports highest first, resistances lowest first."""
    parsed = [level for level in (_coerce_level(item) for item in levels) if level is not None]
    supports = sorted(
        (level for level in parsed if level.level_type == "SUPPORT"),
        key=lambda level: level.price,
        reverse=True,
    )
    resistances = sorted(
        (level for level in parsed if level.level_type == "RESISTANCE"),
        key=lambda level: level.price,
    )
    return tuple(supports), tuple(resistances)


def classify_strategy(
    shares: Iterable[Union[SharePosition, Mapping[str, Any]]],
    levels: Iterable[Union[KeyLevel, Mapping[str, Any]]],
    spot: Optional[Decimal],
    *,
    ticker: Optional[str] = None,
) -> StrategyClassification:
    """
    Classify the wheel phase and pick strike candidates around ``spot``.

    Owning shares means the next leg is a covered call; otherwise it is a
    cash-secured put. Call candidates are resistances above ``spot × 1.02`` (nearest
    first) and put candidates are supports below ``spot × 0.98`` (nearest first).
    The optimal strike is the nearest call candidate or the deepest put candidate,
    falling back to ``spot × 1.05`` / ``spot × 0.95`` when there are none.

    Without ``ticker`` every lot must belong to one symbol; mixed lots raise
    :class:`ValueError` rather than pooling shares across tickers.
    """
    settings = get_settings()
    price = spot if spot is not None else ZERO
    target = (ticker or "").strip().upper()

    lots: List[SharePosition] = [normalize_share_position(raw, spot) for raw in shares]
    if target:
        lots = [lot for lot in lots if lot.symbol == target]
    else:
        symbols = sorted({lot.symbol for lot in lots})
        if len(symbols) > 1:
            raise ValueError(
                f"share lots span several symbols ({', '.join(symbols)}); pass ticker="
            )
    quantity = sum((lot.quantity for lot in lots), ZERO)
    phase: WheelPhase = "COVERED_CALL" if quantity > ZERO else "CASH_SECURED_PUT"

    supports, resistances = split_levels(levels)
    call_zone = tuple(
        level.price for level in resistances if level.price > price * settings.call_zone_factor
    )
    put_zone = tuple(
        level.price for level in supports if level.price < price * settings.put_zone_factor
    )

    if phase == "COVERED_CALL":
        optimal = call_zone[0] if call_zone else price * settings.default_call_strike_factor
    else:
        optimal = put_zone[-1] if put_zone else price * settings.default_put_strike_factor

    logger.debug(
        f"Strategy {target or '*'}: {phase} shares={quantity} optimal={optimal} "
        f"calls={len(call_zone)} puts={len(put_zone)}"
    )
    return StrategyClassification(
        phase=phase,
        share_quantity=quantity,
        call_strike_zone=call_zone,
        put_strike_zone=put_zone,
        optimal_strike=optimal.quantize(CENT, rounding=ROUND_HALF_UP),
        supports=supports,
        resistances=resistances,
    )


def estimate_volatility(price_context: Optional[PriceContext]) -> Decimal:
    """Range-based volatility proxy: ``(high - low) / midpoint × 100``, 20 when unknown."""
    if price_context is None:
        return DEFAULT_VOLATILITY
    high = price_context.high or ZERO
    low = price_context.low or ZERO
    midpoint = (high + low) / TWO
    if midpoint <= ZERO:
        return DEFAULT_VOLATILITY
    return (high - low) / midpoint * HUNDRED


def estimate_iv_rank(volatility: Decimal) -> Decimal:
    """Clamp ``volatility × 2`` into the 20-80 band."""
    return min(max(volatility * TWO, IV_RANK_FLOOR), IV_RANK_CEILING)
