"""
Portfolio and ticker roll-ups of option legs.

Quotes are matched to positions by :class:`~wheelflow.core.models.ContractKey`, so
the order of the quote list does not matter and a failed fetch simply leaves a
position on its last-known value. Unknown deltas are skipped, never averaged in
as zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from loguru import logger

from ..core.models import CENT, CONTRACT_MULTIPLIER, OptionQuote, Position
from .metrics import cost_to_close
from .positions import normalize_position
from .quotes import QuoteResult, find_quote, index_quotes

ZERO = Decimal("0")
HUNDRED = Decimal("100")
DELTA_PLACES = Decimal("0.0001")

BUCKETS: Tuple[Tuple[str, str, Optional[int]], ...] = (
    ("30-days", "Next 30 Days", 30),
    ("90-days", "Next 31-90 Days", 90),
    ("long-term", "Long Term (90+ Days)", None),
)

PositionInput = Union[Position, Mapping[str, Any]]
QuoteInput = Union[QuoteResult, OptionQuote, Mapping[str, Any], None]


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TimeBucket:
    """Positions expiring within one days-to-expiry band."""

    key: str
    label: str
    latest_expiry: str
    contract_keys: Tuple[str, ...]
    total_premium_collected: Decimal
    total_shares_at_risk: int
    total_cost_to_close: Decimal
    net_pnl: Decimal
    avg_assignment_probability: Optional[Decimal]


@dataclass(frozen=True)
class TickerTotals:
    """Per-underlying totals across all of its option legs."""

    symbol: str
    contracts: int
    position_count: int
    total_premium_collected: Decimal
    total_cost_to_close: Decimal
    net_pnl: Decimal
    weighted_delta: Optional[Decimal]


@dataclass(frozen=True)
class PortfolioMetrics:
    """Portfolio-wide roll-up of premium, cost to close, P&L, and delta exposure."""

    total_premium_collected: Decimal
    total_cost_to_close: Decimal
    net_unrealized_pnl: Decimal
    unrealized_pnl_pct: Decimal
    net_premium_remaining: Decimal
    weighted_delta: Optional[Decimal]
    position_count: int
    quoted_count: int
    degraded_keys: Tuple[str, ...]
    by_ticker: Tuple[TickerTotals, ...]
    time_buckets: Tuple[TimeBucket, ...]


@dataclass(frozen=True)
class _Leg:
    position: Position
    quote: Optional[OptionQuote]
    cost: Decimal

    @property
    def signed_pnl(self) -> Decimal:
        pnl = self.position.premium_collected - self.cost
        return pnl if self.position.is_short else -pnl


class _DeltaAverage:
    """Contract-weighted delta over legs that actually report one."""

    def __init__(self) -> None:
        self.weighted = ZERO
        self.contracts = 0

    def add(self, leg: _Leg) -> None:
        if leg.quote is None or leg.quote.delta is None:
            return
        count = leg.position.contract_count
        self.weighted += leg.quote.delta * Decimal(count)
        self.contracts += count

    def result(self) -> Optional[Decimal]:
        if self.contracts == 0:
            return None
        return (self.weighted / Decimal(self.contracts)).quantize(
            DELTA_PLACES, rounding=ROUND_HALF_UP
        )


def _build_legs(positions: Iterable[PositionInput], quotes: Iterable[QuoteInput]) -> List[_Leg]:
    index = index_quotes(quotes)
    legs: List[_Leg] = []
    for raw in positions:
        position = normalize_position(raw)
        quote = find_quote(index, position)
        legs.append(_Leg(position=position, quote=quote, cost=cost_to_close(position, quote)))
    return legs


def _bucket_key(days_to_expiry: Optional[int]) -> str:
    days = max(days_to_expiry or 0, 0)
    for key, _, upper in BUCKETS:
        if upper is None or days <= upper:
            return key
    return BUCKETS[-1][0]


def _summarize_bucket(key: str, label: str, legs: Sequence[_Leg]) -> TimeBucket:
    premium = sum((leg.position.premium_collected for leg in legs), ZERO)
    cost = sum((leg.cost for leg in legs), ZERO)
    net = sum((leg.signed_pnl for leg in legs), ZERO)
    shares = sum(leg.position.contract_count for leg in legs) * int(CONTRACT_MULTIPLIER)

    deltas = [
        abs(leg.quote.delta) for leg in legs if leg.quote is not None and leg.quote.delta is not None
    ]
    avg_probability = (
        (sum(deltas, ZERO) / Decimal(len(deltas))).quantize(DELTA_PLACES, rounding=ROUND_HALF_UP)
        if deltas
        else None
    )

    parsed = [leg.position.expiry for leg in legs if leg.position.expiry_parsed]
    latest_expiry = max(parsed) if parsed else legs[0].position.expiry

    return TimeBucket(
        key=key,
        label=label,
        latest_expiry=latest_expiry,
        contract_keys=tuple(str(leg.position.contract_key) for leg in legs),
        total_premium_collected=_cents(premium),
        total_shares_at_risk=shares,
        total_cost_to_close=_cents(cost),
        net_pnl=_cents(net),
        avg_assignment_probability=avg_probability,
    )


def _group_legs(legs: Sequence[_Leg]) -> Tuple[TimeBucket, ...]:
    grouped: Dict[str, List[_Leg]] = {key: [] for key, _, _ in BUCKETS}
    for leg in legs:
        grouped[_bucket_key(leg.position.days_to_expiry)].append(leg)
    return tuple(
        _summarize_bucket(key, label, grouped[key]) for key, label, _ in BUCKETS if grouped[key]
    )


def _ticker_totals(legs: Sequence[_Leg]) -> Tuple[TickerTotals, ...]:
    by_symbol: Dict[str, List[_Leg]] = {}
    for leg in legs:
        by_symbol.setdefault(leg.position.symbol, []).append(leg)

    totals: List[TickerTotals] = []
    for symbol in sorted(by_symbol):
        symbol_legs = by_symbol[symbol]
        delta = _DeltaAverage()
        for leg in symbol_legs:
            delta.add(leg)
        totals.append(
            TickerTotals(
                symbol=symbol,
                contracts=sum(leg.position.contracts for leg in symbol_legs),
                position_count=len(symbol_legs),
                total_premium_collected=_cents(
                    sum((leg.position.premium_collected for leg in symbol_legs), ZERO)
                ),
                total_cost_to_close=_cents(sum((leg.cost for leg in symbol_legs), ZERO)),
                net_pnl=_cents(sum((leg.signed_pnl for leg in symbol_legs), ZERO)),
                weighted_delta=delta.result(),
            )
        )
    return tuple(totals)


def group_by_time_bucket(
    positions: Iterable[PositionInput], quotes: Iterable[QuoteInput] = ()
) -> Tuple[TimeBucket, ...]:
    """
    Split positions into the ``30-days``, ``90-days``, and ``long-term`` bands.

    Buckets come back in that fixed order and only when non-empty. A missing or
    negative days-to-expiry counts as 0, so such positions land in ``30-days``.
    """
    return _group_legs(_build_legs(positions, quotes))


def aggregate_by_ticker(
    positions: Iterable[PositionInput], quotes: Iterable[QuoteInput] = ()
) -> Tuple[TickerTotals, ...]:
    """Per-symbol totals, sorted by symbol."""
    return _ticker_totals(_build_legs(positions, quotes))


def aggregate(
    positions: Iterable[PositionInput], quotes: Iterable[QuoteInput] = ()
) -> PortfolioMetrics:
    """
    Roll option legs up into :class:`PortfolioMetrics`.

    Positions without a successful quote keep their last-known ``current_value`` as
    cost to close and are listed in ``degraded_keys``. Net unrealized P&L signs each
    leg by direction: premium minus cost to close for shorts, the reverse for longs.
    """
    legs = _build_legs(positions, quotes)

    premium = sum((leg.position.premium_collected for leg in legs), ZERO)
    cost = sum((leg.cost for leg in legs), ZERO)
    net = sum((leg.signed_pnl for leg in legs), ZERO)
    delta = _DeltaAverage()
    for leg in legs:
        delta.add(leg)

    degraded = tuple(str(leg.position.contract_key) for leg in legs if leg.quote is None)
    if degraded:
        logger.warning(
            f"{len(degraded)} of {len(legs)} positions valued without a quote: {', '.join(degraded)}"
        )

    pnl_pct = net / premium * HUNDRED if premium > ZERO else ZERO

    return PortfolioMetrics(
        total_premium_collected=_cents(premium),
        total_cost_to_close=_cents(cost),
        net_unrealized_pnl=_cents(net),
        unrealized_pnl_pct=_cents(pnl_pct),
        net_premium_remaining=_cents(max(ZERO, cost - premium)),
        weighted_delta=delta.result(),
        position_count=len(legs),
        quoted_count=len(legs) - len(degraded),
        degraded_keys=degraded,
        by_ticker=_ticker_totals(legs),
        time_buckets=_group_legs(legs),
    )
