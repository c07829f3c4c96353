"""
Single-ticker wheel analysis.

Ties the normalizers, metrics, aggregation, strategy classifier, and roll-trigger
evaluator together for one underlying. The portfolio input is the raw extraction
payload (share lots, option legs, cash); every record is normalized here and a
record that cannot be read is skipped with a warning instead of failing the run.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from loguru import logger

from ..core.models import (
    CENT,
    KeyLevel,
    NormalizationWarning,
    OptionQuote,
    Position,
    PriceContext,
    SharePosition,
)
from ..core.parser import parse_decimal, parse_text
from .aggregation import PortfolioMetrics, aggregate
from .metrics import CalculatedMetrics, calculate_metrics
from .positions import normalize_position, normalize_share_position, resolve_cost_basis
from .quotes import QuoteResult, find_quote, index_quotes
from .roll_triggers import RollDecision, evaluate_roll_trigger
from .strategy import StrategyClassification, classify_strategy, estimate_iv_rank, estimate_volatility

ZERO = Decimal("0")


@dataclass(frozen=True)
class PositionAnalysis:
    """Metrics and roll decision for one option leg."""

    metrics: CalculatedMetrics
    roll: Optional[RollDecision]


@dataclass(frozen=True)
class WheelAnalysis:
    """Everything the dashboard shows for one ticker in one analysis cycle."""

    ticker: str
    spot: Optional[Decimal]
    share_quantity: Decimal
    cost_basis: Optional[Decimal]
    cost_basis_from_spot: bool
    cash_balance: Decimal
    stock_value: Decimal
    stock_unrealized_pnl: Decimal
    total_value: Decimal
    positions: Tuple[PositionAnalysis, ...]
    portfolio: PortfolioMetrics
    strategy: StrategyClassification
    total_mark_pnl: Decimal
    total_wheel_pnl: Decimal
    volatility_estimate: Decimal
    iv_rank: Decimal
    warnings: Tuple[NormalizationWarning, ...]


def matches_ticker(symbol: Any, ticker: str) -> bool:
    """Exact symbol match, or an option description that starts with ``"TICKER "``."""
    text = parse_text(symbol).upper()
    return text == ticker or text.startswith(f"{ticker} ")


def _option_records(portfolio: Mapping[str, Any]) -> Sequence[Any]:
    for key in ("option_positions", "optionPositions"):
        if portfolio.get(key):
            return portfolio[key]
    metadata = portfolio.get("metadata") or {}
    if isinstance(metadata, Mapping):
        return metadata.get("option_positions") or metadata.get("optionPositions") or []
    return []


def _first_present(portfolio: Mapping[str, Any], *keys: str) -> Optional[Decimal]:
    for key in keys:
        value = parse_decimal(portfolio.get(key))
        if value is not None:
            return value
    return None


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _skipped(field: str, record: Any, exc: Exception) -> NormalizationWarning:
    logger.warning(f"Skipping unreadable {field} record {record!r}: {exc}")
    return NormalizationWarning(
        kind="missing_data",
        field=field,
        message=f"record skipped: {exc}",
        raw_value=parse_text(repr(record))[:120],
    )


def analyze_wheel(
    ticker: str,
    portfolio: Optional[Mapping[str, Any]],
    *,
    price_context: Optional[PriceContext] = None,
    levels: Iterable[Union[KeyLevel, Mapping[str, Any]]] = (),
    quotes: Iterable[Union[QuoteResult, OptionQuote, None]] = (),
    as_of: Optional[date | datetime] = None,
) -> WheelAnalysis:
    """Analyze the shares and option legs held for ``ticker``."""
    target = ticker.strip().upper()
    portfolio = portfolio or {}
    spot = price_context.current if price_context is not None else None
    price = spot if spot is not None else ZERO
    warnings: List[NormalizationWarning] = []

    shares: List[SharePosition] = []
    for record in portfolio.get("positions") or []:
        try:
            if parse_text(_field(record, "symbol")).upper() != target:
                continue
            lot = normalize_share_position(record, spot)
        except (TypeError, ValueError) as exc:
            warnings.append(_skipped("positions", record, exc))
            continue
        shares.append(lot)
        warnings.extend(lot.warnings)

    options: List[Position] = []
    for record in _option_records(portfolio):
        try:
            if not matches_ticker(_field(record, "symbol"), target):
                continue
            position = normalize_position(record, as_of=as_of)
        except (TypeError, ValueError) as exc:
            warnings.append(_skipped("option_positions", record, exc))
            continue
        options.append(position)
        warnings.extend(position.warnings)

    cost_basis, from_spot = resolve_cost_basis(shares, target, spot)
    quote_list = list(quotes)
    index = index_quotes(quote_list)

    analyses: List[PositionAnalysis] = []
    for position in options:
        quote = find_quote(index, position)
        metrics = calculate_metrics(position, quote, spot, cost_basis)
        roll = evaluate_roll_trigger(position, quote, spot) if spot is not None else None
        analyses.append(PositionAnalysis(metrics=metrics, roll=roll))

    quantity = sum((lot.quantity for lot in shares), ZERO)
    stock_value = quantity * price
    stock_unrealized = (price - cost_basis) * quantity if cost_basis is not None else ZERO
    cash = _first_present(portfolio, "cash_balance", "cashBalance") or ZERO
    total_value = _first_present(portfolio, "total_value", "totalValue")
    if total_value is None:
        total_value = cash + stock_value

    volatility = estimate_volatility(price_context)
    if spot is None:
        logger.warning(f"No spot price for {target}; roll triggers skipped")

    return WheelAnalysis(
        ticker=target,
        spot=spot,
        share_quantity=quantity,
        cost_basis=cost_basis,
        cost_basis_from_spot=from_spot,
        cash_balance=_cents(cash),
        stock_value=_cents(stock_value),
        stock_unrealized_pnl=_cents(stock_unrealized),
        total_value=_cents(total_value),
        positions=tuple(analyses),
        portfolio=aggregate(options, quote_list),
        strategy=classify_strategy(shares, levels, spot, ticker=target),
        total_mark_pnl=sum((item.metrics.mark_to_market_pnl for item in analyses), ZERO),
        total_wheel_pnl=sum((item.metrics.wheel_pnl for item in analyses), ZERO),
        volatility_estimate=_cents(volatility),
        iv_rank=_cents(estimate_iv_rank(volatility)),
        warnings=tuple(warnings),
    )


def _field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name) or record.get("ticker")
    value = getattr(record, name, None)
    if value is None:
        raise TypeError(f"expected a mapping, got {type(record).__name__}")
    return value
