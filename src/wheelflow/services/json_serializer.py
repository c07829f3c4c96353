"""JSON serialization utilities for wheel analytics results."""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..core.models import NormalizationWarning, OptionQuote, Position
from .aggregation import PortfolioMetrics, TickerTotals, TimeBucket
from .analysis import PositionAnalysis, WheelAnalysis
from .display import format_expiry_label
from .metrics import CalculatedMetrics
from .quotes import QuoteResult
from .roll_triggers import RollDecision, RuleOutcome
from .strategy import StrategyClassification


def serialize_decimal(value: Any) -> Any:
    """Serialize Decimal values to JSON-compatible format."""
    if isinstance(value, Decimal):
        normalized = value.normalize()
        return format(normalized, "f")
    return value


def _decimal_to_string(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return format(value, "f")


def serialize_warning(warning: NormalizationWarning) -> Dict[str, Any]:
    return {
        "kind": warning.kind,
        "field": warning.field,
        "message": warning.message,
        "raw_value": warning.raw_value,
    }


def serialize_position(position: Position) -> Dict[str, Any]:
    """Serialize a normalized position, keeping explicit unit tags for re-ingestion."""
    return {
        "symbol": position.symbol,
        "strike": serialize_decimal(position.strike),
        "expiry": position.expiry,
        "option_type": position.option_type,
        "contracts": position.contracts,
        "direction": position.direction,
        "premium_collected": _decimal_to_string(position.premium_collected),
        "premium_unit": position.premium_unit,
        "current_value": _decimal_to_string(position.current_value),
        "value_unit": position.value_unit,
        "days_to_expiry": position.days_to_expiry,
        "expiry_parsed": position.expiry_parsed,
        "warnings": [serialize_warning(warning) for warning in position.warnings],
    }


def serialize_quote(quote: OptionQuote) -> Dict[str, Any]:
    return {
        "ticker": quote.ticker,
        "strike": serialize_decimal(quote.strike),
        "expiry": quote.expiry,
        "type": quote.option_type,
        "dte": quote.dte,
        "mid": serialize_decimal(quote.mid),
        "bid": serialize_decimal(quote.bid),
        "ask": serialize_decimal(quote.ask),
        "delta": serialize_decimal(quote.delta),
        "gamma": serialize_decimal(quote.gamma),
        "theta": serialize_decimal(quote.theta),
        "vega": serialize_decimal(quote.vega),
        "iv": serialize_decimal(quote.iv),
        "open_interest": quote.open_interest,
        "day_volume": quote.day_volume,
        "last_updated": quote.last_updated,
        "price_source": quote.price_source,
        "is_stale": quote.is_stale,
    }


def serialize_quote_result(result: QuoteResult) -> Dict[str, Any]:
    """Render the ``{success, quote}`` / ``{success, error, reason}`` boundary shape."""
    if result.success and result.quote is not None:
        return {"success": True, "quote": serialize_quote(result.quote)}
    return {"success": False, "error": result.error, "reason": result.reason}


def serialize_metrics(metrics: CalculatedMetrics) -> Dict[str, Any]:
    """Serialize per-position metrics."""
    return {
        "contract_key": str(metrics.contract_key),
        "symbol": metrics.symbol,
        "option_type": metrics.option_type,
        "contracts": metrics.contracts,
        "direction": metrics.direction,
        "days_to_expiry": metrics.days_to_expiry,
        "premium_collected": _decimal_to_string(metrics.premium_collected),
        "current_value": _decimal_to_string(metrics.current_value),
        "mark_source": metrics.mark_source,
        "intrinsic_value": _decimal_to_string(metrics.intrinsic_value),
        "extrinsic_value": _decimal_to_string(metrics.extrinsic_value),
        "mark_to_market_pnl": _decimal_to_string(metrics.mark_to_market_pnl),
        "assignment_profit": _decimal_to_string(metrics.assignment_profit),
        "wheel_pnl": _decimal_to_string(metrics.wheel_pnl),
        "cycle_return_pct": _decimal_to_string(metrics.cycle_return_pct),
        "greeks": {
            "delta": serialize_decimal(metrics.delta),
            "gamma": serialize_decimal(metrics.gamma),
            "theta": serialize_decimal(metrics.theta),
            "vega": serialize_decimal(metrics.vega),
            "iv": serialize_decimal(metrics.iv),
        },
        "degraded": metrics.degraded,
        "degraded_reasons": list(metrics.degraded_reasons),
    }


def serialize_time_bucket(bucket: TimeBucket) -> Dict[str, Any]:
    return {
        "key": bucket.key,
        "label": bucket.label,
        "latest_expiry": bucket.latest_expiry,
        "latest_expiry_label": format_expiry_label(bucket.latest_expiry),
        "contract_keys": list(bucket.contract_keys),
        "total_premium_collected": _decimal_to_string(bucket.total_premium_collected),
        "total_shares_at_risk": bucket.total_shares_at_risk,
        "total_cost_to_close": _decimal_to_string(bucket.total_cost_to_close),
        "net_pnl": _decimal_to_string(bucket.net_pnl),
        "avg_assignment_probability": _decimal_to_string(bucket.avg_assignment_probability),
    }


def serialize_ticker_totals(totals: TickerTotals) -> Dict[str, Any]:
    return {
        "symbol": totals.symbol,
        "contracts": totals.contracts,
        "position_count": totals.position_count,
        "total_premium_collected": _decimal_to_string(totals.total_premium_collected),
        "total_cost_to_close": _decimal_to_string(totals.total_cost_to_close),
        "net_pnl": _decimal_to_string(totals.net_pnl),
        "weighted_delta": _decimal_to_string(totals.weighted_delta),
    }


def serialize_portfolio_metrics(metrics: PortfolioMetrics) -> Dict[str, Any]:
    """Serialize portfolio totals, ticker roll-ups, and time buckets."""
    return {
        "total_premium_collected": _decimal_to_string(metrics.total_premium_collected),
        "total_cost_to_close": _decimal_to_string(metrics.total_cost_to_close),
        "net_unrealized_pnl": _decimal_to_string(metrics.net_unrealized_pnl),
        "unrealized_pnl_pct": _decimal_to_string(metrics.unrealized_pnl_pct),
        "net_premium_remaining": _decimal_to_string(metrics.net_premium_remaining),
        "weighted_delta": _decimal_to_string(metrics.weighted_delta),
        "position_count": metrics.position_count,
        "quoted_count": metrics.quoted_count,
        "degraded_keys": list(metrics.degraded_keys),
        "by_ticker": [serialize_ticker_totals(totals) for totals in metrics.by_ticker],
        "time_buckets": [serialize_time_bucket(bucket) for bucket in metrics.time_buckets],
    }


def serialize_rule(rule: RuleOutcome) -> Dict[str, Any]:
    return {
        "triggered": rule.triggered,
        "threshold": serialize_decimal(rule.threshold),
        "current": serialize_decimal(rule.current),
        "detail": rule.detail,
    }


def serialize_roll_decision(decision: RollDecision) -> Dict[str, Any]:
    return {
        "action": decision.action,
        "rule_a": serialize_rule(decision.rule_a),
        "rule_b": serialize_rule(decision.rule_b),
        "moneyness_pct": _decimal_to_string(decision.moneyness_pct),
        "conditional_trigger": decision.conditional_trigger,
    }


def serialize_strategy(strategy: StrategyClassification) -> Dict[str, Any]:
    return {
        "phase": strategy.phase,
        "share_quantity": serialize_decimal(strategy.share_quantity),
        "call_strike_zone": [serialize_decimal(price) for price in strategy.call_strike_zone],
        "put_strike_zone": [serialize_decimal(price) for price in strategy.put_strike_zone],
        "optimal_strike": _decimal_to_string(strategy.optimal_strike),
    }


def _serialize_position_analysis(item: PositionAnalysis) -> Dict[str, Any]:
    payload = serialize_metrics(item.metrics)
    payload["roll"] = serialize_roll_decision(item.roll) if item.roll is not None else None
    return payload


def serialize_wheel_analysis(analysis: WheelAnalysis) -> Dict[str, Any]:
    """Serialize a full ticker analysis for the dashboard payload."""
    positions: List[Dict[str, Any]] = [
        _serialize_position_analysis(item) for item in analysis.positions
    ]
    return {
        "ticker": analysis.ticker,
        "spot": serialize_decimal(analysis.spot),
        "share_quantity": serialize_decimal(analysis.share_quantity),
        "cost_basis": serialize_decimal(analysis.cost_basis),
        "cost_basis_from_spot": analysis.cost_basis_from_spot,
        "cash_balance": _decimal_to_string(analysis.cash_balance),
        "stock_value": _decimal_to_string(analysis.stock_value),
        "stock_unrealized_pnl": _decimal_to_string(analysis.stock_unrealized_pnl),
        "total_value": _decimal_to_string(analysis.total_value),
        "positions": positions,
        "portfolio": serialize_portfolio_metrics(analysis.portfolio),
        "strategy": serialize_strategy(analysis.strategy),
        "total_mark_pnl": _decimal_to_string(analysis.total_mark_pnl),
        "total_wheel_pnl": _decimal_to_string(analysis.total_wheel_pnl),
        "volatility_estimate": _decimal_to_string(analysis.volatility_estimate),
        "iv_rank": _decimal_to_string(analysis.iv_rank),
        "warnings": [serialize_warning(warning) for warning in analysis.warnings],
    }


def dumps(payload: Dict[str, Any]) -> str:
    """Render a serialized payload as stable JSON text."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))
