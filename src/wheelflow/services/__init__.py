"""Services for wheel position analytics."""

from .aggregation import (
    PortfolioMetrics,
    TickerTotals,
    TimeBucket,
    aggregate,
    aggregate_by_ticker,
    group_by_time_bucket,
)
from .analysis import PositionAnalysis, WheelAnalysis, analyze_wheel
from .display import format_contract_label, format_currency, format_expiry_label, format_percent
from .json_serializer import (
    serialize_decimal,
    serialize_metrics,
    serialize_portfolio_metrics,
    serialize_position,
    serialize_quote_result,
    serialize_roll_decision,
    serialize_wheel_analysis,
)
from .metrics import CalculatedMetrics, calculate_metrics, cost_to_close
from .positions import (
    RawPosition,
    RawSharePosition,
    classify_amount_unit,
    normalize_position,
    normalize_positions,
    normalize_share_position,
    resolve_cost_basis,
)
from .quote_cache import CacheStats, QuoteCache
from .quote_fetcher import PolygonQuoteClient, QuoteFetcher, QuoteFetchError
from .quotes import (
    QuoteResult,
    QuoteUnavailable,
    find_quote,
    index_quotes,
    normalize_quote,
    parse_quote_response,
)
from .roll_triggers import RollDecision, RuleOutcome, evaluate_roll_trigger
from .strategy import (
    StrategyClassification,
    classify_strategy,
    estimate_iv_rank,
    estimate_volatility,
)
from .yields import (
    compounded_return,
    cycle_credit,
    estimate_assignment_probability,
    gross_yield,
    risk_adjusted_return,
)

__all__ = [
    "normalize_quote",
    "parse_quote_response",
    "index_quotes",
    "find_quote",
    "QuoteResult",
    "QuoteUnavailable",
    "normalize_position",
    "normalize_positions",
    "classify_amount_unit",
    "normalize_share_position",
    "resolve_cost_basis",
    "RawPosition",
    "RawSharePosition",
    "calculate_metrics",
    "cost_to_close",
    "CalculatedMetrics",
    "aggregate",
    "group_by_time_bucket",
    "aggregate_by_ticker",
    "PortfolioMetrics",
    "TickerTotals",
    "TimeBucket",
    "classify_strategy",
    "estimate_volatility",
    "estimate_iv_rank",
    "StrategyClassification",
    "evaluate_roll_trigger",
    "RollDecision",
    "RuleOutcome",
    "cycle_credit",
    "gross_yield",
    "compounded_return",
    "risk_adjusted_return",
    "estimate_assignment_probability",
    "analyze_wheel",
    "WheelAnalysis",
    "PositionAnalysis",
    "QuoteCache",
    "CacheStats",
    "QuoteFetcher",
    "PolygonQuoteClient",
    "QuoteFetchError",
    "serialize_decimal",
    "serialize_position",
    "serialize_quote_result",
    "serialize_metrics",
    "serialize_portfolio_metrics",
    "serialize_roll_decision",
    "serialize_wheel_analysis",
    "format_currency",
    "format_percent",
    "format_expiry_label",
    "format_contract_label",
]
