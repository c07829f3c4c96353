"""
wheelflow - Wheel strategy position analytics.

Normalizes extracted broker positions and vendor option quotes, then computes
P&L, portfolio roll-ups, wheel phase, and roll triggers.
"""

__version__ = "0.1.0"

from .config import AnalyticsSettings, configure_logging, get_settings
from .core.models import (
    ContractKey,
    KeyLevel,
    NormalizationWarning,
    OptionQuote,
    Position,
    PriceContext,
    SharePosition,
)
from .services.aggregation import PortfolioMetrics, aggregate
from .services.analysis import WheelAnalysis, analyze_wheel
from .services.metrics import CalculatedMetrics, calculate_metrics
from .services.positions import normalize_position, normalize_share_position
from .services.quotes import QuoteResult, QuoteUnavailable, normalize_quote
from .services.roll_triggers import RollDecision, evaluate_roll_trigger
from .services.strategy import StrategyClassification, classify_strategy

__all__ = [
    "AnalyticsSettings",
    "configure_logging",
    "get_settings",
    "ContractKey",
    "KeyLevel",
    "NormalizationWarning",
    "OptionQuote",
    "Position",
    "PriceContext",
    "SharePosition",
    "normalize_position",
    "normalize_share_position",
    "normalize_quote",
    "QuoteResult",
    "QuoteUnavailable",
    "calculate_metrics",
    "CalculatedMetrics",
    "aggregate",
    "PortfolioMetrics",
    "classify_strategy",
    "StrategyClassification",
    "evaluate_roll_trigger",
    "RollDecision",
    "analyze_wheel",
    "WheelAnalysis",
]
