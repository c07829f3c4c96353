"""Core data models and parsing functionality."""

from .models import (
    ContractKey,
    KeyLevel,
    NormalizationWarning,
    OptionQuote,
    Position,
    PriceContext,
    SharePosition,
)
from .parser import normalize_expiry, parse_decimal, parse_int

__all__ = [
    "ContractKey",
    "KeyLevel",
    "NormalizationWarning",
    "OptionQuote",
    "Position",
    "PriceContext",
    "SharePosition",
    "normalize_expiry",
    "parse_decimal",
    "parse_int",
]
