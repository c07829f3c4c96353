"""
Core data models for wheel position analytics.

Pydantic models describe the canonical shapes every other module works with:
normalized option legs, share lots, option quotes, price context, and technical
levels. All money and price fields are :class:`~decimal.Decimal`; Greeks are
optional and ``None`` means "not reported", never zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, computed_field, field_validator

from .parser import normalize_expiry

CONTRACT_MULTIPLIER = Decimal("100")
CENT = Decimal("0.01")

OptionType = Literal["CALL", "PUT"]
Direction = Literal["LONG", "SHORT"]
WarningKind = Literal["missing_data", "unparseable_date", "unit_ambiguity", "direction_conflict"]

RANGE_DAYS = {
    "5-min": 1,
    "15-min": 3,
    "30-min": 5,
    "1-hour": 10,
    "4-hour": 30,
    "Daily": 180,
    "Weekly": 365 * 2,
}
DEFAULT_TIMEFRAME = "4-hour"


def normalize_option_type(value: object) -> str:
    """Map ``C``/``call``/``Put``... onto ``CALL``/``PUT``."""
    text = str(value or "").strip().upper()
    if text in {"C", "CALL", "CALLS"}:
        return "CALL"
    if text in {"P", "PUT", "PUTS"}:
        return "PUT"
    raise ValueError('option_type must be "CALL" or "PUT"')


def direction_for(contracts: int) -> str:
    """Short when contracts were sold (negative count), long otherwise."""
    return "SHORT" if contracts < 0 else "LONG"


@dataclass(frozen=True)
class NormalizationWarning:
    """A recoverable data problem recorded while normalizing a raw record."""

    kind: WarningKind
    field: str
    message: str
    raw_value: Optional[str] = None


@dataclass(frozen=True)
class ContractKey:
    """Join key shared by positions, quotes, and cache entries."""

    symbol: str
    strike: Decimal
    expiry: str
    option_type: str

    @classmethod
    def build(
        cls, symbol: str, strike: Decimal, expiry: str, option_type: str
    ) -> "ContractKey":
        """Normalize each component so differently formatted sources compare equal."""
        normalized_expiry, _ = normalize_expiry(expiry)
        return cls(
            symbol=(symbol or "").strip().upper(),
            strike=Decimal(strike).quantize(CENT, rounding=ROUND_HALF_UP),
            expiry=normalized_expiry,
            option_type=normalize_option_type(option_type),
        )

    @property
    def cache_key(self) -> str:
        strike_text = format(self.strike.normalize(), "f")
        return f"{self.symbol}-{strike_text}-{self.expiry}-{self.option_type}"

    def __str__(self) -> str:
        return self.cache_key


class Position(BaseModel):
    """A normalized option leg with totals expressed in dollars for the whole position."""

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(..., description="Underlying symbol (e.g., 'NVDA')")
    strike: Decimal = Field(..., description="Strike price")
    expiry: str = Field(..., description="Expiration date (YYYY-MM-DD when parsed)")
    option_type: OptionType = Field(..., description="'CALL' or 'PUT'")
    contracts: int = Field(..., description="Signed contract count; negative when sold")
    direction: Direction = Field(
        default="LONG",
        validate_default=True,
        description="Derived from the sign of contracts",
    )
    premium_collected: Decimal = Field(
        Decimal("0"), description="Total premium for all contracts, in dollars"
    )
    current_value: Decimal = Field(
        Decimal("0"), description="Total mark value for all contracts, in dollars"
    )
    days_to_expiry: Optional[int] = Field(None, description="Calendar days until expiration")
    expiry_parsed: bool = Field(True, description="False when expiry is not ISO formatted")
    warnings: Tuple[NormalizationWarning, ...] = Field(default=())

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v):
        return v.strip().upper()

    @field_validator("option_type", mode="before")
    @classmethod
    def validate_option_type(cls, v):
        return normalize_option_type(v)

    @field_validator("direction", mode="before")
    @classmethod
    def derive_direction(cls, v, info: ValidationInfo):
        contracts = info.data.get("contracts")
        if contracts is None:
            return v
        return direction_for(contracts)

    @field_validator("premium_collected", "current_value")
    @classmethod
    def validate_totals(cls, v):
        return abs(v)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def premium_unit(self) -> str:
        """Unit tag emitted on dumps so re-normalization never rescales."""
        return "total"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def value_unit(self) -> str:
        return "total"

    @property
    def contract_count(self) -> int:
        """Unsigned number of contracts."""
        return abs(self.contracts)

    @property
    def is_short(self) -> bool:
        return self.contracts < 0

    @property
    def contract_key(self) -> ContractKey:
        return ContractKey.build(self.symbol, self.strike, self.expiry, self.option_type)


class SharePosition(BaseModel):
    """A share lot with a per-share cost basis."""

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(..., description="Stock symbol")
    quantity: Decimal = Field(..., description="Signed share count")
    cost_basis: Decimal = Field(..., description="Purchase price per share")
    cost_basis_source: Literal["reported", "spot_fallback"] = "reported"
    warnings: Tuple[NormalizationWarning, ...] = Field(default=())

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v):
        return v.strip().upper()


class OptionQuote(BaseModel):
    """Canonical snapshot of a single option contract's market data."""

    model_config = ConfigDict(frozen=True)

    ticker: str
    strike: Decimal
    expiry: str
    option_type: OptionType
    dte: int = Field(0, ge=0)
    mid: Decimal = Field(..., description="Dollars per share")
    bid: Optional[Decimal] = None
    ask: Optional[Decimal] = None
    delta: Optional[Decimal] = None
    gamma: Optional[Decimal] = None
    theta: Optional[Decimal] = None
    vega: Optional[Decimal] = None
    iv: Optional[Decimal] = None
    open_interest: Optional[int] = None
    day_volume: Optional[int] = None
    last_updated: int = Field(0, description="Epoch milliseconds")
    price_source: Literal["bid_ask", "close", "mid"] = "bid_ask"
    is_stale: bool = False

    @field_validator("ticker")
    @classmethod
    def validate_ticker(cls, v):
        return v.strip().upper()

    @field_validator("option_type", mode="before")
    @classmethod
    def validate_option_type(cls, v):
        return normalize_option_type(v)

    @property
    def contract_key(self) -> ContractKey:
        return ContractKey.build(self.ticker, self.strike, self.expiry, self.option_type)


class KeyLevel(BaseModel):
    """A support or resistance price level from technical analysis."""

    model_config = ConfigDict(frozen=True)

    price: Decimal
    level_type: Literal["SUPPORT", "RESISTANCE"]
    strength: Optional[str] = None

    @field_validator("level_type", mode="before")
    @classmethod
    def validate_level_type(cls, v):
        text = str(v or "").strip().upper()
        if text not in {"SUPPORT", "RESISTANCE"}:
            raise ValueError('level_type must be "Support" or "Resistance"')
        return text


class PriceContext(BaseModel):
    """Spot price observation used for a single analysis cycle."""

    model_config = ConfigDict(frozen=True)

    current: Optional[Decimal] = None
    open: Optional[Decimal] = None
    high: Optional[Decimal] = None
    low: Optional[Decimal] = None
    close: Optional[Decimal] = None
    volume: Optional[int] = None
    date: Optional[str] = None
    timeframe: str = DEFAULT_TIMEFRAME

    @property
    def range_days(self) -> int:
        """Lookback window implied by the chart timeframe."""
        return RANGE_DAYS.get(self.timeframe, 180)


__all__ = [
    "CENT",
    "CONTRACT_MULTIPLIER",
    "ContractKey",
    "Direction",
    "KeyLevel",
    "NormalizationWarning",
    "OptionQuote",
    "OptionType",
    "Position",
    "PriceContext",
    "RANGE_DAYS",
    "SharePosition",
    "WarningKind",
    "direction_for",
    "normalize_option_type",
]
