"""
Normalization of option quotes from the market-data vendor.

Two record shapes are accepted: the vendor's raw snapshot (``details``/``greeks``/
``day``/``last_quote`` sections) and the flattened quote the quote endpoint returns
(``ticker``/``strike``/``expiry``/``mid``/...). Both become an
:class:`~wheelflow.core.models.OptionQuote`, or a :class:`QuoteUnavailable` when no
price can be derived. Missing Greeks stay ``None``.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Literal, Mapping, Optional, Tuple, Union

from loguru import logger

from ..core.models import ContractKey, OptionQuote, Position, normalize_option_type
from ..core.parser import days_until, normalize_expiry, parse_decimal, parse_int, parse_text

FIXED_POINT_SCALE = Decimal("10000")
FIXED_POINT_MIN = Decimal("1000")
TWO = Decimal("2")

QuoteFailureReason = Literal["rate", "not_found", "other"]
UnavailableReason = Literal["no_price", "not_found", "rate", "other"]
PriceSource = Literal["bid_ask", "close", "mid"]

_OPTION_SYMBOL_PATTERN = re.compile(r"^(?:O:)?(?P<underlying>[A-Z.]+)\d{6}[CP]\d{8}$")


@dataclass(frozen=True)
class QuoteUnavailable:
    """A quote that could not be turned into a usable price."""

    reason: UnavailableReason
    message: str

    @property
    def retryable(self) -> bool:
        return self.reason == "rate"


@dataclass(frozen=True)
class QuoteResult:
    """Tagged outcome of fetching one position's quote."""

    success: bool
    quote: Optional[OptionQuote] = None
    error: Optional[str] = None
    reason: Optional[QuoteFailureReason] = None

    @classmethod
    def ok(cls, quote: OptionQuote) -> "QuoteResult":
        return cls(success=True, quote=quote)

    @classmethod
    def failed(cls, error: str, reason: QuoteFailureReason = "other") -> "QuoteResult":
        return cls(success=False, error=error, reason=reason)

    @property
    def retryable(self) -> bool:
        """Rate-limited failures can be retried; not-found and other errors cannot."""
        return not self.success and self.reason == "rate"


def _is_fixed_point(bid: Decimal, ask: Decimal) -> bool:
    """Vendor fixed-point prices are integral and implausibly large as dollars per share."""
    integral = bid == bid.to_integral_value() and ask == ask.to_integral_value()
    return integral and max(bid, ask) >= FIXED_POINT_MIN


def derive_mid(
    bid: Optional[Decimal],
    ask: Optional[Decimal],
    close: Optional[Decimal] = None,
    mid: Optional[Decimal] = None,
) -> Tuple[Optional[Decimal], PriceSource, Optional[Decimal], Optional[Decimal]]:
    """
    Return ``(mid, source, bid, ask)`` in dollars per share.

    Bid/ask are used when ``ask >= bid > 0``, after undoing the vendor's /10000
    fixed-point encoding when detected. Otherwise the day close is used, then a
    pre-computed mid. ``mid`` is ``None`` when no positive price is available.
    """
    if bid is not None and ask is not None and _is_fixed_point(bid, ask):
        logger.debug(f"Scaling fixed-point bid/ask {bid}/{ask} by {FIXED_POINT_SCALE}")
        bid = bid / FIXED_POINT_SCALE
        ask = ask / FIXED_POINT_SCALE

    if bid is not None and ask is not None and bid > 0 and ask >= bid:
        return (bid + ask) / TWO, "bid_ask", bid, ask
    if close is not None and close > 0:
        return close, "close", bid, ask
    if mid is not None and mid > 0:
        return mid, "mid", bid, ask
    return None, "bid_ask", bid, ask


def _underlying_from(record: Mapping[str, Any], option_symbol: str) -> str:
    underlying = record.get("underlying_asset") or {}
    if isinstance(underlying, Mapping) and underlying.get("ticker"):
        return parse_text(underlying.get("ticker")).upper()
    match = _OPTION_SYMBOL_PATTERN.match(option_symbol.upper())
    if match:
        return match.group("underlying")
    return option_symbol.upper()


def _section(record: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = record.get(name)
    return value if isinstance(value, Mapping) else {}


def _first(record: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        value = record.get(name)
        if value is not None:
            return value
    return None


def _flatten_snapshot(record: Mapping[str, Any], underlying: Optional[str]) -> Dict[str, Any]:
    details = _section(record, "details")
    greeks = _section(record, "greeks")
    day = _section(record, "day")
    last_quote = _section(record, "last_quote")
    option_symbol = parse_text(details.get("ticker"))
    return {
        "ticker": underlying or _underlying_from(record, option_symbol),
        "strike": details.get("strike_price"),
        "expiry": details.get("expiration_date"),
        "type": details.get("contract_type"),
        "bid": last_quote.get("bid"),
        "ask": last_quote.get("ask"),
        "close": day.get("close"),
        "mid": None,
        "dte": None,
        "delta": greeks.get("delta"),
        "gamma": greeks.get("gamma"),
        "theta": greeks.get("theta"),
        "vega": greeks.get("vega"),
        "iv": record.get("implied_volatility"),
        "open_interest": record.get("open_interest"),
        "day_volume": day.get("volume"),
        "last_updated": last_quote.get("last_updated"),
    }


def _flatten_quote(record: Mapping[str, Any], underlying: Optional[str]) -> Dict[str, Any]:
    return {
        "ticker": underlying or _first(record, "ticker", "symbol", "underlying"),
        "strike": record.get("strike"),
        "expiry": _first(record, "expiry", "expiration", "expiration_date"),
        "type": _first(record, "type", "option_type", "optionType", "contract_type"),
        "bid": record.get("bid"),
        "ask": record.get("ask"),
        "close": _first(record, "close", "last"),
        "mid": record.get("mid"),
        "dte": record.get("dte"),
        "delta": record.get("delta"),
        "gamma": record.get("gamma"),
        "theta": record.get("theta"),
        "vega": record.get("vega"),
        "iv": _first(record, "iv", "implied_volatility"),
        "open_interest": _first(record, "open_interest", "openInterest"),
        "day_volume": _first(record, "day_volume", "dayVolume", "volume"),
        "last_updated": _first(record, "last_updated", "lastUpdated"),
    }


def normalize_quote(
    raw: Union[OptionQuote, Mapping[str, Any], None],
    *,
    underlying: Optional[str] = None,
    as_of: Optional[date | datetime] = None,
) -> Union[OptionQuote, QuoteUnavailable]:
    """Convert a vendor or endpoint quote record into an :class:`OptionQuote`."""
    if isinstance(raw, OptionQuote):
        return raw
    if not isinstance(raw, Mapping):
        return QuoteUnavailable(reason="other", message="quote record is missing")

    fields = (
        _flatten_snapshot(raw, underlying) if "details" in raw else _flatten_quote(raw, underlying)
    )

    ticker = parse_text(fields["ticker"]).upper()
    strike = parse_decimal(fields["strike"])
    expiry, _ = normalize_expiry(fields["expiry"])
    try:
        option_type = normalize_option_type(fields["type"])
    except ValueError:
        option_type = None
    if not ticker or strike is None or not expiry or option_type is None:
        return QuoteUnavailable(reason="other", message="quote is missing contract details")

    mid, source, bid, ask = derive_mid(
        parse_decimal(fields["bid"]),
        parse_decimal(fields["ask"]),
        parse_decimal(fields["close"]),
        parse_decimal(fields["mid"]),
    )
    if mid is None:
        logger.warning(f"No usable price for {ticker} {strike} {expiry} {option_type}")
        return QuoteUnavailable(reason="no_price", message="no bid/ask or close price")

    dte = parse_int(fields["dte"])
    if dte is None:
        dte = days_until(expiry, as_of=as_of) or 0

    last_updated = parse_int(fields["last_updated"])
    if last_updated is None:
        last_updated = int(time.time() * 1000)

    return OptionQuote(
        ticker=ticker,
        strike=strike,
        expiry=expiry,
        option_type=option_type,
        dte=max(dte, 0),
        mid=mid,
        bid=bid,
        ask=ask,
        delta=parse_decimal(fields["delta"]),
        gamma=parse_decimal(fields["gamma"]),
        theta=parse_decimal(fields["theta"]),
        vega=parse_decimal(fields["vega"]),
        iv=parse_decimal(fields["iv"]),
        open_interest=parse_int(fields["open_interest"]),
        day_volume=parse_int(fields["day_volume"]),
        last_updated=last_updated,
        price_source=source,
    )


def _failure_reason(payload: Mapping[str, Any]) -> QuoteFailureReason:
    reason = parse_text(payload.get("reason")).lower()
    if reason == "rate":
        return "rate"
    if reason in {"not_found", "notfound"}:
        return "not_found"
    if "not found" in parse_text(payload.get("error")).lower():
        return "not_found"
    return "other"


def parse_quote_response(
    payload: Union[QuoteResult, Mapping[str, Any], None],
    *,
    as_of: Optional[date | datetime] = None,
) -> QuoteResult:
    """Convert a ``{success, quote | error, reason}`` boundary payload into a :class:`QuoteResult`."""
    if isinstance(payload, QuoteResult):
        return payload
    if not isinstance(payload, Mapping):
        return QuoteResult.failed("empty quote response")

    if not payload.get("success"):
        error = parse_text(payload.get("error")) or "quote request failed"
        return QuoteResult.failed(error, _failure_reason(payload))

    normalized = normalize_quote(payload.get("quote"), as_of=as_of)
    if isinstance(normalized, QuoteUnavailable):
        reason: QuoteFailureReason = (
            normalized.reason if normalized.reason in {"rate", "not_found"} else "other"
        )  # type: ignore[assignment]
        return QuoteResult.failed(normalized.message, reason)
    return QuoteResult.ok(normalized)


def index_quotes(
    results: Iterable[Union[QuoteResult, OptionQuote, Mapping[str, Any], None]],
) -> Dict[ContractKey, OptionQuote]:
    """
    Build a contract-key lookup from successful quotes; the first quote per key wins.

    Raw ``{success, quote | error, reason}`` mappings are parsed first, and failed
    results are skipped.
    """
    index: Dict[ContractKey, OptionQuote] = {}
    for item in results:
        if isinstance(item, Mapping):
            item = parse_quote_response(item)
        quote = item.quote if isinstance(item, QuoteResult) else item
        if quote is None:
            continue
        index.setdefault(quote.contract_key, quote)
    return index


def find_quote(index: Mapping[ContractKey, OptionQuote], position: Position) -> Optional[OptionQuote]:
    """Look up the quote for ``position`` using the normalized join key."""
    return index.get(position.contract_key)
