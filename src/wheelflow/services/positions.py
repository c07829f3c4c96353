"""
Normalization of raw extracted option legs and share lots.

Positions reach wheelflow from screenshot extraction or CSV sniffing, so every
field is untrusted: strikes arrive as ``"$63.00"``, expiries as ``"Jul-18-2025"``,
and premiums sometimes per share and sometimes already multiplied out. The
helpers here turn those records into canonical :class:`~wheelflow.core.models.Position`
and :class:`~wheelflow.core.models.SharePosition` objects and record every
fallback they take as a :class:`~wheelflow.core.models.NormalizationWarning`.

Unit handling is the fragile part. Extractors should send an explicit
``premium_unit``/``value_unit`` tag (``"per_share"`` or ``"total"``); only when the
tag is absent does :func:`classify_amount_unit` fall back to the magnitude
heuristic, and each such guess is logged so totals can be audited later.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, List, Literal, Mapping, Optional, Tuple, Union

from loguru import logger
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ..config import get_settings
from ..core.models import (
    CONTRACT_MULTIPLIER,
    NormalizationWarning,
    Position,
    SharePosition,
    direction_for,
    normalize_option_type,
)
from ..core.parser import days_until, normalize_expiry, parse_decimal, parse_int, parse_text

AmountUnit = Literal["per_share", "total"]
ZERO = Decimal("0")

_UNIT_ALIASES = {
    "per_share": "per_share",
    "per-share": "per_share",
    "pershare": "per_share",
    "share": "per_share",
    "per_contract": "per_share",
    "total": "total",
    "position": "total",
}


class RawPosition(BaseModel):
    """Validated boundary record for an extracted option leg; values are parsed later."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    symbol: Any = Field(None, validation_alias=AliasChoices("symbol", "ticker", "underlying"))
    strike: Any = Field(None, validation_alias=AliasChoices("strike", "strike_price"))
    expiry: Any = Field(
        None, validation_alias=AliasChoices("expiry", "expiration", "expiration_date")
    )
    option_type: Any = Field(
        None, validation_alias=AliasChoices("option_type", "optionType", "type")
    )
    contracts: Any = Field(None, validation_alias=AliasChoices("contracts", "quantity"))
    direction: Any = Field(None, validation_alias=AliasChoices("direction", "position"))
    premium: Any = Field(
        None,
        validation_alias=AliasChoices("premium_collected", "premiumCollected", "premium"),
    )
    current_value: Any = Field(
        None,
        validation_alias=AliasChoices(
            "current_value", "currentValue", "market_value", "marketValue"
        ),
    )
    days_to_expiry: Any = Field(
        None, validation_alias=AliasChoices("days_to_expiry", "daysToExpiry", "dte")
    )
    premium_unit: Any = Field(
        None, validation_alias=AliasChoices("premium_unit", "premiumUnit")
    )
    value_unit: Any = Field(None, validation_alias=AliasChoices("value_unit", "valueUnit"))


class RawSharePosition(BaseModel):
    """Validated boundary record for an extracted share lot."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    symbol: Any = Field(None, validation_alias=AliasChoices("symbol", "ticker"))
    quantity: Any = Field(None, validation_alias=AliasChoices("quantity", "shares", "qty"))
    cost_basis: Any = Field(
        None,
        validation_alias=AliasChoices(
            "cost_basis",
            "costBasis",
            "purchase_price",
            "purchasePrice",
            "avg_cost",
            "avgCost",
        ),
    )


@dataclass(frozen=True)
class UnitDecision:
    """Outcome of classifying a raw amount as per-share or already-total."""

    unit: AmountUnit
    inferred: bool


def _explicit_unit(value: Any) -> Optional[AmountUnit]:
    text = parse_text(value).lower().replace(" ", "_")
    return _UNIT_ALIASES.get(text)  # type: ignore[return-value]


def classify_amount_unit(
    amount: Decimal,
    explicit_unit: Any = None,
    *,
    threshold: Optional[Decimal] = None,
) -> UnitDecision:
    """
    Decide whether ``amount`` is quoted per share or for the whole position.

    An explicit unit tag always wins. Without one, amounts whose magnitude is below
    ``threshold`` (``WHEELFLOW_PER_SHARE_THRESHOLD``, default 50) are treated as
    per-share prices. This is a best-effort policy, not a guarantee: a cheap
    one-contract position worth $30 in total is misread as per share.
    """
    unit = _explicit_unit(explicit_unit)
    if unit is not None:
        return UnitDecision(unit=unit, inferred=False)

    limit = get_settings().per_share_threshold if threshold is None else threshold
    if abs(amount) < limit:
        return UnitDecision(unit="per_share", inferred=True)
    return UnitDecision(unit="total", inferred=True)


def _to_total(amount: Decimal, unit: AmountUnit, contract_count: int) -> Decimal:
    if unit == "total":
        return abs(amount)
    return abs(amount) * CONTRACT_MULTIPLIER * Decimal(contract_count)


def _resolve_amount(
    field_name: str,
    raw_value: Any,
    explicit_unit: Any,
    contract_count: int,
    symbol: str,
    warnings: List[NormalizationWarning],
) -> Decimal:
    amount = parse_decimal(raw_value)
    if amount is None:
        if raw_value not in (None, ""):
            warnings.append(
                NormalizationWarning(
                    kind="missing_data",
                    field=field_name,
                    message=f"{field_name} is not numeric; using 0",
                    raw_value=parse_text(raw_value),
                )
            )
        return ZERO

    decision = classify_amount_unit(amount, explicit_unit)
    total = _to_total(amount, decision.unit, contract_count)
    if decision.unit == "per_share" and contract_count == 0 and amount != ZERO:
        warnings.append(
            NormalizationWarning(
                kind="missing_data",
                field=field_name,
                message=f"{field_name} is per share but the leg has no contracts; using 0",
                raw_value=str(amount),
            )
        )
    if decision.inferred and amount != ZERO:
        logger.info(
            f"Unit policy: {symbol} {field_name}={amount} treated as {decision.unit} "
            f"(total={total}); send {field_name.split('_')[0]}_unit to make this explicit"
        )
        warnings.append(
            NormalizationWarning(
                kind="unit_ambiguity",
                field=field_name,
                message=f"{field_name} inferred as {decision.unit} from magnitude",
                raw_value=str(amount),
            )
        )
    return total


def _resolve_option_type(raw_value: Any, warnings: List[NormalizationWarning]) -> str:
    try:
        return normalize_option_type(raw_value)
    except ValueError:
        warnings.append(
            NormalizationWarning(
                kind="missing_data",
                field="option_type",
                message="option type missing or unrecognized; assuming CALL",
                raw_value=parse_text(raw_value) or None,
            )
        )
        return "CALL"


def _check_direction(
    raw_direction: Any, contracts: int, warnings: List[NormalizationWarning]
) -> None:
    supplied = parse_text(raw_direction).upper()
    if not supplied:
        return
    derived = direction_for(contracts)
    if supplied in {"LONG", "SHORT"} and supplied != derived:
        logger.warning(
            f"Direction tag {supplied} contradicts contracts={contracts}; using {derived}"
        )
        warnings.append(
            NormalizationWarning(
                kind="direction_conflict",
                field="direction",
                message=f"supplied {supplied} contradicts signed contracts; using {derived}",
                raw_value=supplied,
            )
        )


def _underlying(symbol: str) -> str:
    """Reduce a descriptive option symbol such as ``"NVDA 63 CALL"`` to its ticker."""
    if " " not in symbol:
        return symbol
    ticker = symbol.split()[0]
    logger.debug(f"Option symbol {symbol!r} reduced to underlying {ticker}")
    return ticker


def normalize_position(
    raw: Union[Position, RawPosition, Mapping[str, Any]],
    *,
    as_of: Optional[date | datetime] = None,
) -> Position:
    """
    Convert a raw extracted option leg into a canonical :class:`Position`.

    Already-canonical positions are returned unchanged, so normalizing twice never
    scales premiums twice. Fallbacks (missing numbers, unparsed dates, inferred
    units, conflicting direction tags) are attached to ``Position.warnings``.
    """
    if isinstance(raw, Position):
        return raw
    record = raw if isinstance(raw, RawPosition) else RawPosition.model_validate(dict(raw))

    warnings: List[NormalizationWarning] = []
    symbol = _underlying(parse_text(record.symbol).upper())
    if not symbol:
        warnings.append(
            NormalizationWarning(kind="missing_data", field="symbol", message="symbol missing")
        )

    strike = parse_decimal(record.strike)
    if strike is None:
        warnings.append(
            NormalizationWarning(
                kind="missing_data",
                field="strike",
                message="strike missing or not numeric; using 0",
                raw_value=parse_text(record.strike) or None,
            )
        )
        strike = ZERO

    contracts = parse_int(record.contracts)
    if contracts is None:
        warnings.append(
            NormalizationWarning(
                kind="missing_data",
                field="contracts",
                message="contract count missing or not numeric; using 0",
                raw_value=parse_text(record.contracts) or None,
            )
        )
        contracts = 0
    _check_direction(record.direction, contracts, warnings)

    option_type = _resolve_option_type(record.option_type, warnings)

    expiry, expiry_parsed = normalize_expiry(record.expiry)
    if not expiry_parsed:
        logger.warning(f"Unparsed expiry {expiry!r} for {symbol}; passing through unchanged")
        warnings.append(
            NormalizationWarning(
                kind="unparseable_date",
                field="expiry",
                message="expiry is not ISO or Mon-DD-YYYY; kept as supplied",
                raw_value=expiry,
            )
        )

    contract_count = abs(contracts)
    premium = _resolve_amount(
        "premium_collected", record.premium, record.premium_unit, contract_count, symbol, warnings
    )
    current_value = _resolve_amount(
        "current_value", record.current_value, record.value_unit, contract_count, symbol, warnings
    )

    days_to_expiry = parse_int(record.days_to_expiry)
    if days_to_expiry is None and expiry_parsed:
        days_to_expiry = days_until(expiry, as_of=as_of)

    return Position(
        symbol=symbol,
        strike=strike,
        expiry=expiry,
        option_type=option_type,
        contracts=contracts,
        premium_collected=premium,
        current_value=current_value,
        days_to_expiry=days_to_expiry,
        expiry_parsed=expiry_parsed,
        warnings=tuple(warnings),
    )


def normalize_positions(
    records: Iterable[Union[Position, RawPosition, Mapping[str, Any]]],
    *,
    as_of: Optional[date | datetime] = None,
) -> List[Position]:
    """Normalize a batch of option legs, preserving input order."""
    return [normalize_position(record, as_of=as_of) for record in records]


def normalize_share_position(
    raw: Union[SharePosition, RawSharePosition, Mapping[str, Any]],
    spot: Optional[Decimal],
) -> SharePosition:
    """
    Convert a raw share lot into a :class:`SharePosition`.

    A missing or non-numeric cost basis falls back to ``spot`` and is flagged as
    ``spot_fallback``; it is never silently zero.
    """
    if isinstance(raw, SharePosition):
        return raw
    record = (
        raw if isinstance(raw, RawSharePosition) else RawSharePosition.model_validate(dict(raw))
    )

    warnings: List[NormalizationWarning] = []
    symbol = parse_text(record.symbol).upper()
    quantity = parse_decimal(record.quantity)
    if quantity is None:
        warnings.append(
            NormalizationWarning(
                kind="missing_data",
                field="quantity",
                message="share quantity missing or not numeric; using 0",
                raw_value=parse_text(record.quantity) or None,
            )
        )
        quantity = ZERO

    cost_basis = parse_decimal(record.cost_basis)
    source: Literal["reported", "spot_fallback"] = "reported"
    if cost_basis is None:
        source = "spot_fallback"
        cost_basis = spot if spot is not None else ZERO
        logger.info(f"Cost basis missing for {symbol}; falling back to spot {cost_basis}")
        warnings.append(
            NormalizationWarning(
                kind="missing_data",
                field="cost_basis",
                message="cost basis missing; using current spot price",
                raw_value=parse_text(record.cost_basis) or None,
            )
        )

    return SharePosition(
        symbol=symbol,
        quantity=quantity,
        cost_basis=cost_basis,
        cost_basis_source=source,
        warnings=tuple(warnings),
    )


def resolve_cost_basis(
    shares: Iterable[SharePosition], symbol: str, spot: Optional[Decimal]
) -> Tuple[Optional[Decimal], bool]:
    """
    Return ``(cost_basis, from_spot)`` for ``symbol``.

    Reported lots are averaged weighted by share count (the same way open lots roll up
    into a per-share basis); when none carry a reported basis the spot price is used.
    """
    target = (symbol or "").strip().upper()
    weighted = ZERO
    share_count = ZERO
    for lot in shares:
        if lot.symbol != target or lot.cost_basis_source != "reported":
            continue
        size = abs(lot.quantity)
        if size == ZERO:
            continue
        weighted += lot.cost_basis * size
        share_count += size

    if share_count > ZERO:
        return weighted / share_count, False
    return spot, True
