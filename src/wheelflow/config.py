"""Runtime settings for the wheelflow analytics engine.

Thresholds and fetch budgets have conservative defaults; each one can be
overridden through a ``WHEELFLOW_*`` environment variable.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Optional

from loguru import logger

ENV_PREFIX = "WHEELFLOW_"
API_KEY_ENV_VAR = "POLYGON_API_KEY"
LOG_LEVEL_ENV_VAR = f"{ENV_PREFIX}LOG_LEVEL"


@dataclass(frozen=True)
class AnalyticsSettings:
    """Tunable policy constants and fetch-layer budgets."""

    per_share_threshold: Decimal = Decimal("50")
    roll_price_multiplier: Decimal = Decimal("1.08")
    roll_delta_threshold: Decimal = Decimal("0.80")
    roll_moneyness_pct: Decimal = Decimal("5")
    let_expire_days: int = 5
    call_zone_factor: Decimal = Decimal("1.02")
    put_zone_factor: Decimal = Decimal("0.98")
    default_call_strike_factor: Decimal = Decimal("1.05")
    default_put_strike_factor: Decimal = Decimal("0.95")
    quote_cache_ttl: float = 3600.0
    quote_stale_after: float = 1800.0
    rate_limit: int = 5
    rate_window: float = 60.0
    request_spacing: float = 12.0
    max_retries: int = 3
    retry_backoff: float = 2.0
    request_deadline: float = 50.0
    request_timeout: float = 10.0
    api_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> "AnalyticsSettings":
        """Build settings from the environment, falling back to defaults."""
        defaults = cls()
        return cls(
            per_share_threshold=_env_decimal(
                "PER_SHARE_THRESHOLD", defaults.per_share_threshold
            ),
            roll_price_multiplier=_env_decimal(
                "ROLL_PRICE_MULTIPLIER", defaults.roll_price_multiplier
            ),
            roll_delta_threshold=_env_decimal(
                "ROLL_DELTA_THRESHOLD", defaults.roll_delta_threshold
            ),
            roll_moneyness_pct=_env_decimal("ROLL_MONEYNESS_PCT", defaults.roll_moneyness_pct),
            let_expire_days=int(_env_float("LET_EXPIRE_DAYS", defaults.let_expire_days)),
            call_zone_factor=_env_decimal("CALL_ZONE_FACTOR", defaults.call_zone_factor),
            put_zone_factor=_env_decimal("PUT_ZONE_FACTOR", defaults.put_zone_factor),
            default_call_strike_factor=_env_decimal(
                "DEFAULT_CALL_STRIKE_FACTOR", defaults.default_call_strike_factor
            ),
            default_put_strike_factor=_env_decimal(
                "DEFAULT_PUT_STRIKE_FACTOR", defaults.default_put_strike_factor
            ),
            quote_cache_ttl=_env_float("QUOTE_CACHE_TTL", defaults.quote_cache_ttl),
            quote_stale_after=_env_float("QUOTE_STALE_AFTER", defaults.quote_stale_after),
            rate_limit=int(_env_float("RATE_LIMIT", defaults.rate_limit)),
            rate_window=_env_float("RATE_WINDOW", defaults.rate_window),
            request_spacing=_env_float("REQUEST_SPACING", defaults.request_spacing),
            max_retries=int(_env_float("MAX_RETRIES", defaults.max_retries)),
            retry_backoff=_env_float("RETRY_BACKOFF", defaults.retry_backoff),
            request_deadline=_env_float("REQUEST_DEADLINE", defaults.request_deadline),
            request_timeout=_env_float("REQUEST_TIMEOUT", defaults.request_timeout),
            api_key=os.environ.get(API_KEY_ENV_VAR) or None,
        )


def _env_value(name: str) -> Optional[str]:
    value = os.environ.get(f"{ENV_PREFIX}{name}")
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_decimal(name: str, default: Decimal) -> Decimal:
    value = _env_value(name)
    if value is None:
        return default
    try:
        return Decimal(value)
    except InvalidOperation:
        logger.warning(f"Ignoring invalid {ENV_PREFIX}{name}={value!r}; using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    value = _env_value(name)
    if value is None:
        return float(default)
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {ENV_PREFIX}{name}={value!r}; using {default}")
        return float(default)


@lru_cache(maxsize=1)
def get_settings() -> AnalyticsSettings:
    """Return the process-wide settings, read once from the environment."""
    return AnalyticsSettings.from_env()


def configure_logging(level: Optional[str] = None) -> int:
    """
    Route wheelflow log output to stderr at ``level``.

    The level defaults to ``WHEELFLOW_LOG_LEVEL`` (or ``INFO``). Returns the loguru
    handler id so callers can remove the sink again.
    """
    resolved = (level or os.environ.get(LOG_LEVEL_ENV_VAR) or "INFO").upper()
    logger.remove()
    return logger.add(
        sys.stderr,
        level=resolved,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}",
    )
