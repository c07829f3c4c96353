"""Time-bounded cache of option quotes keyed by contract."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from loguru import logger

from ..config import get_settings
from ..core.models import ContractKey, OptionQuote

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache occupancy."""

    entries: int
    fresh: int
    stale: int
    hits: int
    misses: int


class QuoteCache:
    """
    Quotes stored under ``SYMBOL-STRIKE-EXPIRY-TYPE`` with their storage time.

    Entries older than ``ttl`` seconds are evicted on read. Entries older than
    ``stale_after`` are still served but come back with ``is_stale=True`` so the
    caller can decide whether to refresh.
    """

    def __init__(
        self,
        *,
        ttl: Optional[float] = None,
        stale_after: Optional[float] = None,
        clock: Clock = time.time,
    ) -> None:
        settings = get_settings()
        self.ttl = settings.quote_cache_ttl if ttl is None else ttl
        self.stale_after = settings.quote_stale_after if stale_after is None else stale_after
        self._clock = clock
        self._entries: Dict[str, Tuple[OptionQuote, float]] = {}
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        if isinstance(key, ContractKey):
            return key.cache_key in self._entries
        return key in self._entries

    def get(self, key: ContractKey) -> Optional[OptionQuote]:
        """Return the cached quote for ``key``, or ``None`` when absent or expired."""
        entry = self._entries.get(key.cache_key)
        if entry is None:
            self._misses += 1
            return None

        quote, stored_at = entry
        age = self._clock() - stored_at
        if age >= self.ttl:
            logger.debug(f"Quote cache expired for {key} after {age:.0f}s")
            del self._entries[key.cache_key]
            self._misses += 1
            return None

        self._hits += 1
        stale = age >= self.stale_after
        if stale != quote.is_stale:
            quote = quote.model_copy(update={"is_stale": stale})
        return quote

    def put(self, quote: OptionQuote, key: Optional[ContractKey] = None) -> None:
        """Store ``quote`` under ``key`` (the quote's own contract key by default)."""
        cache_key = (key or quote.contract_key).cache_key
        fresh = quote.model_copy(update={"is_stale": False}) if quote.is_stale else quote
        self._entries[cache_key] = (fresh, self._clock())

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0

    def stats(self) -> CacheStats:
        now = self._clock()
        ages = [now - stored_at for _, stored_at in self._entries.values()]
        stale = sum(1 for age in ages if self.stale_after <= age < self.ttl)
        fresh = sum(1 for age in ages if age < self.stale_after)
        return CacheStats(
            entries=len(self._entries),
            fresh=fresh,
            stale=stale,
            hits=self._hits,
            misses=self._misses,
        )
