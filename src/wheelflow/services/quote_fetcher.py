"""
Batch option-quote fetching against the market-data vendor.

:class:`PolygonQuoteClient` performs one snapshot request per contract and turns
every outcome (including HTTP 429 and empty results) into a :class:`QuoteResult`.
:class:`QuoteFetcher` drives a batch through that client while respecting the
vendor's request budget, retrying rate-limited calls, honouring an overall
deadline, and serving from an injected :class:`QuoteCache`.
"""

from __future__ import annotations

import time
from collections import deque
from typing import Callable, Deque, Dict, Iterable, List, Optional, Protocol

import httpx
from loguru import logger

from ..config import AnalyticsSettings, get_settings
from ..core.models import ContractKey, Position
from .quote_cache import QuoteCache
from .quotes import QuoteResult, QuoteUnavailable, normalize_quote

POLYGON_BASE_URL = "https://api.polygon.io"
SNAPSHOT_PATH = "/v3/snapshot/options/{ticker}"
DEADLINE_EXCEEDED = "deadline exceeded"


class QuoteFetchError(RuntimeError):
    """Raised by a quote source that cannot serve any request."""


class QuoteSource(Protocol):
    def fetch(self, key: ContractKey) -> QuoteResult: ...


class PolygonQuoteClient:
    """Fetch single-contract snapshots from the vendor's options snapshot endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
        base_url: str = POLYGON_BASE_URL,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key or settings.api_key
        self.timeout = settings.request_timeout if timeout is None else timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(base_url=base_url, timeout=self.timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "PolygonQuoteClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def fetch(self, key: ContractKey) -> QuoteResult:
        """Return the quote for ``key`` as a tagged result; transport problems never raise."""
        if not self.api_key:
            logger.error(f"Quote client has no API key; cannot fetch {key}")
            return QuoteResult.failed("API key not configured (set POLYGON_API_KEY)")

        params = {
            "strike_price": format(key.strike.normalize(), "f"),
            "expiration_date": key.expiry,
            "contract_type": key.option_type.lower(),
            "limit": 1,
            "apiKey": self.api_key,
        }
        logger.debug(f"Fetching option quote {key}")
        try:
            response = self._client.get(
                SNAPSHOT_PATH.format(ticker=key.symbol), params=params, timeout=self.timeout
            )
        except httpx.TimeoutException:
            logger.warning(f"Quote request for {key} timed out after {self.timeout:g}s")
            return QuoteResult.failed(f"Request timeout after {self.timeout:g} seconds")
        except httpx.HTTPError as exc:
            logger.warning(f"Quote request for {key} failed: {exc}")
            return QuoteResult.failed(f"Request failed: {exc}")

        if response.status_code == 429:
            return QuoteResult.failed("Rate limit exceeded", "rate")
        if response.status_code == 404:
            return QuoteResult.failed("Option not found", "not_found")
        if response.is_error:
            return QuoteResult.failed(f"Polygon API error: {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            return QuoteResult.failed("Invalid JSON from quote endpoint")

        results = payload.get("results") if isinstance(payload, dict) else None
        if not results:
            return QuoteResult.failed("Option not found", "not_found")

        normalized = normalize_quote(results[0], underlying=key.symbol)
        if isinstance(normalized, QuoteUnavailable):
            return QuoteResult.failed(normalized.message)
        return QuoteResult.ok(normalized)


class QuoteFetcher:
    """
    Fetch quotes for a batch of positions within the vendor's request budget.

    Requests are serialized: at most ``rate_limit`` calls per ``rate_window``
    seconds, at least ``request_spacing`` seconds apart. Rate-limited responses are
    retried with exponential backoff up to ``max_retries`` times. Once the batch
    deadline would be crossed, remaining positions fail with ``deadline exceeded``.
    Results always line up one-to-one with the input positions.
    """

    def __init__(
        self,
        client: QuoteSource,
        *,
        cache: Optional[QuoteCache] = None,
        settings: Optional[AnalyticsSettings] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.cache = cache
        self.settings = settings or get_settings()
        self._clock = clock
        self._sleep = sleep
        self._sent: Deque[float] = deque()
        self._last_request: Optional[float] = None

    def _slot_wait(self) -> float:
        now = self._clock()
        window = self.settings.rate_window
        while self._sent and now - self._sent[0] >= window:
            self._sent.popleft()

        wait = 0.0
        if self._last_request is not None:
            wait = max(wait, self._last_request + self.settings.request_spacing - now)
        if len(self._sent) >= self.settings.rate_limit:
            wait = max(wait, self._sent[0] + window - now)
        return wait

    def _throttle(self, deadline_at: float, extra_delay: float = 0.0) -> bool:
        """Sleep until the next request is allowed; ``False`` when that is past the deadline."""
        wait = max(self._slot_wait(), extra_delay)
        if self._clock() + wait > deadline_at:
            return False
        if wait > 0:
            logger.debug(f"Throttling quote requests for {wait:.1f}s")
            self._sleep(wait)
        stamp = self._clock()
        self._sent.append(stamp)
        self._last_request = stamp
        return True

    def _fetch_one(self, key: ContractKey, deadline_at: float) -> QuoteResult:
        backoff = 0.0
        attempt = 0
        while True:
            if not self._throttle(deadline_at, backoff):
                return QuoteResult.failed(DEADLINE_EXCEEDED)
            try:
                result = self.client.fetch(key)
            except QuoteFetchError as exc:
                logger.error(f"Quote client misconfigured: {exc}")
                return QuoteResult.failed(str(exc))

            if not result.retryable or attempt >= self.settings.max_retries:
                return result
            attempt += 1
            backoff = self.settings.request_spacing * self.settings.retry_backoff ** (attempt - 1)
            logger.info(f"Rate limited on {key}; retry {attempt} in {backoff:.1f}s")

    def fetch_quotes(self, positions: Iterable[Position]) -> List[QuoteResult]:
        """Return one :class:`QuoteResult` per position, in input order."""
        positions = list(positions)
        deadline_at = self._clock() + self.settings.request_deadline
        fetched: Dict[ContractKey, QuoteResult] = {}
        results: List[QuoteResult] = []

        for position in positions:
            key = position.contract_key
            if key in fetched:
                results.append(fetched[key])
                continue

            cached = self.cache.get(key) if self.cache is not None else None
            if cached is not None and not cached.is_stale:
                result = QuoteResult.ok(cached)
            else:
                result = self._fetch_one(key, deadline_at)
                if result.success and result.quote is not None:
                    if self.cache is not None:
                        self.cache.put(result.quote, key)
                elif cached is not None:
                    logger.warning(f"Serving stale quote for {key}: {result.error}")
                    result = QuoteResult.ok(cached)

            fetched[key] = result
            results.append(result)

        failures = sum(1 for result in results if not result.success)
        if failures:
            logger.warning(f"Quote batch finished with {failures}/{len(results)} failures")
        return results
