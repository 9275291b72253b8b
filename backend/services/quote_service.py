"""Quote cache service - batch quote orchestration over store, policy and providers.

Per symbol, a batch call runs through:

1. ``force`` set -> skip the cache.
2. Cached quote from the same source and fresh per the freshness policy
   -> cache hit.
3. Otherwise fetch, parse and persist through the in-flight deduplicator.
4. On any fetch or parse failure, serve the last stored quote marked
   ``stale``; if there is none, report an error for that symbol.

Every symbol lands in exactly one of ``results`` or ``errors`` and one
symbol's failure never affects another.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from config import settings
from integrations.exceptions import MissingPriceFieldError, QuoteParseError, UpstreamError
from integrations.market_data_protocol import (
    DividendSummary,
    PointLookup,
    Quote,
    QuoteProvider,
    QuoteSource,
    RawPayload,
    SplitAdjustedPrice,
)
from services.freshness import is_fresh, required_ttl_minutes
from services.quote_parser import (
    close_series,
    lookup_on_date,
    lookup_split_adjusted,
    parse_quote,
    parse_yahoo_chart,
    summarize_dividends,
)
from services.quote_store import QuoteStore
from services.request_dedup import InFlightDeduplicator
from utils.clock import Clock, SystemClock, utc_date_str
from utils.ticker import (
    chart_cache_key,
    is_intraday_interval,
    normalize_symbol,
    quote_cache_key,
    unique_symbols,
)

logger = logging.getLogger(__name__)

DEFAULT_RANGE = "2y"
DEFAULT_INTERVAL = "1d"
MAX_HISTORY_SYMBOLS = 30


@dataclass
class BatchResult:
    """Partitioned outcome of a batch quote request."""

    results: dict[str, Quote] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": {sym: q.to_dict() for sym, q in self.results.items()},
            "errors": dict(self.errors),
        }


class QuoteCacheService:
    """Owns the deduplicator and cache counters for one process.

    Construct one per application (see ``main.lifespan``); tests build
    isolated instances with fake providers and a fixed clock.
    """

    def __init__(
        self,
        providers: dict[QuoteSource, QuoteProvider],
        store: QuoteStore,
        clock: Optional[Clock] = None,
        dedup: Optional[InFlightDeduplicator] = None,
        ttl_override_minutes: Optional[int] = None,
    ):
        """Initialize the service.

        Args:
            providers: Quote provider per source. The Yahoo provider must
                also offer ``fetch_raw`` and ``fetch_dividends``; it backs
                charts, lookups and dividends.
            store: Persistent quote/raw payload store.
            clock: Time source; defaults to the system clock.
            dedup: In-flight deduplicator; a private one by default.
            ttl_override_minutes: Operator TTL override; defaults to
                ``settings.QUOTE_TTL_OVERRIDE_MIN``.
        """
        if QuoteSource.YAHOO not in providers:
            raise ValueError("A Yahoo provider is required")
        self._providers = providers
        self._store = store
        self._clock = clock or SystemClock()
        self._dedup = dedup or InFlightDeduplicator()
        self._ttl_override = (
            settings.QUOTE_TTL_OVERRIDE_MIN if ttl_override_minutes is None else ttl_override_minutes
        )
        self.cache_hits = 0
        self.cache_misses = 0
        self.stale_served = 0

    @property
    def store(self) -> QuoteStore:
        return self._store

    @property
    def dedup(self) -> InFlightDeduplicator:
        return self._dedup

    @property
    def chart_provider(self) -> Any:
        return self._providers[QuoteSource.YAHOO]

    def _provider(self, source: QuoteSource) -> QuoteProvider:
        provider = self._providers.get(source)
        if provider is None:
            raise ValueError(f"Quote source not configured: {source.value}")
        return provider

    def stats(self) -> dict[str, int]:
        return {
            "cacheHits": self.cache_hits,
            "cacheMisses": self.cache_misses,
            "staleServed": self.stale_served,
            "inFlight": self._dedup.in_flight,
            "coalesced": self._dedup.coalesced,
        }

    # ------------------------------------------------------------------
    # Batch quotes
    # ------------------------------------------------------------------

    async def get_batch(
        self,
        symbols: list[str],
        source: QuoteSource = QuoteSource.YAHOO,
        force: bool = False,
        api_key: Optional[str] = None,
    ) -> BatchResult:
        """Quotes for many symbols from one provider, concurrently."""
        provider = self._provider(source)
        syms = unique_symbols(symbols)
        outcomes = await asyncio.gather(
            *(self._get_one(sym, provider, force, api_key) for sym in syms)
        )

        batch = BatchResult()
        for sym, (quote, error) in zip(syms, outcomes):
            if quote is not None:
                batch.results[sym] = quote
            else:
                batch.errors[sym] = error or "Unknown error"
        logger.info(
            "Batch quotes (%s): %d ok, %d errors",
            source.value, len(batch.results), len(batch.errors),
        )
        return batch

    async def _get_one(
        self,
        symbol: str,
        provider: QuoteProvider,
        force: bool,
        api_key: Optional[str],
    ) -> tuple[Optional[Quote], Optional[str]]:
        key = quote_cache_key(symbol)

        if not force:
            cached = await self._store.get(key)
            if cached is not None:
                quote, updated_at = cached
                now = self._clock.now()
                ttl = required_ttl_minutes(now, False, self._ttl_override)
                if quote.source == provider.source and is_fresh(updated_at, ttl, now):
                    self.cache_hits += 1
                    logger.debug("Cache hit %s (ttl=%dm)", key, ttl)
                    return quote, None

        self.cache_misses += 1
        try:
            quote = await self._dedup.run(
                f"{provider.source.value}:{key}",
                lambda: self._refresh_quote(symbol, key, provider, api_key),
            )
            return quote, None
        except (UpstreamError, QuoteParseError) as e:
            logger.warning("Quote refresh failed for %s: %s", symbol, e)
            error = str(e)
        except Exception as e:
            logger.error("Unexpected error refreshing %s", symbol, exc_info=True)
            error = str(e) or e.__class__.__name__

        return await self._serve_stale(key, error)

    async def _serve_stale(self, key: str, error: str) -> tuple[Optional[Quote], Optional[str]]:
        cached = await self._store.get(key)
        if cached is None:
            return None, error
        quote, updated_at = cached
        quote.stale = True
        self.stale_served += 1
        logger.warning("Serving stale quote for %s (updated %s)", key, updated_at.isoformat())
        return quote, None

    async def _refresh_quote(
        self,
        symbol: str,
        key: str,
        provider: QuoteProvider,
        api_key: Optional[str],
    ) -> Quote:
        """Fetch, parse and persist one quote. Runs once per in-flight key."""
        raw = await provider.fetch_quote_payload(symbol, api_key)
        quote = parse_quote(provider.source, symbol, raw, self._clock.now())
        await self._store.put(key, quote, provider.source.value, quote.market_date)
        if provider.source == QuoteSource.YAHOO:
            await self._store.put_raw(
                chart_cache_key(symbol, DEFAULT_RANGE, DEFAULT_INTERVAL), symbol, raw, "yahoo"
            )
        return quote

    async def get_alpha_vantage_quote(self, symbol: str, api_key: Optional[str] = None) -> Quote:
        """Always-fresh Alpha Vantage quote, persisted to the store.

        Raises:
            UpstreamError, QuoteParseError: Request-level failure.
        """
        provider = self._provider(QuoteSource.ALPHA_VANTAGE)
        sym = normalize_symbol(symbol)
        key = quote_cache_key(sym)
        self.cache_misses += 1
        return await self._dedup.run(
            f"{provider.source.value}:{key}",
            lambda: self._refresh_quote(sym, key, provider, api_key),
        )

    # ------------------------------------------------------------------
    # Raw payload paths (charts, lookups, dividends)
    # ------------------------------------------------------------------

    async def _cached_raw(
        self,
        key: str,
        symbol: str,
        ttl_minutes: int,
        fetch: Callable[[], Awaitable[RawPayload]],
        force: bool = False,
    ) -> tuple[RawPayload, bool]:
        """Raw payload for ``key``, refetched when older than ``ttl_minutes``.

        Returns:
            ``(payload, from_cache)``.
        """
        if not force:
            cached = await self._store.get_raw(key)
            if cached is not None and is_fresh(cached[1], ttl_minutes, self._clock.now()):
                self.cache_hits += 1
                logger.debug("Raw cache hit %s", key)
                return cached[0], True

        self.cache_misses += 1

        async def refresh() -> RawPayload:
            payload = await fetch()
            await self._store.put_raw(key, symbol, payload, "yahoo")
            return payload

        return await self._dedup.run(f"raw:{key}", refresh), False

    async def get_chart(
        self,
        symbol: str,
        range_: str = DEFAULT_RANGE,
        interval: str = DEFAULT_INTERVAL,
        force: bool = False,
    ) -> tuple[RawPayload, bool]:
        """Raw chart payload for sparklines and charts.

        Intraday intervals use the short intraday TTL. A fresh intraday
        chart also refreshes the ``{SYMBOL}_intraday`` quote entry (previous
        close taken from the chart meta, not from the session bars), and a
        fresh default-shape chart refreshes the daily quote entry.

        Raises:
            UpstreamError: The fetch failed.
            NoSeriesDataError: The provider returned no chart result.
        """
        sym = normalize_symbol(symbol)
        intraday = is_intraday_interval(interval)
        ttl = required_ttl_minutes(self._clock.now(), intraday, self._ttl_override)
        provider = self.chart_provider

        async def fetch() -> RawPayload:
            payload = await provider.fetch_raw(sym, range_, interval)
            try:
                quote = parse_yahoo_chart(sym, payload, self._clock.now(), intraday=intraday)
            except MissingPriceFieldError:
                logger.info("Chart for %s has no price; quote cache not updated", sym)
                return payload
            if intraday:
                await self._store.put(quote_cache_key(sym, intraday=True), quote)
            elif range_ == DEFAULT_RANGE:
                await self._store.put(quote_cache_key(sym), quote)
            return payload

        return await self._cached_raw(
            chart_cache_key(sym, range_, interval), sym, ttl, fetch, force=force
        )

    async def lookup(self, symbol: str, date: str) -> PointLookup:
        """Close on (or the last trading day before) ``date``.

        Raises:
            UpstreamError, QuoteParseError: Request-level failure.
        """
        sym = normalize_symbol(symbol)
        provider = self.chart_provider
        raw, _ = await self._cached_raw(
            f"{sym}_hist10y",
            sym,
            settings.LOOKUP_CACHE_TTL_MIN,
            lambda: provider.fetch_raw(sym, "10y", "1d"),
        )
        return lookup_on_date(sym, raw, date, utc_date_str(self._clock.now()))

    async def lookup_split_adjusted(self, symbol: str, date: str) -> SplitAdjustedPrice:
        """Actual traded price on ``date``, undoing later splits."""
        sym = normalize_symbol(symbol)
        provider = self.chart_provider
        raw, _ = await self._cached_raw(
            f"{sym}_hist15y_splits",
            sym,
            settings.LOOKUP_CACHE_TTL_MIN,
            lambda: provider.fetch_raw(sym, "15y", "1d", events="splits|div"),
        )
        return lookup_split_adjusted(sym, raw, date)

    async def history_multi(
        self, symbols: list[str], range_: str = DEFAULT_RANGE
    ) -> tuple[dict[str, list[tuple[str, float]]], dict[str, str]]:
        """Daily close series for several symbols (ancillary, for correlation)."""
        syms = unique_symbols(symbols)[:MAX_HISTORY_SYMBOLS]

        async def one(sym: str) -> list[tuple[str, float]]:
            payload, _ = await self.get_chart(sym, range_, DEFAULT_INTERVAL)
            return close_series(payload)

        outcomes = await asyncio.gather(*(one(s) for s in syms), return_exceptions=True)
        results: dict[str, list[tuple[str, float]]] = {}
        errors: dict[str, str] = {}
        for sym, outcome in zip(syms, outcomes):
            if isinstance(outcome, (UpstreamError, QuoteParseError)):
                errors[sym] = str(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            elif outcome:
                results[sym] = outcome
            else:
                errors[sym] = "No price history"
        return results, errors

    async def get_dividends(self, symbol: str) -> DividendSummary:
        """Trailing-twelve-month dividend summary for one symbol."""
        sym = normalize_symbol(symbol)
        provider = self.chart_provider
        raw, _ = await self._cached_raw(
            f"{sym}_div",
            sym,
            settings.DIVIDEND_CACHE_TTL_MIN,
            lambda: provider.fetch_dividends(sym, DEFAULT_RANGE),
        )
        return summarize_dividends(sym, raw, self._clock.now())

    async def get_dividends_batch(
        self, symbols: list[str]
    ) -> tuple[dict[str, DividendSummary], dict[str, str]]:
        syms = unique_symbols(symbols)
        outcomes = await asyncio.gather(
            *(self.get_dividends(s) for s in syms), return_exceptions=True
        )
        results: dict[str, DividendSummary] = {}
        errors: dict[str, str] = {}
        for sym, outcome in zip(syms, outcomes):
            if isinstance(outcome, (UpstreamError, QuoteParseError)):
                errors[sym] = str(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results[sym] = outcome
        return results, errors
