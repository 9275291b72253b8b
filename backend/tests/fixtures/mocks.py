"""Mock implementations for external services."""

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from integrations.exceptions import MalformedPayloadError, UpstreamError
from integrations.market_data_protocol import QuoteSource, RawPayload

# Daily bars are stamped at the US open, like the real chart endpoint
BAR_HOUR_UTC = 14
BAR_MINUTE_UTC = 30


def bar_ts(day: str) -> int:
    d = date.fromisoformat(day)
    return int(
        datetime(d.year, d.month, d.day, BAR_HOUR_UTC, BAR_MINUTE_UTC, tzinfo=timezone.utc).timestamp()
    )


def daily_points(end: str, days: int, start_price: float = 100.0, step: float = 1.0) -> list[tuple[str, float]]:
    """``days`` consecutive calendar-day closes ending on ``end``."""
    last = date.fromisoformat(end)
    first = last - timedelta(days=days - 1)
    return [
        ((first + timedelta(days=i)).isoformat(), start_price + i * step)
        for i in range(days)
    ]


def make_chart(
    symbol: str,
    points: list[tuple[str, Optional[float]]],
    price: Optional[float] = None,
    currency: str = "USD",
    opens: Optional[list[Optional[float]]] = None,
    short_name: Optional[str] = None,
    long_name: Optional[str] = None,
    splits: Optional[list[tuple[str, int, int]]] = None,
    dividends: Optional[list[tuple[str, float]]] = None,
    previous_close: Optional[float] = None,
) -> RawPayload:
    """Build a Yahoo v8 chart payload.

    Args:
        points: ``(YYYY-MM-DD, close)`` bars; a None close is a gap.
        splits: ``(YYYY-MM-DD, numerator, denominator)`` split events.
        dividends: ``(YYYY-MM-DD, amount)`` dividend events.
    """
    meta: dict = {"symbol": symbol, "currency": currency}
    if price is not None:
        meta["regularMarketPrice"] = price
    if short_name:
        meta["shortName"] = short_name
    if long_name:
        meta["longName"] = long_name
    if previous_close is not None:
        meta["previousClose"] = previous_close

    closes = [close for _, close in points]
    result: dict = {
        "meta": meta,
        "timestamp": [bar_ts(day) for day, _ in points],
        "indicators": {"quote": [{"close": closes, "open": opens if opens is not None else list(closes)}]},
    }
    events: dict = {}
    if splits:
        events["splits"] = {
            str(bar_ts(day)): {"date": bar_ts(day), "numerator": num, "denominator": den}
            for day, num, den in splits
        }
    if dividends:
        events["dividends"] = {
            str(bar_ts(day)): {"date": bar_ts(day), "amount": amount}
            for day, amount in dividends
        }
    if events:
        result["events"] = events
    return {"chart": {"result": [result], "error": None}}


def make_av_payload(
    price: float,
    series: list[tuple[str, float]],
    name: Optional[str] = None,
    currency: str = "USD",
    open_price: Optional[float] = None,
) -> RawPayload:
    """Combined Alpha Vantage payload as built by ``AlphaVantageClient``."""
    quote = {
        "01. symbol": "X",
        "05. price": f"{price:.4f}",
        "07. latest trading day": series[-1][0] if series else "",
    }
    if open_price is not None:
        quote["02. open"] = f"{open_price:.4f}"
    overview = {"Name": name, "Currency": currency} if name else {}
    return {
        "quote": {"Global Quote": quote},
        "series": {
            "Time Series (Daily)": {day: {"4. close": f"{close:.4f}"} for day, close in series}
        },
        "overview": overview,
    }


class MockQuoteProvider:
    """Mock quote provider for testing.

    Serves canned payloads per symbol and records every call. Failures
    can be forced for all symbols or for a subset.
    """

    def __init__(
        self,
        payloads: Optional[dict[str, RawPayload]] = None,
        source: QuoteSource = QuoteSource.YAHOO,
        failure: Optional[Exception] = None,
        fail_symbols: Optional[set[str]] = None,
        delay: float = 0.0,
    ):
        self.payloads = payloads or {}
        self._source = source
        self.failure = failure
        self.fail_symbols = fail_symbols or set()
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.api_keys: list[Optional[str]] = []

    @property
    def provider_name(self) -> str:
        return f"mock-{self._source.value}"

    @property
    def source(self) -> QuoteSource:
        return self._source

    def call_count(self, method: Optional[str] = None) -> int:
        return sum(1 for m, _ in self.calls if method is None or m == method)

    async def _serve(self, method: str, symbol: str) -> RawPayload:
        self.calls.append((method, symbol))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failure is not None and (not self.fail_symbols or symbol in self.fail_symbols):
            raise self.failure
        if symbol in self.fail_symbols:
            raise UpstreamError(f"Mock failure for {symbol}", provider_name=self.provider_name)
        if symbol not in self.payloads:
            raise MalformedPayloadError(f"No mock payload for {symbol}", provider_name=self.provider_name)
        return self.payloads[symbol]

    async def fetch_quote_payload(self, symbol: str, api_key: Optional[str] = None) -> RawPayload:
        self.api_keys.append(api_key)
        return await self._serve("quote", symbol)

    async def fetch_raw(
        self,
        symbol: str,
        range_: str = "2y",
        interval: str = "1d",
        events: Optional[str] = None,
    ) -> RawPayload:
        return await self._serve(f"raw:{range_}:{interval}", symbol)

    async def fetch_dividends(self, symbol: str, range_: str = "2y") -> RawPayload:
        return await self._serve("dividends", symbol)


class MockFxClient:
    """Mock Frankfurter client for testing."""

    def __init__(
        self,
        latest_rates: Optional[dict[str, float]] = None,
        historical_rates: Optional[dict[tuple[str, str, str], float]] = None,
        should_fail: bool = False,
    ):
        self.latest_rates = latest_rates or {}
        self.historical_rates = historical_rates or {}
        self.should_fail = should_fail
        self.latest_calls: list[list[str]] = []
        self.historical_calls: list[tuple[str, str, str]] = []

    @property
    def provider_name(self) -> str:
        return "mock-fx"

    async def latest(self, base: str, symbols: list[str]) -> dict[str, float]:
        self.latest_calls.append(list(symbols))
        if self.should_fail:
            raise UpstreamError("Mock FX outage", provider_name=self.provider_name)
        return {s: self.latest_rates[s] for s in symbols if s in self.latest_rates}

    async def historical(self, date: str, from_ccy: str, to_ccy: str) -> float:
        self.historical_calls.append((date, from_ccy, to_ccy))
        if self.should_fail:
            raise UpstreamError("Mock FX outage", provider_name=self.provider_name)
        key = (date, from_ccy.upper(), to_ccy.upper())
        if key not in self.historical_rates:
            raise MalformedPayloadError(
                f"No rate for {from_ccy}->{to_ccy} on {date}", provider_name=self.provider_name
            )
        return self.historical_rates[key]
