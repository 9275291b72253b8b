"""Quote parser - turns raw provider payloads into normalized Quotes.

Also hosts the derived lookups that read the same chart payloads:
historical point lookup, split-adjusted historical price, close series
for correlation and dividend summaries.

All functions are pure. ``now``/``today`` are passed in by the caller.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from integrations.exceptions import MissingPriceFieldError, NoSeriesDataError
from integrations.market_data_protocol import (
    PERIODS,
    DividendSummary,
    PointLookup,
    Quote,
    QuoteSource,
    RawPayload,
    SplitAdjustedPrice,
)
from utils.clock import utc_date_str

logger = logging.getLogger(__name__)

# A reference close further than this from its cutoff is left out rather
# than standing in for a period the series does not cover.
REF_WINDOW_DAYS = 10

PERIOD_DAYS = {"1W": 7, "1M": 30, "1Y": 365, "2Y": 730}

# Target timestamps for date lookups sit after the US close so that a
# same-day bar is "at or before" the requested date.
LOOKUP_HOUR_UTC = 18

SECONDS_PER_DAY = 86400


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _epoch(moment: datetime) -> float:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()


def _ts_to_date(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).date().isoformat()


def _target_ts(target_date: str) -> int:
    d = date.fromisoformat(target_date)
    return int(
        datetime(d.year, d.month, d.day, LOOKUP_HOUR_UTC, tzinfo=timezone.utc).timestamp()
    )


def period_cutoffs(now: datetime) -> dict[str, float]:
    """Epoch-second cutoff for every period label, relative to ``now``."""
    cutoffs = {label: _epoch(now - timedelta(days=days)) for label, days in PERIOD_DAYS.items()}
    jan1 = datetime(now.year, 1, 1, tzinfo=now.tzinfo or timezone.utc)
    cutoffs["YTD"] = jan1.timestamp()
    return {label: cutoffs[label] for label in PERIODS}


def compute_refs(
    timestamps: list[float],
    closes: list[Optional[float]],
    now: datetime,
    window_days: int = REF_WINDOW_DAYS,
) -> dict[str, float]:
    """Reference close for each period: the point nearest its cutoff.

    Nearest means minimum absolute distance, so a point slightly after the
    cutoff wins over one further before it. Periods whose nearest point is
    more than ``window_days`` away are omitted.
    """
    points = [
        (ts, close)
        for ts, close in zip(timestamps, closes)
        if ts is not None and close is not None
    ]
    refs: dict[str, float] = {}
    if not points:
        return refs

    max_distance = window_days * SECONDS_PER_DAY
    for label, cutoff in period_cutoffs(now).items():
        best_close = None
        best_diff = float("inf")
        for ts, close in points:
            diff = abs(ts - cutoff)
            if diff < best_diff:
                best_diff = diff
                best_close = close
        if best_close is not None and best_diff <= max_distance:
            refs[label] = float(best_close)
    return refs


def _chart_result(raw: RawPayload, symbol: str) -> dict[str, Any]:
    chart = raw.get("chart") if isinstance(raw, dict) else None
    results = (chart or {}).get("result") or []
    if not results or not isinstance(results[0], dict):
        raise NoSeriesDataError(f"No data returned for {symbol}", symbol=symbol)
    return results[0]


def _series(result: dict[str, Any]) -> tuple[list, list, list]:
    timestamps = result.get("timestamp") or []
    quote_block = ((result.get("indicators") or {}).get("quote") or [{}])[0] or {}
    closes = [_to_float(c) for c in (quote_block.get("close") or [])]
    opens = [_to_float(o) for o in (quote_block.get("open") or [])]
    return timestamps, closes, opens


def _fetched_at(now: datetime) -> int:
    return int(_epoch(now) * 1000)


def _change(price: float, prev_close: float) -> tuple[float, float]:
    change = price - prev_close
    change_pct = (change / prev_close) * 100 if prev_close > 0 else 0.0
    return change, change_pct


def _meta_previous_close(meta: dict) -> Optional[float]:
    prev_close = _to_float(meta.get("previousClose"))
    if prev_close is None:
        prev_close = _to_float(meta.get("chartPreviousClose"))
    return prev_close


def parse_yahoo_chart(symbol: str, raw: RawPayload, now: datetime, intraday: bool = False) -> Quote:
    """Build a Quote from a Yahoo v8 chart payload.

    With ``intraday`` the bars are a single session: the previous close
    comes from the chart meta, the open is the session's first bar and no
    period refs are derived.

    Raises:
        NoSeriesDataError: The payload has no chart result.
        MissingPriceFieldError: No live price and no valid close.
    """
    result = _chart_result(raw, symbol)
    meta = result.get("meta") or {}
    timestamps, closes, opens = _series(result)

    valid = [
        (ts, close)
        for ts, close in zip(timestamps, closes)
        if ts is not None and close is not None
    ]

    price = _to_float(meta.get("regularMarketPrice"))
    if price is None and valid:
        price = valid[-1][1]
    if price is None:
        raise MissingPriceFieldError(f"No price available for {symbol}", symbol=symbol)

    if intraday:
        prev_close = _meta_previous_close(meta)
        if prev_close is None:
            prev_close = valid[0][1] if valid else price
        open_price = next((o for o in opens if o is not None), None)
    else:
        if len(valid) >= 2:
            prev_close = valid[-2][1]
        else:
            prev_close = _meta_previous_close(meta)
            if prev_close is None:
                prev_close = price
        open_price = next((o for o in reversed(opens) if o is not None), None)
    if open_price is None:
        open_price = price

    change, change_pct = _change(price, prev_close)
    market_date = _ts_to_date(valid[-1][0]) if valid else utc_date_str(now)

    short_name = meta.get("shortName")
    long_name = meta.get("longName")

    return Quote(
        symbol=symbol,
        price=price,
        prev_close=prev_close,
        open=open_price,
        change=change,
        change_pct=change_pct,
        refs={} if intraday else compute_refs(timestamps, closes, now),
        currency=meta.get("currency") or "USD",
        market_date=market_date,
        source=QuoteSource.YAHOO,
        fetched_at=_fetched_at(now),
        name=short_name or long_name or symbol,
        short_name=short_name or symbol,
        long_name=long_name,
    )


def _av_series(raw: RawPayload) -> list[tuple[str, float]]:
    """Ascending ``[(YYYY-MM-DD, close)]`` from TIME_SERIES_DAILY_ADJUSTED."""
    series = (raw.get("series") or {}).get("Time Series (Daily)") or {}
    points = []
    for day, bar in series.items():
        close = _to_float((bar or {}).get("4. close"))
        if close is not None:
            points.append((day, close))
    points.sort()
    return points


def _date_ts(day: str) -> float:
    d = date.fromisoformat(day)
    return datetime(d.year, d.month, d.day, tzinfo=timezone.utc).timestamp()


def parse_alpha_vantage(symbol: str, raw: RawPayload, now: datetime) -> Quote:
    """Build a Quote from the combined Alpha Vantage payload.

    ``raw`` is ``{"quote": GLOBAL_QUOTE, "series": TIME_SERIES_DAILY_ADJUSTED,
    "overview": OVERVIEW}`` as returned by ``AlphaVantageClient``.
    """
    global_quote = (raw.get("quote") or {}).get("Global Quote") or {}
    points = _av_series(raw)
    if not global_quote and not points:
        raise NoSeriesDataError(f"No quote data for {symbol}", symbol=symbol)

    price = _to_float(global_quote.get("05. price"))
    if price is None and points:
        price = points[-1][1]
    if price is None:
        raise MissingPriceFieldError(f"No price available for {symbol}", symbol=symbol)

    if len(points) >= 2:
        prev_close = points[-2][1]
    else:
        prev_close = _to_float(global_quote.get("08. previous close"))
        if prev_close is None:
            prev_close = price

    open_price = _to_float(global_quote.get("02. open"))
    if open_price is None:
        open_price = price

    change, change_pct = _change(price, prev_close)

    if points:
        market_date = points[-1][0]
    else:
        market_date = global_quote.get("07. latest trading day") or utc_date_str(now)

    overview = raw.get("overview") or {}
    name = overview.get("Name") or symbol

    return Quote(
        symbol=symbol,
        price=price,
        prev_close=prev_close,
        open=open_price,
        change=change,
        change_pct=change_pct,
        refs=compute_refs([_date_ts(d) for d, _ in points], [c for _, c in points], now),
        currency=overview.get("Currency") or "USD",
        market_date=market_date,
        source=QuoteSource.ALPHA_VANTAGE,
        fetched_at=_fetched_at(now),
        name=name,
        short_name=name,
        long_name=overview.get("Name"),
    )


def parse_quote(source: QuoteSource, symbol: str, raw: RawPayload, now: datetime) -> Quote:
    """Dispatch to the parser for ``source``."""
    if source == QuoteSource.ALPHA_VANTAGE:
        return parse_alpha_vantage(symbol, raw, now)
    return parse_yahoo_chart(symbol, raw, now)


def lookup_on_date(symbol: str, raw: RawPayload, target_date: str, today: str) -> PointLookup:
    """Close of the last trading day at or before ``target_date``.

    Falls back to the first available close only when the requested date
    predates the whole series.

    Args:
        symbol: Ticker symbol.
        raw: Yahoo chart payload with enough history.
        target_date: Requested YYYY-MM-DD.
        today: Today's YYYY-MM-DD, used for ``is_historical``.

    Raises:
        NoSeriesDataError: No chart result.
        MissingPriceFieldError: The series has no valid close at all.
    """
    result = _chart_result(raw, symbol)
    meta = result.get("meta") or {}
    timestamps, closes, _ = _series(result)
    target_ts = _target_ts(target_date)

    best = None
    for ts, close in reversed(list(zip(timestamps, closes))):
        if ts is not None and close is not None and ts <= target_ts:
            best = (ts, close)
            break
    if best is None:
        best = next(
            ((ts, close) for ts, close in zip(timestamps, closes)
             if ts is not None and close is not None),
            None,
        )
    if best is None:
        raise MissingPriceFieldError("No price data found for this date", symbol=symbol)

    actual_date = _ts_to_date(best[0])
    days_off = abs((date.fromisoformat(actual_date) - date.fromisoformat(target_date)).days)

    return PointLookup(
        symbol=symbol,
        price=best[1],
        date=actual_date,
        requested_date=target_date,
        days_off=days_off,
        is_historical=actual_date != today,
        currency=meta.get("currency") or "USD",
        company_name=meta.get("longName") or meta.get("shortName") or symbol,
    )


def lookup_split_adjusted(symbol: str, raw: RawPayload, target_date: str) -> SplitAdjustedPrice:
    """Historical close at ``target_date`` with later splits multiplied back out.

    Providers serve closes pre-adjusted for every split since. A 4:1 split
    after the target date turns an adjusted close of 50 into 200.

    Raises:
        NoSeriesDataError: No chart result.
        MissingPriceFieldError: No close at or before the target date.
    """
    result = _chart_result(raw, symbol)
    meta = result.get("meta") or {}
    timestamps, closes, _ = _series(result)
    target_ts = _target_ts(target_date)

    splits = ((result.get("events") or {}).get("splits") or {}).values()
    multiplier = 1.0
    for split in splits:
        numerator = _to_float(split.get("numerator"))
        denominator = _to_float(split.get("denominator"))
        if not numerator or not denominator:
            continue
        if split.get("date", 0) > target_ts:
            multiplier *= numerator / denominator

    best = None
    for ts, close in zip(timestamps, closes):
        if ts is None or close is None or ts > target_ts:
            continue
        if best is None or ts > best[0]:
            best = (ts, close)
    if best is None:
        raise MissingPriceFieldError(
            f"No price for {symbol} on or before {target_date}", symbol=symbol
        )

    adjusted_close = best[1]
    if multiplier != 1:
        logger.info(
            "Split-adjust %s on %s: close=%.4f x %g = %.4f",
            symbol, target_date, adjusted_close, multiplier, adjusted_close * multiplier,
        )
    return SplitAdjustedPrice(
        symbol=symbol,
        price=adjusted_close * multiplier,
        adjusted_close=adjusted_close,
        split_multiplier=multiplier,
        date=_ts_to_date(best[0]),
        currency=meta.get("currency") or "USD",
    )


def close_series(raw: RawPayload) -> list[tuple[str, float]]:
    """Daily ``(YYYY-MM-DD, close)`` points, one per date, oldest first."""
    try:
        result = _chart_result(raw, "")
    except NoSeriesDataError:
        return []
    timestamps, closes, _ = _series(result)
    by_date: dict[str, float] = {}
    for ts, close in zip(timestamps, closes):
        if ts is None or close is None:
            continue
        by_date[_ts_to_date(ts)] = close
    return sorted(by_date.items())


def summarize_dividends(symbol: str, raw: RawPayload, now: datetime) -> DividendSummary:
    """Trailing-twelve-month dividend summary from a chart with ``events=div``.

    ``next_ex_date`` extrapolates the average spacing of the most recent
    payments and is only an estimate.
    """
    result = _chart_result(raw, symbol)
    meta = result.get("meta") or {}
    _, closes, _ = _series(result)
    currency = meta.get("currency") or "USD"

    price = _to_float(meta.get("regularMarketPrice"))
    if price is None:
        price = next((c for c in reversed(closes) if c is not None), None)

    events = ((result.get("events") or {}).get("dividends") or {}).values()
    payments = sorted(
        (int(e["date"]), float(e["amount"]))
        for e in events
        if e.get("date") is not None and _to_float(e.get("amount")) is not None
    )
    summary = DividendSummary(symbol=symbol, currency=currency, price=price)
    if not payments:
        return summary

    window_start = _epoch(now - timedelta(days=365))
    trailing = [(ts, amount) for ts, amount in payments if ts >= window_start]
    last_ts = payments[-1][0]
    summary.ex_date = _ts_to_date(last_ts)

    if trailing:
        summary.annual_rate = sum(amount for _, amount in trailing)
        summary.frequency = len(trailing)
        if price:
            summary.yield_pct = summary.annual_rate / price * 100

    recent = [ts for ts, _ in payments[-5:]]
    if len(recent) >= 2:
        gaps = [b - a for a, b in zip(recent, recent[1:])]
        avg_gap = sum(gaps) / len(gaps)
        summary.next_ex_date = _ts_to_date(last_ts + avg_gap)
    return summary
