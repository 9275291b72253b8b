"""Quote API endpoints."""

import logging
from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from api.helpers import get_quote_service
from integrations.exceptions import QuoteParseError, UpstreamError
from schemas.quote import (
    BatchQuoteRequest,
    BatchQuoteResponse,
    DividendBatchRequest,
    HistoryRequest,
    PointLookupResponse,
)
from services.correlation_service import correlation_matrix
from services.quote_service import QuoteCacheService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/quotes", tags=["quotes"])


def _bad_gateway(e: Exception) -> HTTPException:
    return HTTPException(status_code=502, detail=str(e))


@router.post("/batch", response_model=BatchQuoteResponse)
async def batch_quotes(
    body: BatchQuoteRequest,
    service: QuoteCacheService = Depends(get_quote_service),
):
    """Quotes for many symbols; per-symbol failures land in ``errors``."""
    try:
        result = await service.get_batch(body.symbols, body.source, body.force, body.api_key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict()


@router.get("/yahoo/{symbol}", response_model=dict[str, Any])
async def yahoo_chart(
    symbol: str,
    refresh: bool = Query(False, description="Bypass the cache"),
    range_: str = Query("2y", alias="range"),
    interval: str = Query("1d"),
    service: QuoteCacheService = Depends(get_quote_service),
):
    """Raw chart payload for sparklines and charts."""
    try:
        payload, cached = await service.get_chart(symbol, range_, interval, force=refresh)
    except (UpstreamError, QuoteParseError) as e:
        logger.warning("Yahoo chart error for %s: %s", symbol, e)
        raise _bad_gateway(e)
    if cached:
        return {**payload, "_cached": True}
    return payload


@router.get("/alphavantage/{symbol}", response_model=dict[str, Any])
async def alpha_vantage_quote(
    symbol: str,
    apikey: Optional[str] = Query(None),
    service: QuoteCacheService = Depends(get_quote_service),
):
    """Fresh Alpha Vantage quote (always fetched, then stored)."""
    try:
        quote = await service.get_alpha_vantage_quote(symbol, apikey)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (UpstreamError, QuoteParseError) as e:
        logger.warning("Alpha Vantage error for %s: %s", symbol, e)
        raise _bad_gateway(e)
    return quote.to_dict()


@router.get("/lookup/{symbol}/{on_date}", response_model=PointLookupResponse)
async def lookup_price(
    symbol: str,
    on_date: date,
    service: QuoteCacheService = Depends(get_quote_service),
):
    """Close on the last trading day at or before ``on_date``."""
    try:
        found = await service.lookup(symbol, on_date.isoformat())
    except (UpstreamError, QuoteParseError) as e:
        logger.warning("Lookup error for %s %s: %s", symbol, on_date, e)
        raise _bad_gateway(e)
    return PointLookupResponse(
        symbol=found.symbol,
        companyName=found.company_name,
        price=found.price,
        date=found.date,
        requestedDate=found.requested_date,
        daysOff=found.days_off,
        isHistorical=found.is_historical,
        currency=found.currency,
    )


@router.post("/history-multi", response_model=dict[str, Any])
async def history_multi(
    body: HistoryRequest,
    service: QuoteCacheService = Depends(get_quote_service),
):
    """Daily close series per symbol as ``[[date, close], ...]``."""
    results, errors = await service.history_multi(body.symbols, body.range_)
    return {
        "results": {sym: [[d, c] for d, c in points] for sym, points in results.items()},
        "errors": errors,
    }


@router.post("/correlation", response_model=dict[str, Any])
async def correlation(
    body: HistoryRequest,
    service: QuoteCacheService = Depends(get_quote_service),
):
    """Correlation matrix of daily returns."""
    results, errors = await service.history_multi(body.symbols, body.range_)
    return {**correlation_matrix(results), "range": body.range_, "errors": errors}


@router.get("/dividend/{symbol}", response_model=dict[str, Any])
async def dividend(
    symbol: str,
    service: QuoteCacheService = Depends(get_quote_service),
):
    """Trailing-twelve-month dividend summary."""
    try:
        summary = await service.get_dividends(symbol)
    except (UpstreamError, QuoteParseError) as e:
        raise _bad_gateway(e)
    return summary.to_dict()


@router.post("/dividend/batch", response_model=dict[str, Any])
async def dividend_batch(
    body: DividendBatchRequest,
    service: QuoteCacheService = Depends(get_quote_service),
):
    results, errors = await service.get_dividends_batch(body.symbols)
    return {
        "results": {sym: s.to_dict() for sym, s in results.items()},
        "errors": errors,
    }
