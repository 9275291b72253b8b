"""Valuation API endpoint - server-side run of the valuation reconstructor."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.helpers import get_fx_service, get_quote_service
from database import get_db
from integrations.market_data_protocol import QuoteSource
from models.portfolio import Portfolio
from services.fx_service import FxService
from services.quote_service import QuoteCacheService
from services.transaction_service import TransactionService
from services.valuation_service import VALUATION_PERIODS, Valuation, reconstruct
from utils.query_params import parse_portfolio_ids

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/valuation", tags=["valuation"])

VIEWS = ("aggregated", "portfolio")


@router.get("", response_model=dict[str, Any])
async def get_valuation(
    portfolio_ids: Optional[str] = Query(None, description="Comma-separated portfolio IDs"),
    period: str = Query("1Y"),
    currency: str = Query("USD"),
    source: QuoteSource = Query(QuoteSource.YAHOO),
    view: str = Query("aggregated"),
    db: AsyncSession = Depends(get_db),
    quotes: QuoteCacheService = Depends(get_quote_service),
    fx: FxService = Depends(get_fx_service),
):
    """Positions, values and period performance for the selected portfolios.

    Quotes come from the batch cache (stale values included) and FX from
    the live table; symbols without a quote are valued at cost.
    """
    if period not in VALUATION_PERIODS:
        raise HTTPException(status_code=400, detail=f"period must be one of {VALUATION_PERIODS}")
    if view not in VIEWS:
        raise HTTPException(status_code=400, detail=f"view must be one of {VIEWS}")
    currency = currency.upper()

    ids = parse_portfolio_ids(portfolio_ids)
    if ids is None:
        result = await db.execute(select(Portfolio.id).where(Portfolio.deleted_at.is_(None)))
        ids = list(result.scalars())

    transactions = await TransactionService.list_for_portfolios(db, ids) if ids else []
    symbols = sorted({tx.symbol for tx in transactions})

    batch = await quotes.get_batch(symbols, source) if symbols else None
    table = await fx.get_all()
    if currency not in table.rates:
        raise HTTPException(status_code=400, detail=f"No FX rate for display currency {currency}")

    nodes, summary = reconstruct(
        transactions,
        batch.results if batch else {},
        table.rates,
        period=period,
        view=view,
    )
    valuation = Valuation(
        period=period,
        currency=currency,
        view=view,
        nodes=nodes,
        summary=summary,
        rates=table.rates,
        fx_fallback=table.fallback,
        quote_errors=batch.errors if batch else {},
    )
    return valuation.to_dict()
