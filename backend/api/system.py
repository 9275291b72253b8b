"""Usage, health and stats endpoints."""

import time

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.helpers import get_quote_service, get_usage_service
from database import get_db
from models.portfolio import Portfolio
from models.transaction import Transaction
from schemas.system import ApiUsageResponse, HealthResponse, StatsResponse
from services.api_usage_service import ApiUsageService
from services.quote_service import QuoteCacheService

API_NAME = "Portfolio Tracker API"
API_VERSION = "3.0"

router = APIRouter(tags=["system"])

_started_at = time.monotonic()


async def _counts(db: AsyncSession) -> tuple[int, int]:
    portfolios = await db.scalar(
        select(func.count()).select_from(Portfolio).where(Portfolio.deleted_at.is_(None))
    )
    transactions = await db.scalar(select(func.count()).select_from(Transaction))
    return int(portfolios or 0), int(transactions or 0)


@router.get("/api/av/usage", response_model=ApiUsageResponse)
async def av_usage(service: ApiUsageService = Depends(get_usage_service)):
    """Alpha Vantage calls today, the daily limit and the last 7 days."""
    return await service.summary()


@router.get("/api/health", response_model=HealthResponse)
async def health(
    db: AsyncSession = Depends(get_db),
    quotes: QuoteCacheService = Depends(get_quote_service),
):
    portfolios, transactions = await _counts(db)
    return HealthResponse(
        status="ok",
        version=API_VERSION,
        portfolios=portfolios,
        transactions=transactions,
        cacheHits=quotes.cache_hits,
        cacheMisses=quotes.cache_misses,
        staleServed=quotes.stale_served,
        uptime=time.monotonic() - _started_at,
    )


@router.get("/api/stats", response_model=StatsResponse)
async def stats(
    db: AsyncSession = Depends(get_db),
    quotes: QuoteCacheService = Depends(get_quote_service),
):
    portfolios, transactions = await _counts(db)
    return StatsResponse(
        portfolios=portfolios,
        transactions=transactions,
        cacheSize=await quotes.store.count(),
        **quotes.stats(),
    )


@router.get("/")
async def root():
    return {"name": API_NAME, "version": API_VERSION, "status": "ok"}
