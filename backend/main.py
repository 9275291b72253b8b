"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import fx, quotes, system, transactions, valuation
from api.rate_limit import RateLimitMiddleware
from config import settings
from database import get_session_local, init_db
from integrations.alpha_vantage_client import AlphaVantageClient
from integrations.frankfurter_client import FrankfurterClient
from integrations.market_data_protocol import QuoteSource
from integrations.yahoo_finance_client import YahooFinanceClient
from logging_config import setup_logging
from services.api_usage_service import ApiUsageService
from services.fx_service import FxService
from services.quote_service import QuoteCacheService
from services.quote_store import QuoteStore

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and the per-process services; close upstream clients on shutdown."""
    await init_db()

    SessionLocal = get_session_local()
    http_client = httpx.AsyncClient(timeout=settings.UPSTREAM_TIMEOUT_SECONDS)
    timeout = settings.UPSTREAM_TIMEOUT_SECONDS

    usage = ApiUsageService(SessionLocal)
    yahoo = YahooFinanceClient(http_client=http_client, timeout_seconds=timeout)
    alpha_vantage = AlphaVantageClient(
        api_key=settings.AV_API_KEY,
        http_client=http_client,
        usage_recorder=usage.increment,
        timeout_seconds=timeout,
    )
    frankfurter = FrankfurterClient(http_client=http_client, timeout_seconds=timeout)

    app.state.usage_service = usage
    app.state.fx_service = FxService(SessionLocal, frankfurter)
    app.state.quote_service = QuoteCacheService(
        {QuoteSource.YAHOO: yahoo, QuoteSource.ALPHA_VANTAGE: alpha_vantage},
        QuoteStore(SessionLocal),
        ttl_override_minutes=settings.QUOTE_TTL_OVERRIDE_MIN,
    )
    if settings.QUOTE_TTL_OVERRIDE_MIN is not None:
        logger.info("Quote TTL override active: %d min", settings.QUOTE_TTL_OVERRIDE_MIN)
    if not settings.AV_API_KEY:
        logger.info("AV_API_KEY not set; Alpha Vantage requests must pass a key")

    try:
        yield
    finally:
        await http_client.aclose()


app = FastAPI(
    title="Portfolio Tracker",
    description="Quote caching, FX conversion and portfolio valuation",
    version=system.API_VERSION,
    lifespan=lifespan,
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RateLimitMiddleware)

# Include API routers
app.include_router(quotes.router)
app.include_router(fx.router)
app.include_router(transactions.router)
app.include_router(valuation.router)
app.include_router(system.router)
