"""Pytest configuration and fixtures."""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

import models  # noqa: F401
from api.helpers import get_fx_service, get_quote_service, get_usage_service
from database import Base, get_db
from integrations.market_data_protocol import QuoteSource
from main import app
from services.api_usage_service import ApiUsageService
from services.fx_service import FxService
from services.quote_service import QuoteCacheService
from services.quote_store import QuoteStore
from utils.clock import FixedClock
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import NOW, other_portfolio, portfolio  # noqa: F401
from tests.fixtures.mocks import MockFxClient, MockQuoteProvider

SAMPLE_LATEST_RATES = {"EUR": 0.9, "GBP": 0.8, "CHF": 0.88, "JPY": 150.0, "CAD": 1.35, "AUD": 1.5}


@pytest.fixture(name="engine")
async def engine_fixture(tmp_path):
    """Create a file-backed SQLite database for testing."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(name="session_factory")
def session_factory_fixture(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture(name="db")
async def db_fixture(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(name="clock")
def clock_fixture():
    return FixedClock(NOW)


@pytest.fixture(name="store")
def store_fixture(session_factory, clock):
    return QuoteStore(session_factory, clock)


@pytest.fixture(name="yahoo")
def yahoo_fixture():
    """Mock Yahoo provider with no payloads; tests fill ``payloads``."""
    return MockQuoteProvider()


@pytest.fixture(name="alpha_vantage")
def alpha_vantage_fixture():
    return MockQuoteProvider(source=QuoteSource.ALPHA_VANTAGE)


@pytest.fixture(name="quote_service")
def quote_service_fixture(yahoo, alpha_vantage, store, clock):
    return QuoteCacheService(
        {QuoteSource.YAHOO: yahoo, QuoteSource.ALPHA_VANTAGE: alpha_vantage},
        store,
        clock=clock,
        ttl_override_minutes=None,
    )


@pytest.fixture(name="fx_client")
def fx_client_fixture():
    return MockFxClient(latest_rates=dict(SAMPLE_LATEST_RATES))


@pytest.fixture(name="fx_service")
def fx_service_fixture(session_factory, fx_client, clock):
    return FxService(session_factory, fx_client, clock=clock, ttl_minutes=60)


@pytest.fixture(name="usage_service")
def usage_service_fixture(session_factory, clock):
    return ApiUsageService(session_factory, clock=clock, daily_limit=25)


@pytest.fixture(name="client")
async def client_fixture(session_factory, quote_service, fx_service, usage_service):
    """Create an API client backed by the test database and mock providers."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_quote_service] = lambda: quote_service
    app.dependency_overrides[get_fx_service] = lambda: fx_service
    app.dependency_overrides[get_usage_service] = lambda: usage_service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
