"""Test fixtures and sample data."""
from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from models import Portfolio, Transaction

# A Wednesday afternoon in UTC: inside the default market-hours window
NOW = datetime(2024, 6, 12, 15, 0, tzinfo=timezone.utc)


async def add_transaction(
    db: AsyncSession,
    portfolio: Portfolio,
    symbol: str,
    quantity: float,
    price: float,
    price_usd: float | None = None,
    date: str = "2024-01-15",
    type: str = "BUY",
    currency: str = "USD",
) -> Transaction:
    """Insert a transaction row directly, bypassing FX conversion.

    This is a helper function (not a fixture) for tests that need several
    transactions with explicit USD prices.
    """
    tx = Transaction(
        portfolio_id=portfolio.id,
        symbol=symbol,
        name=symbol,
        quantity=quantity,
        price=price,
        price_usd=price if price_usd is None else price_usd,
        date=date,
        type=type,
        currency=currency,
    )
    db.add(tx)
    await db.commit()
    await db.refresh(tx)
    return tx


@pytest.fixture
async def portfolio(db: AsyncSession) -> Portfolio:
    """Create a test portfolio."""
    p = Portfolio(name="Main")
    db.add(p)
    await db.commit()
    await db.refresh(p)
    return p


@pytest.fixture
async def other_portfolio(db: AsyncSession) -> Portfolio:
    """Create a second test portfolio."""
    p = Portfolio(name="Retirement", color="#10b981")
    db.add(p)
    await db.commit()
    await db.refresh(p)
    return p
