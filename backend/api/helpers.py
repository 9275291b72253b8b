"""Shared API helpers for route handlers.

Service getters read the per-process instances created in ``main.lifespan``
from ``app.state``; tests replace them via ``app.dependency_overrides``.
"""

from typing import TypeVar

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from database import Base
from services.api_usage_service import ApiUsageService
from services.fx_service import FxService
from services.quote_service import QuoteCacheService
from services.transaction_service import TransactionService

T = TypeVar("T", bound=Base)


async def get_or_404(db: AsyncSession, model: type[T], entity_id: str, detail: str = "Not found") -> T:
    """Fetch a single entity by primary key or raise 404.

    Args:
        db: Database session.
        model: SQLAlchemy model class.
        entity_id: Primary key value.
        detail: Error message for the 404 response.

    Returns:
        The entity instance.

    Raises:
        HTTPException: 404 if the entity doesn't exist.
    """
    entity = await db.get(model, entity_id)
    if not entity:
        raise HTTPException(status_code=404, detail=detail)
    return entity


def get_quote_service(request: Request) -> QuoteCacheService:
    return request.app.state.quote_service


def get_fx_service(request: Request) -> FxService:
    return request.app.state.fx_service


def get_usage_service(request: Request) -> ApiUsageService:
    return request.app.state.usage_service


def get_transaction_service(
    fx: FxService = Depends(get_fx_service),
    quotes: QuoteCacheService = Depends(get_quote_service),
) -> TransactionService:
    """TransactionService wired to the shared FX and quote services."""
    return TransactionService(fx, price_lookup=quotes.lookup_split_adjusted)
