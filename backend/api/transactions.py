"""Transaction (cost-basis ledger) API endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from api.helpers import get_or_404, get_transaction_service
from database import get_db
from models.portfolio import Portfolio
from schemas.transaction import RecalculateFxResponse, TransactionCreate, TransactionResponse
from services.transaction_service import PriceUnavailableError, TransactionService

router = APIRouter(prefix="/api", tags=["transactions"])


@router.get("/portfolios/{portfolio_id}/transactions", response_model=list[TransactionResponse])
async def list_transactions(portfolio_id: str, db: AsyncSession = Depends(get_db)):
    """Transactions of a portfolio, newest first."""
    return await TransactionService.list_for_portfolio(db, portfolio_id)


@router.post(
    "/portfolios/{portfolio_id}/transactions",
    response_model=TransactionResponse,
    status_code=201,
)
async def create_transaction(
    portfolio_id: str,
    body: TransactionCreate,
    db: AsyncSession = Depends(get_db),
    service: TransactionService = Depends(get_transaction_service),
):
    """Record a BUY/SELL. ``price_usd`` is fixed now from the historical FX rate."""
    await get_or_404(db, Portfolio, portfolio_id, "Portfolio not found")
    try:
        tx = await service.create(db, portfolio_id, body)
    except PriceUnavailableError as e:
        raise HTTPException(status_code=422, detail=str(e))
    await db.commit()
    return tx


@router.put("/transactions/{transaction_id}", response_model=TransactionResponse)
async def update_transaction(
    transaction_id: str,
    body: TransactionCreate,
    db: AsyncSession = Depends(get_db),
    service: TransactionService = Depends(get_transaction_service),
):
    try:
        tx = await service.update(db, transaction_id, body)
    except PriceUnavailableError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if tx is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    await db.commit()
    return tx


@router.delete("/transactions/{transaction_id}")
async def delete_transaction(transaction_id: str, db: AsyncSession = Depends(get_db)):
    deleted = await TransactionService.delete(db, transaction_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Transaction not found")
    await db.commit()
    return {"ok": True}


@router.post("/transactions/recalculate-fx", response_model=RecalculateFxResponse)
async def recalculate_fx(
    db: AsyncSession = Depends(get_db),
    service: TransactionService = Depends(get_transaction_service),
):
    """Repair non-USD rows saved without conversion."""
    result = await service.recalculate_fx(db)
    await db.commit()
    return result
