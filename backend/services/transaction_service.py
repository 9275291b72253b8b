"""Transaction service - cost-basis ledger with server-side USD conversion.

``price_usd`` is fixed when a row is written, from the historical FX rate
for the transaction date, and is never recomputed on read. Later moves in
live rates therefore never change recorded cost basis.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from integrations.exceptions import QuoteParseError, UpstreamError
from integrations.market_data_protocol import SplitAdjustedPrice
from models.transaction import Transaction
from schemas.transaction import TransactionCreate
from services.fx_service import BASE_CURRENCY, FxFallbackChain, FxService

logger = logging.getLogger(__name__)

PriceLookup = Callable[[str, str], Awaitable[SplitAdjustedPrice]]

# Rows whose price_usd is this close to price were saved without conversion
UNCONVERTED_TOLERANCE = 0.001


class PriceUnavailableError(Exception):
    """No price was given and none could be looked up."""


class TransactionService:
    """CRUD for transactions plus the FX repair pass.

    Follows the usual transaction convention: methods ``flush()``, the API
    layer ``commit()``s.
    """

    def __init__(
        self,
        fx: FxService,
        chain: Optional[FxFallbackChain] = None,
        price_lookup: Optional[PriceLookup] = None,
        throttle_seconds: float = 0.3,
    ):
        self._fx = fx
        self._chain = chain or FxFallbackChain.default(fx)
        self._price_lookup = price_lookup
        self._throttle = throttle_seconds

    @staticmethod
    async def list_for_portfolio(db: AsyncSession, portfolio_id: str) -> list[Transaction]:
        result = await db.execute(
            select(Transaction)
            .where(Transaction.portfolio_id == portfolio_id)
            .order_by(Transaction.date.desc(), Transaction.created_at.desc())
        )
        return list(result.scalars())

    @staticmethod
    async def list_for_portfolios(db: AsyncSession, portfolio_ids: list[str]) -> list[Transaction]:
        result = await db.execute(
            select(Transaction)
            .where(Transaction.portfolio_id.in_(portfolio_ids))
            .order_by(Transaction.date, Transaction.created_at)
        )
        return list(result.scalars())

    @staticmethod
    async def get(db: AsyncSession, transaction_id: str) -> Optional[Transaction]:
        return await db.get(Transaction, transaction_id)

    async def _resolve_price(self, data: TransactionCreate) -> tuple[float, str]:
        """Native price and currency, looking the price up if it is missing."""
        currency = data.currency
        if data.price:
            return data.price, currency or BASE_CURRENCY

        if self._price_lookup is None:
            raise PriceUnavailableError("price is required")
        try:
            found = await self._price_lookup(data.symbol, data.date.isoformat())
        except (UpstreamError, QuoteParseError) as e:
            raise PriceUnavailableError(
                f"No price for {data.symbol} on {data.date.isoformat()}: {e}"
            ) from e
        logger.info(
            "Looked up price for %s on %s: %.4f %s (split x%g)",
            data.symbol, data.date, found.price, found.currency, found.split_multiplier,
        )
        return found.price, currency or found.currency

    async def _price_usd(
        self, price: float, currency: str, date: str, client_price_usd: Optional[float]
    ) -> tuple[float, bool]:
        if client_price_usd and client_price_usd > 0:
            return client_price_usd, True
        conversion = await self._chain.convert(price, currency, date)
        return conversion.price_usd, conversion.exact

    async def create(
        self, db: AsyncSession, portfolio_id: str, data: TransactionCreate
    ) -> Transaction:
        price, currency = await self._resolve_price(data)
        date = data.date.isoformat()
        price_usd, exact = await self._price_usd(price, currency, date, data.price_usd)

        tx = Transaction(
            portfolio_id=portfolio_id,
            symbol=data.symbol,
            name=data.name,
            quantity=data.quantity,
            price=price,
            price_usd=price_usd,
            price_usd_exact=exact,
            date=date,
            type=data.type,
            currency=currency,
            notes=data.notes,
        )
        db.add(tx)
        await db.flush()
        logger.info(
            "TX saved: %s price=%s %s -> price_usd=%.4f (exact=%s)",
            tx.symbol, price, currency, price_usd, exact,
        )
        return tx

    async def update(
        self, db: AsyncSession, transaction_id: str, data: TransactionCreate
    ) -> Optional[Transaction]:
        """Replace a transaction's fields, re-deriving ``price_usd``.

        Returns None if the transaction does not exist.
        """
        tx = await db.get(Transaction, transaction_id)
        if tx is None:
            return None

        price, currency = await self._resolve_price(data)
        date = data.date.isoformat()
        price_usd, exact = await self._price_usd(price, currency, date, data.price_usd)

        tx.symbol = data.symbol
        tx.name = data.name
        tx.quantity = data.quantity
        tx.price = price
        tx.price_usd = price_usd
        tx.price_usd_exact = exact
        tx.date = date
        tx.type = data.type
        tx.currency = currency
        tx.notes = data.notes
        await db.flush()
        return tx

    @staticmethod
    async def delete(db: AsyncSession, transaction_id: str) -> bool:
        tx = await db.get(Transaction, transaction_id)
        if tx is None:
            return False
        await db.delete(tx)
        await db.flush()
        return True

    async def recalculate_fx(self, db: AsyncSession) -> dict[str, int]:
        """Repair non-USD rows that were saved without conversion.

        A row needs repair when ``price_usd`` is 0 or equal to ``price``.
        Only historical rates are used; rows without one are skipped.
        Upstream fetches are spaced by ``throttle_seconds``.
        """
        result = await db.execute(
            select(Transaction).where(
                Transaction.currency.is_not(None), Transaction.currency != BASE_CURRENCY
            )
        )
        txs = list(result.scalars())

        fixed = skipped = failed = 0
        for tx in txs:
            unconverted = (
                not tx.price_usd or abs(tx.price_usd - tx.price) < UNCONVERTED_TOLERANCE
            )
            if not unconverted:
                skipped += 1
                continue
            try:
                rate, cached = await self._fx.get_historical(tx.date, tx.currency, BASE_CURRENCY)
            except UpstreamError as e:
                logger.warning("Recalc TX %s failed: %s", tx.id, e)
                failed += 1
                await asyncio.sleep(self._throttle)
                continue

            tx.price_usd = tx.price * rate
            tx.price_usd_exact = True
            fixed += 1
            logger.info(
                "Recalc TX %s: %s %s -> $%.4f (rate %s)",
                tx.id, tx.price, tx.currency, tx.price_usd, rate,
            )
            if not cached:
                await asyncio.sleep(self._throttle)

        await db.flush()
        return {"total": len(txs), "fixed": fixed, "skipped": skipped, "failed": failed}
