"""FX service - cached live/historical rates and the cost-basis fallback chain.

Rate conventions:
    live pair ``EUR``                -> USD to EUR (1 USD = x EUR)
    historical ``hist_{date}_{A}_{B}`` -> A to B on that date (permanent)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from integrations.exceptions import UpstreamError
from integrations.frankfurter_client import FrankfurterClient
from models.fx_rate import FxRate
from services.freshness import is_fresh
from utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

BASE_CURRENCY = "USD"


def historical_pair(date: str, from_ccy: str, to_ccy: str) -> str:
    return f"hist_{date}_{from_ccy.upper()}_{to_ccy.upper()}"


@dataclass
class FxTable:
    """Live rates vs USD; ``fallback`` marks last-known values after a failure."""

    rates: dict[str, float]
    fallback: bool = False

    def to_dict(self) -> dict:
        data: dict = dict(self.rates)
        if self.fallback:
            data["_fallback"] = True
        return data


class FxService:
    """Reads and refreshes the ``fx_cache`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: FrankfurterClient,
        clock: Optional[Clock] = None,
        ttl_minutes: Optional[int] = None,
        majors: Optional[list[str]] = None,
    ):
        self._session_factory = session_factory
        self._client = client
        self._clock = clock or SystemClock()
        self._ttl = settings.FX_TTL_MIN if ttl_minutes is None else ttl_minutes
        self._majors = [c.upper() for c in (majors or settings.FX_MAJORS)]

    async def get_cached(self, pair: str) -> Optional[tuple[float, datetime]]:
        async with self._session_factory() as session:
            row = await session.get(FxRate, pair)
            if row is None:
                return None
            updated_at = row.updated_at
            if updated_at is not None and updated_at.tzinfo is None:
                updated_at = updated_at.replace(tzinfo=timezone.utc)
            return row.rate, updated_at

    async def put(self, pair: str, rate: float) -> None:
        now = self._clock.now().astimezone(timezone.utc).replace(tzinfo=None)
        stmt = sqlite_insert(FxRate).values(pair=pair, rate=rate, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[FxRate.pair], set_={"rate": rate, "updated_at": now}
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def _last_known(self) -> dict[str, float]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(FxRate).where(FxRate.pair.in_(self._majors))
            )
            return {row.pair: row.rate for row in result.scalars()}

    async def get_all(self) -> FxTable:
        """Rates for the configured majors vs USD.

        Fresh cached rates are served as-is; the rest are fetched in one
        call. If that call fails, every last-known rate is returned with
        ``fallback=True``.
        """
        now = self._clock.now()
        rates: dict[str, float] = {BASE_CURRENCY: 1.0}
        to_fetch: list[str] = []
        for ccy in self._majors:
            cached = await self.get_cached(ccy)
            if cached and cached[1] and is_fresh(cached[1], self._ttl, now):
                rates[ccy] = cached[0]
            else:
                to_fetch.append(ccy)

        if not to_fetch:
            return FxTable(rates)

        try:
            fetched = await self._client.latest(BASE_CURRENCY, to_fetch)
        except UpstreamError as e:
            logger.warning("FX refresh failed, serving last-known rates: %s", e)
            fallback = {BASE_CURRENCY: 1.0}
            fallback.update(await self._last_known())
            return FxTable(fallback, fallback=True)

        for ccy, rate in fetched.items():
            rates[ccy] = rate
            await self.put(ccy, rate)
        return FxTable(rates)

    async def get_historical(self, date: str, from_ccy: str, to_ccy: str) -> tuple[float, bool]:
        """Date-pinned rate; cached permanently once fetched.

        Returns:
            ``(rate, cached)``.

        Raises:
            UpstreamError: Not cached and the provider call failed.
        """
        from_ccy, to_ccy = from_ccy.upper(), to_ccy.upper()
        if from_ccy == to_ccy:
            return 1.0, True
        pair = historical_pair(date, from_ccy, to_ccy)
        cached = await self.get_cached(pair)
        if cached:
            return cached[0], True
        rate = await self._client.historical(date, from_ccy, to_ccy)
        await self.put(pair, rate)
        logger.info("FX %s->%s on %s: %s", from_ccy, to_ccy, date, rate)
        return rate, False


# ---------------------------------------------------------------------------
# Cost-basis conversion fallback chain
# ---------------------------------------------------------------------------


class FxStrategy(Protocol):
    """One way of getting a native->USD multiplier for a transaction."""

    name: str
    exact: bool

    async def rate(self, currency: str, date: str) -> Optional[float]:
        ...


class CachedHistoricalRate:
    name = "cached_historical"
    exact = True

    def __init__(self, fx: FxService):
        self._fx = fx

    async def rate(self, currency: str, date: str) -> Optional[float]:
        cached = await self._fx.get_cached(historical_pair(date, currency, BASE_CURRENCY))
        return cached[0] if cached else None


class FetchedHistoricalRate:
    name = "fetched_historical"
    exact = True

    def __init__(self, fx: FxService):
        self._fx = fx

    async def rate(self, currency: str, date: str) -> Optional[float]:
        try:
            rate, _ = await self._fx.get_historical(date, currency, BASE_CURRENCY)
        except UpstreamError as e:
            logger.warning("Historical FX %s->USD on %s unavailable: %s", currency, date, e)
            return None
        return rate


class CachedLiveRate:
    """Today's cached USD->ccy rate, inverted. Approximate for past dates."""

    name = "cached_live"
    exact = False

    def __init__(self, fx: FxService):
        self._fx = fx

    async def rate(self, currency: str, date: str) -> Optional[float]:
        cached = await self._fx.get_cached(currency)
        if not cached or not cached[0]:
            return None
        return 1.0 / cached[0]


class Unconverted:
    """Last resort: treat the native price as if it were USD."""

    name = "unconverted"
    exact = False

    async def rate(self, currency: str, date: str) -> Optional[float]:
        return 1.0


@dataclass
class FxConversion:
    price_usd: float
    exact: bool
    strategy: str
    rate: float


class FxFallbackChain:
    """Ordered strategies, evaluated until one yields a rate."""

    def __init__(self, strategies: list[FxStrategy]):
        if not strategies:
            raise ValueError("FxFallbackChain needs at least one strategy")
        self.strategies = strategies

    @classmethod
    def default(cls, fx: FxService) -> "FxFallbackChain":
        return cls([
            CachedHistoricalRate(fx),
            FetchedHistoricalRate(fx),
            CachedLiveRate(fx),
            Unconverted(),
        ])

    async def convert(self, price: float, currency: str, date: str) -> FxConversion:
        """Convert a native price to USD as of ``date``."""
        currency = (currency or BASE_CURRENCY).upper()
        if currency == BASE_CURRENCY:
            return FxConversion(price, True, "identity", 1.0)

        for strategy in self.strategies:
            rate = await strategy.rate(currency, date)
            if rate is None:
                continue
            if not strategy.exact:
                logger.warning(
                    "FX %s->USD on %s approximated via %s", currency, date, strategy.name
                )
            return FxConversion(price * rate, strategy.exact, strategy.name, rate)

        logger.warning("FX %s->USD on %s: no strategy produced a rate", currency, date)
        return FxConversion(price, False, "none", 1.0)
