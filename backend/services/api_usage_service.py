"""API usage service - persisted daily call counter for quota-limited providers."""

import logging
from datetime import timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from models.api_usage import ApiUsage
from utils.clock import Clock, SystemClock, utc_date_str

logger = logging.getLogger(__name__)


class ApiUsageService:
    """Counts Alpha Vantage calls per UTC date.

    The counter only ever goes up; a new date starts a new row.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Optional[Clock] = None,
        daily_limit: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self.daily_limit = settings.AV_DAILY_LIMIT if daily_limit is None else daily_limit

    def _today(self) -> str:
        return utc_date_str(self._clock.now())

    async def increment(self, units: int = 1) -> None:
        """Add ``units`` to today's counter (upsert)."""
        today = self._today()
        # Stored naive, in UTC
        now = self._clock.now().astimezone(timezone.utc).replace(tzinfo=None)
        stmt = sqlite_insert(ApiUsage).values(date=today, calls=units, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[ApiUsage.date],
            set_={"calls": ApiUsage.calls + units, "updated_at": now},
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()
        logger.debug("Alpha Vantage usage +%d on %s", units, today)

    async def calls_today(self) -> int:
        async with self._session_factory() as session:
            row = await session.get(ApiUsage, self._today())
            return row.calls if row else 0

    async def history(self, days: int = 7) -> list[dict]:
        """Per-day counts for the last ``days`` days, oldest first."""
        since = utc_date_str(self._clock.now() - timedelta(days=days))
        async with self._session_factory() as session:
            result = await session.execute(
                select(ApiUsage).where(ApiUsage.date >= since).order_by(ApiUsage.date)
            )
            return [{"date": row.date, "calls": row.calls} for row in result.scalars()]

    async def summary(self) -> dict:
        """Today's usage against the daily limit, plus recent history."""
        used = await self.calls_today()
        return {
            "date": self._today(),
            "today": used,
            "limit": self.daily_limit,
            "remaining": max(0, self.daily_limit - used),
            "history": await self.history(),
        }
