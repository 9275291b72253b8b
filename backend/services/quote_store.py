"""Quote store - persistent last-known quotes and raw provider payloads.

The store is deliberately dumb: it reads and overwrites rows and never
decides whether a row is fresh. Composing it with the freshness policy is
the caller's job.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from integrations.market_data_protocol import Quote, RawPayload
from models.quote_cache import QuoteCacheEntry, RawPayloadEntry
from utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


def _as_utc(moment: datetime) -> datetime:
    """SQLite drops tzinfo; stored timestamps are UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class QuoteStore:
    """Key-value access to the ``quotes_cache`` and ``raw_payload_cache`` tables.

    Each operation opens its own short-lived session from ``session_factory``
    and commits immediately, so concurrent batch tasks never share a
    session and other requests see writes right away.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Optional[Clock] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    def _now_utc(self) -> datetime:
        # Stored naive, in UTC
        return self._clock.now().astimezone(timezone.utc).replace(tzinfo=None)

    async def get(self, key: str) -> Optional[tuple[Quote, datetime]]:
        """Return ``(quote, updated_at)`` for a key, or None if never stored."""
        async with self._session_factory() as session:
            row = await session.get(QuoteCacheEntry, key)
            if row is None:
                return None
            try:
                quote = Quote.from_dict(json.loads(row.data))
            except (ValueError, KeyError, TypeError):
                logger.warning("Discarding unreadable cached quote for %s", key, exc_info=True)
                return None
            return quote, _as_utc(row.updated_at)

    async def put(
        self,
        key: str,
        quote: Quote,
        source: Optional[str] = None,
        market_date: Optional[str] = None,
    ) -> datetime:
        """Overwrite the entry for ``key`` and stamp it with the clock's now.

        Returns:
            The ``updated_at`` written (UTC).
        """
        now = self._now_utc()
        values = {
            "key": key,
            "symbol": quote.symbol,
            "data": json.dumps(quote.to_dict()),
            "source": source or quote.source.value,
            "market_date": market_date or quote.market_date,
            "updated_at": now,
        }
        stmt = sqlite_insert(QuoteCacheEntry).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[QuoteCacheEntry.key],
            set_={k: v for k, v in values.items() if k != "key"},
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()
        logger.debug("Stored quote %s (source=%s)", key, values["source"])
        return _as_utc(now)

    async def get_raw(self, key: str) -> Optional[tuple[RawPayload, datetime]]:
        """Return ``(payload, updated_at)`` from the raw payload table."""
        async with self._session_factory() as session:
            row = await session.get(RawPayloadEntry, key)
            if row is None:
                return None
            try:
                payload: Any = json.loads(row.data)
            except ValueError:
                logger.warning("Discarding unreadable raw payload for %s", key, exc_info=True)
                return None
            return payload, _as_utc(row.updated_at)

    async def put_raw(
        self,
        key: str,
        symbol: str,
        payload: RawPayload,
        source: str = "yahoo",
    ) -> datetime:
        """Overwrite a raw provider payload."""
        now = self._now_utc()
        values = {
            "key": key,
            "symbol": symbol,
            "data": json.dumps(payload),
            "source": source,
            "updated_at": now,
        }
        stmt = sqlite_insert(RawPayloadEntry).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[RawPayloadEntry.key],
            set_={k: v for k, v in values.items() if k != "key"},
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()
        logger.debug("Stored raw payload %s", key)
        return _as_utc(now)

    async def count(self) -> int:
        """Number of parsed-quote entries (including intraday keys)."""
        async with self._session_factory() as session:
            result = await session.execute(select(func.count()).select_from(QuoteCacheEntry))
            return int(result.scalar_one())
