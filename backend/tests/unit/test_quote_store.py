"""Tests for QuoteStore."""

from datetime import timedelta

from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from integrations.market_data_protocol import Quote, QuoteSource
from models.quote_cache import QuoteCacheEntry
from tests.fixtures import NOW


def _quote(symbol: str = "AAPL", price: float = 200.0, source: QuoteSource = QuoteSource.YAHOO) -> Quote:
    return Quote(
        symbol=symbol,
        price=price,
        prev_close=195.0,
        open=196.0,
        change=price - 195.0,
        change_pct=(price - 195.0) / 195.0 * 100,
        currency="USD",
        market_date="2024-06-12",
        source=source,
        fetched_at=int(NOW.timestamp() * 1000),
        refs={"1Y": 150.0},
        name="Apple",
    )


class TestQuoteStore:
    async def test_get_missing_returns_none(self, store):
        assert await store.get("AAPL") is None

    async def test_put_then_get(self, store):
        written_at = await store.put("AAPL", _quote())

        cached = await store.get("AAPL")

        assert cached is not None
        quote, updated_at = cached
        assert quote == _quote()
        assert updated_at == NOW
        assert written_at == NOW

    async def test_put_overwrites_and_restamps(self, store, clock):
        await store.put("AAPL", _quote(price=200.0))
        clock.set(NOW + timedelta(minutes=30))
        await store.put("AAPL", _quote(price=210.0))

        quote, updated_at = await store.get("AAPL")

        assert quote.price == 210.0
        assert updated_at == NOW + timedelta(minutes=30)
        assert await store.count() == 1

    async def test_source_is_preserved(self, store):
        await store.put("MSFT", _quote("MSFT", source=QuoteSource.ALPHA_VANTAGE))
        quote, _ = await store.get("MSFT")
        assert quote.source == QuoteSource.ALPHA_VANTAGE

    async def test_stale_flag_round_trips(self, store):
        stale = _quote()
        stale.stale = True
        await store.put("AAPL", stale)
        quote, _ = await store.get("AAPL")
        assert quote.stale is True

    async def test_intraday_key_is_independent(self, store):
        await store.put("AAPL", _quote(price=200.0))
        await store.put("AAPL_intraday", _quote(price=201.0))

        assert (await store.get("AAPL"))[0].price == 200.0
        assert (await store.get("AAPL_intraday"))[0].price == 201.0
        assert await store.count() == 2

    async def test_unreadable_row_is_treated_as_missing(self, store, session_factory):
        async with session_factory() as session:
            await session.execute(
                sqlite_insert(QuoteCacheEntry).values(
                    key="BAD", symbol="BAD", data="{not json", source="yahoo",
                    market_date="2024-06-12", updated_at=NOW.replace(tzinfo=None),
                )
            )
            await session.commit()

        assert await store.get("BAD") is None

    async def test_raw_payload_round_trip(self, store):
        payload = {"chart": {"result": [{"meta": {"symbol": "AAPL"}}], "error": None}}
        await store.put_raw("AAPL_1y_1d", "AAPL", payload)

        cached = await store.get_raw("AAPL_1y_1d")

        assert cached == (payload, NOW)
        assert await store.get_raw("MSFT_1y_1d") is None
