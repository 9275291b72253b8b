"""Integration tests for the valuation endpoint."""

from tests.fixtures import add_transaction
from tests.fixtures.mocks import make_chart


def _chart(symbol, price, currency="USD"):
    return make_chart(
        symbol, [("2024-06-11", price - 1), ("2024-06-12", price)], price=price, currency=currency
    )


class TestValuation:
    async def test_aggregates_across_portfolios(self, client, db, portfolio, other_portfolio, yahoo):
        yahoo.payloads["AAPL"] = _chart("AAPL", 200.0)
        await add_transaction(db, portfolio, "AAPL", 10, 100.0)
        await add_transaction(db, other_portfolio, "AAPL", 10, 150.0)

        response = await client.get("/api/valuation")

        assert response.status_code == 200
        data = response.json()
        (node,) = data["nodes"]
        assert node["qty"] == 20
        assert node["costUSD"] == 2500.0
        assert node["valueUSD"] == 4000.0
        assert abs(node["glPerf"] - 60.0) < 1e-9
        assert data["summary"]["totalValueUSD"] == 4000.0
        assert data["fxFallback"] is False

    async def test_portfolio_view_and_filter(self, client, db, portfolio, other_portfolio, yahoo):
        yahoo.payloads["AAPL"] = _chart("AAPL", 200.0)
        await add_transaction(db, portfolio, "AAPL", 10, 100.0)
        await add_transaction(db, other_portfolio, "AAPL", 10, 150.0)

        response = await client.get(
            "/api/valuation", params={"portfolio_ids": portfolio.id, "view": "portfolio"}
        )

        (node,) = response.json()["nodes"]
        assert node["portfolioId"] == portfolio.id
        assert node["qty"] == 10

    async def test_display_currency_and_missing_quote(self, client, db, portfolio, yahoo):
        yahoo.payloads["AAPL"] = _chart("AAPL", 200.0)
        await add_transaction(db, portfolio, "AAPL", 1, 100.0)
        await add_transaction(db, portfolio, "GONE", 1, 50.0)

        response = await client.get("/api/valuation", params={"currency": "eur"})

        data = response.json()
        assert data["currency"] == "EUR"
        assert data["summary"]["missingQuotes"] == ["GONE"]
        assert "GONE" in data["quoteErrors"]
        assert abs(data["summary"]["totalValue"] - 250.0 * 0.9) < 1e-9

    async def test_empty(self, client):
        response = await client.get("/api/valuation")

        data = response.json()
        assert data["nodes"] == []
        assert data["summary"]["totalValueUSD"] == 0

    async def test_invalid_period(self, client):
        response = await client.get("/api/valuation", params={"period": "5Y"})
        assert response.status_code == 400

    async def test_invalid_view(self, client):
        response = await client.get("/api/valuation", params={"view": "flat"})
        assert response.status_code == 400

    async def test_unknown_display_currency(self, client, db, portfolio, yahoo):
        yahoo.payloads["AAPL"] = _chart("AAPL", 200.0)
        await add_transaction(db, portfolio, "AAPL", 1, 100.0)

        response = await client.get("/api/valuation", params={"currency": "xyz"})

        assert response.status_code == 400
        assert "XYZ" in response.json()["detail"]

    async def test_invalid_portfolio_id(self, client):
        response = await client.get("/api/valuation", params={"portfolio_ids": "not-a-uuid"})
        assert response.status_code == 400
