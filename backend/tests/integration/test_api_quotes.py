"""Integration tests for the quote API endpoints."""

from integrations.exceptions import RateLimitedError
from tests.fixtures.mocks import daily_points, make_av_payload, make_chart

AAPL_CHART = make_chart(
    "AAPL",
    [("2024-06-10", 190.0), ("2024-06-11", 195.0), ("2024-06-12", 198.0)],
    price=200.0,
    short_name="Apple",
)


class TestBatchQuotes:
    async def test_partitions_results_and_errors(self, client, yahoo):
        yahoo.payloads["AAPL"] = AAPL_CHART

        response = await client.post("/api/quotes/batch", json={"symbols": ["aapl", "NOPE"]})

        assert response.status_code == 200
        data = response.json()
        assert set(data["results"]) == {"AAPL"}
        assert set(data["errors"]) == {"NOPE"}
        quote = data["results"]["AAPL"]
        assert quote["price"] == 200.0
        assert quote["prevClose"] == 195.0
        assert quote["source"] == "yahoo"
        assert "_stale" not in quote

    async def test_stale_quote_marked(self, client, yahoo):
        yahoo.payloads["AAPL"] = AAPL_CHART
        await client.post("/api/quotes/batch", json={"symbols": ["AAPL"]})
        yahoo.failure = RateLimitedError("429", provider_name="yahoo")

        response = await client.post(
            "/api/quotes/batch", json={"symbols": ["AAPL"], "force": True}
        )

        data = response.json()
        assert data["errors"] == {}
        assert data["results"]["AAPL"]["_stale"] is True

    async def test_empty_symbols_rejected(self, client):
        response = await client.post("/api/quotes/batch", json={"symbols": []})
        assert response.status_code == 422

    async def test_alpha_vantage_source_with_key(self, client, alpha_vantage):
        alpha_vantage.payloads["IBM"] = make_av_payload(170.0, [("2024-06-12", 169.0)], name="IBM")

        response = await client.post(
            "/api/quotes/batch",
            json={"symbols": ["IBM"], "source": "alphavantage", "apiKey": "k"},
        )

        assert response.json()["results"]["IBM"]["source"] == "alphavantage"
        assert alpha_vantage.api_keys == ["k"]


class TestYahooChart:
    async def test_second_request_is_cached(self, client, yahoo):
        yahoo.payloads["AAPL"] = AAPL_CHART

        first = await client.get("/api/quotes/yahoo/AAPL", params={"range": "1mo"})
        second = await client.get("/api/quotes/yahoo/AAPL", params={"range": "1mo"})

        assert first.status_code == 200
        assert "_cached" not in first.json()
        assert second.json()["_cached"] is True
        assert second.json()["chart"] == AAPL_CHART["chart"]
        assert yahoo.call_count("raw:1mo:1d") == 1

    async def test_refresh_bypasses_cache(self, client, yahoo):
        yahoo.payloads["AAPL"] = AAPL_CHART
        await client.get("/api/quotes/yahoo/AAPL")

        response = await client.get("/api/quotes/yahoo/AAPL", params={"refresh": "true"})

        assert "_cached" not in response.json()
        assert yahoo.call_count("raw:2y:1d") == 2

    async def test_upstream_failure_is_502(self, client, yahoo):
        yahoo.failure = RateLimitedError("Too many requests", provider_name="yahoo")

        response = await client.get("/api/quotes/yahoo/AAPL")

        assert response.status_code == 502
        assert "Too many requests" in response.json()["detail"]


class TestAlphaVantageEndpoint:
    async def test_fresh_quote(self, client, alpha_vantage):
        alpha_vantage.payloads["IBM"] = make_av_payload(170.0, [("2024-06-12", 169.0)], name="IBM")

        response = await client.get("/api/quotes/alphavantage/ibm", params={"apikey": "k"})

        assert response.status_code == 200
        assert response.json()["price"] == 170.0
        assert alpha_vantage.api_keys == ["k"]

    async def test_failure_is_502(self, client, alpha_vantage):
        alpha_vantage.failure = RateLimitedError("25 requests per day", provider_name="alphavantage")

        response = await client.get("/api/quotes/alphavantage/IBM")

        assert response.status_code == 502


class TestLookup:
    async def test_nearest_prior_close(self, client, yahoo):
        yahoo.payloads["AAPL"] = make_chart(
            "AAPL", [("2024-01-11", 186.0), ("2024-01-12", 187.0)], long_name="Apple Inc."
        )

        response = await client.get("/api/quotes/lookup/AAPL/2024-01-14")

        assert response.status_code == 200
        data = response.json()
        assert data["price"] == 187.0
        assert data["date"] == "2024-01-12"
        assert data["requestedDate"] == "2024-01-14"
        assert data["daysOff"] == 2
        assert data["isHistorical"] is True
        assert data["companyName"] == "Apple Inc."

    async def test_unknown_symbol_is_502(self, client):
        response = await client.get("/api/quotes/lookup/NOPE/2024-01-14")
        assert response.status_code == 502

    async def test_invalid_date_rejected(self, client):
        response = await client.get("/api/quotes/lookup/AAPL/yesterday")
        assert response.status_code == 422


class TestHistoryAndCorrelation:
    async def test_history_multi(self, client, yahoo):
        yahoo.payloads["AAPL"] = make_chart("AAPL", daily_points("2024-06-12", 3))

        response = await client.post(
            "/api/quotes/history-multi", json={"symbols": ["AAPL", "NOPE"], "range": "1y"}
        )

        data = response.json()
        assert data["results"]["AAPL"] == [
            ["2024-06-10", 100.0], ["2024-06-11", 101.0], ["2024-06-12", 102.0],
        ]
        assert "NOPE" in data["errors"]

    async def test_invalid_range_rejected(self, client):
        response = await client.post(
            "/api/quotes/history-multi", json={"symbols": ["AAPL"], "range": "5y"}
        )
        assert response.status_code == 422

    async def test_correlation(self, client, yahoo):
        yahoo.payloads["AAA"] = make_chart("AAA", daily_points("2024-06-12", 15))
        yahoo.payloads["BBB"] = make_chart("BBB", daily_points("2024-06-12", 15, 50.0, 0.5))

        response = await client.post("/api/quotes/correlation", json={"symbols": ["AAA", "BBB"]})

        data = response.json()
        assert data["symbols"] == ["AAA", "BBB"]
        assert data["range"] == "2y"
        assert data["matrix"][0][0] == 1.0
        assert data["matrix"][0][1] is not None


class TestDividends:
    async def test_single(self, client, yahoo):
        yahoo.payloads["KO"] = make_chart(
            "KO", [("2024-06-12", 60.0)], price=60.0, dividends=[("2024-05-10", 0.485)]
        )

        response = await client.get("/api/quotes/dividend/KO")

        assert response.status_code == 200
        data = response.json()
        assert data["annualRate"] == 0.485
        assert data["frequency"] == 1

    async def test_batch(self, client, yahoo):
        yahoo.payloads["KO"] = make_chart(
            "KO", [("2024-06-12", 60.0)], price=60.0, dividends=[("2024-05-10", 0.485)]
        )

        response = await client.post("/api/quotes/dividend/batch", json={"symbols": ["KO", "NOPE"]})

        data = response.json()
        assert set(data["results"]) == {"KO"}
        assert set(data["errors"]) == {"NOPE"}
