"""Integration tests for the FX API endpoints."""


class TestAllRates:
    async def test_live_rates(self, client, fx_client):
        response = await client.get("/api/fx/all")

        assert response.status_code == 200
        data = response.json()
        assert data["USD"] == 1.0
        assert data["EUR"] == 0.9
        assert "_fallback" not in data
        assert len(fx_client.latest_calls) == 1

    async def test_fallback_flag_on_outage(self, client, fx_client, fx_service):
        await fx_service.put("EUR", 0.91)
        fx_client.should_fail = True

        response = await client.get("/api/fx/all")

        data = response.json()
        assert data["_fallback"] is True
        assert data["EUR"] == 0.91


class TestHistoricalRate:
    async def test_fetch_then_cached(self, client, fx_client):
        fx_client.historical_rates[("2024-01-15", "EUR", "USD")] = 1.0945

        first = await client.get("/api/fx/historical/2024-01-15/eur/usd")
        second = await client.get("/api/fx/historical/2024-01-15/EUR/USD")

        assert first.status_code == 200
        assert first.json() == {
            "rate": 1.0945, "date": "2024-01-15", "from": "EUR", "to": "USD", "cached": False,
        }
        assert second.json()["cached"] is True
        assert len(fx_client.historical_calls) == 1

    async def test_upstream_failure_is_502(self, client, fx_client):
        fx_client.should_fail = True

        response = await client.get("/api/fx/historical/2024-01-15/EUR/USD")

        assert response.status_code == 502
        assert "FX historical fetch failed" in response.json()["detail"]
