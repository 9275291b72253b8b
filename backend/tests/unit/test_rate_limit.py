"""Tests for the per-IP rate limiting middleware."""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from api.rate_limit import RateLimitMiddleware


class FakeTimer:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture(name="timer")
def timer_fixture():
    return FakeTimer()


@pytest.fixture(name="limited_client")
async def limited_client_fixture(timer):
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, max_requests=2, window_seconds=60, timer=timer)

    @app.get("/api/ping")
    async def ping():
        return {"ok": True}

    @app.get("/")
    async def root():
        return {"ok": True}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


class TestRateLimitMiddleware:
    async def test_allows_up_to_limit(self, limited_client):
        assert (await limited_client.get("/api/ping")).status_code == 200
        assert (await limited_client.get("/api/ping")).status_code == 200

        response = await limited_client.get("/api/ping")

        assert response.status_code == 429
        assert "Maximum 2 requests per 60 seconds" in response.json()["detail"]

    async def test_window_slides(self, limited_client, timer):
        await limited_client.get("/api/ping")
        await limited_client.get("/api/ping")
        timer.now += 61

        assert (await limited_client.get("/api/ping")).status_code == 200

    async def test_non_api_paths_not_limited(self, limited_client):
        for _ in range(5):
            assert (await limited_client.get("/")).status_code == 200
