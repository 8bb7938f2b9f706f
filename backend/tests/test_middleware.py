"""
Klara Backend — Middleware Tests
==================================

What we test:
    ✅ Request ID: generated when absent, echoed when supplied
    ✅ Rate limit: 429 with Retry-After once the window is full
    ✅ Rate limit: excluded paths are never counted
"""

import httpx
import pytest
from fastapi import FastAPI

from app.middleware.rate_limit import RateLimitMiddleware
from app.middleware.request_id import RequestIDMiddleware, request_id_var


def _app(max_requests: int = 2) -> FastAPI:
    app = FastAPI()

    @app.get("/ping")
    async def ping():
        return {"request_id": request_id_var.get("")}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware, max_requests=max_requests, window_seconds=60)
    return app


def _client(app: FastAPI) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


class TestRequestID:

    @pytest.mark.asyncio
    async def test_generated(self):
        async with _client(_app()) as client:
            response = await client.get("/ping")

        rid = response.headers["X-Request-ID"]
        assert rid
        assert response.json()["request_id"] == rid

    @pytest.mark.asyncio
    async def test_echoed(self):
        async with _client(_app()) as client:
            response = await client.get("/ping", headers={"X-Request-ID": "trace-123"})

        assert response.headers["X-Request-ID"] == "trace-123"
        assert response.json()["request_id"] == "trace-123"


class TestRateLimit:

    @pytest.mark.asyncio
    async def test_limit_then_429(self):
        async with _client(_app(max_requests=2)) as client:
            assert (await client.get("/ping")).status_code == 200
            assert (await client.get("/ping")).status_code == 200
            limited = await client.get("/ping")

        assert limited.status_code == 429
        assert int(limited.headers["Retry-After"]) >= 1
        assert limited.json()["error"] == "rate_limit_exceeded"

    @pytest.mark.asyncio
    async def test_health_not_counted(self):
        async with _client(_app(max_requests=1)) as client:
            for _ in range(5):
                assert (await client.get("/health")).status_code == 200
            assert (await client.get("/ping")).status_code == 200
