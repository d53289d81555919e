"""Tests for the liveness probe and the middleware around every route."""

from __future__ import annotations

import pytest
from fastapi import FastAPI

from healthsync.config import Settings
from healthsync.middleware.rate_limit import RateLimitMiddleware
from healthsync.routers import health
from healthsync.routers.tests.conftest import DSN, client_for


@pytest.mark.asyncio
async def test_health_needs_no_database(app: FastAPI) -> None:
    async with client_for(app) as client:
        resp = await client.get("/health")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == "0.1.0"
    assert "timestamp" in data
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert "X-RateLimit-Limit" not in resp.headers


@pytest.mark.asyncio
async def test_rate_limit_applies_to_api_routes_only() -> None:
    limited = FastAPI()
    limited.add_middleware(RateLimitMiddleware, settings=Settings(rate_limit_per_minute=2))
    limited.include_router(health.router)

    @limited.post("/api/database/test")
    async def fake_test() -> dict:
        return {"success": True}

    async with client_for(limited) as client:
        statuses = [
            (await client.post("/api/database/test", json={"connectionString": DSN})).status_code
            for _ in range(3)
        ]
        health_resp = await client.get("/health")

    assert statuses == [200, 200, 429]
    assert health_resp.status_code == 200
