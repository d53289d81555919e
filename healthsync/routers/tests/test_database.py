"""API tests for the /api/database endpoints."""

from __future__ import annotations

import json

import pytest
from fastapi import FastAPI

from healthsync.dependencies import get_sync_engine
from healthsync.routers.tests.conftest import DSN, client_for
from healthsync.sync.schema import ensure_schema
from healthsync.sync.session import DAY_MS, HOUR_MS, now_ms
from healthsync.sync.tests.fakes import FakeDatabase


def _food(id: str, timestamp: int) -> dict:
    return {
        "id": id, "name": "Banana", "calories": 105, "protein": 1.3, "carbs": 27,
        "fat": 0.4, "fiber": 3.1, "sugar": 14, "sodium": 1, "timestamp": timestamp,
        "mealType": "snack",
    }


class TestBidirectionalSync:
    @pytest.mark.asyncio
    async def test_push_then_pull_in_camel_case(self, app: FastAPI, fake_db: FakeDatabase) -> None:
        now = now_ms()
        body = {
            "connectionString": DSN,
            "type": "postgresql",
            "localData": {"foodEntries": [_food("f1", now - HOUR_MS)]},
            "lastSyncTimestamp": now - 2 * HOUR_MS,
        }

        async with client_for(app) as client:
            resp = await client.post("/api/database/bidirectional-sync", json=body)

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["syncedCounts"] == {
            "foodEntries": 1, "workoutEntries": 0, "biomarkerEntries": 0,
            "goals": 0, "userProfile": 0,
        }
        assert data["pullCounts"]["foodEntries"] == 1
        pulled = data["pulledData"]["foodEntries"][0]
        assert pulled["id"] == "f1"
        assert pulled["mealType"] == "snack"
        assert pulled["calories"] == 105.0
        assert data["pulledData"]["userProfile"] is None
        assert data["message"].startswith("Bidirectional sync completed")

    @pytest.mark.asyncio
    async def test_unknown_type_is_ignored(self, app: FastAPI) -> None:
        body = {"connectionString": DSN, "type": "mysql", "localData": {}, "lastSyncTimestamp": 0}

        async with client_for(app) as client:
            resp = await client.post("/api/database/bidirectional-sync", json=body)

        assert resp.status_code == 200
        assert resp.json()["success"] is True

    @pytest.mark.asyncio
    async def test_unreachable_database_is_503(self, app: FastAPI, fake_db: FakeDatabase) -> None:
        fake_db.unreachable = True
        body = {"connectionString": DSN, "localData": {}, "lastSyncTimestamp": 0}

        async with client_for(app) as client:
            resp = await client.post("/api/database/bidirectional-sync", json=body)

        assert resp.status_code == 503
        assert resp.json()["success"] is False
        assert "unreachable" in resp.json()["message"]

    @pytest.mark.asyncio
    async def test_connection_lost_mid_session_is_503(self, app: FastAPI, fake_db: FakeDatabase) -> None:
        fake_db.drop_on = ["INSERT INTO"]
        now = now_ms()
        body = {
            "connectionString": DSN,
            "localData": {"foodEntries": [_food("f1", now - HOUR_MS)]},
            "lastSyncTimestamp": now - 2 * HOUR_MS,
        }

        async with client_for(app) as client:
            resp = await client.post("/api/database/bidirectional-sync", json=body)

        assert resp.status_code == 503
        assert resp.json()["success"] is False

    @pytest.mark.asyncio
    async def test_infinite_timestamp_does_not_fail_the_session(
        self, app: FastAPI, fake_db: FakeDatabase
    ) -> None:
        now = now_ms()
        body = {
            "connectionString": DSN,
            "localData": {"foodEntries": [_food("bad", float("inf")), _food("good", now - HOUR_MS)]},
            "lastSyncTimestamp": now - 2 * HOUR_MS,
        }

        async with client_for(app) as client:
            resp = await client.post(
                "/api/database/bidirectional-sync",
                content=json.dumps(body),
                headers={"Content-Type": "application/json"},
            )

        assert resp.status_code == 200
        assert resp.json()["syncedCounts"]["foodEntries"] == 1
        assert fake_db.row("food_entries", "bad") is None

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_500(self, app: FastAPI) -> None:
        class BrokenEngine:
            async def run(self, *args: object) -> None:
                raise RuntimeError("boom")

        app.dependency_overrides[get_sync_engine] = lambda: BrokenEngine()
        body = {"connectionString": DSN, "localData": {}, "lastSyncTimestamp": 0}

        async with client_for(app) as client:
            resp = await client.post("/api/database/bidirectional-sync", json=body)

        assert resp.status_code == 500
        assert resp.json() == {"success": False, "message": "Sync failed: boom"}

    @pytest.mark.asyncio
    async def test_missing_connection_string_is_rejected(self, app: FastAPI) -> None:
        async with client_for(app) as client:
            resp = await client.post("/api/database/bidirectional-sync", json={"localData": {}})

        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_responses_are_not_cacheable(self, app: FastAPI) -> None:
        body = {"connectionString": DSN, "localData": {}, "lastSyncTimestamp": 0}

        async with client_for(app) as client:
            resp = await client.post("/api/database/bidirectional-sync", json=body)

        assert resp.headers["Cache-Control"] == "no-store"
        assert resp.headers["X-RateLimit-Limit"] == "60"


class TestPull:
    @pytest.mark.asyncio
    async def test_pulls_without_pushing(self, app: FastAPI, fake_db: FakeDatabase) -> None:
        now = now_ms()
        async with fake_db.connect() as conn:
            await ensure_schema(conn)
        fake_db.insert_row("goals", {
            "id": "g1", "title": "Walk", "created_at_timestamp": now - DAY_MS,
            "milestones": "[]",
        })

        async with client_for(app) as client:
            resp = await client.post("/api/database/pull", json={
                "connectionString": DSN, "lastSyncTimestamp": now - HOUR_MS,
            })

        assert resp.status_code == 200
        data = resp.json()
        assert data["pullCounts"]["goals"] == 1
        assert data["pulledData"]["goals"][0]["milestones"] == []
        assert "syncedCounts" not in data

    @pytest.mark.asyncio
    async def test_only_postgresql_is_supported(self, app: FastAPI) -> None:
        async with client_for(app) as client:
            resp = await client.post("/api/database/pull", json={
                "connectionString": DSN, "type": "sqlite",
            })

        assert resp.status_code == 400
        assert resp.json()["success"] is False


class TestPushAll:
    @pytest.mark.asyncio
    async def test_exports_old_records(self, app: FastAPI, fake_db: FakeDatabase) -> None:
        old = now_ms() - 365 * DAY_MS

        async with client_for(app) as client:
            resp = await client.post("/api/database/sync", json={
                "connectionString": DSN,
                "data": {"foodEntries": [_food("ancient", old)]},
            })

        assert resp.status_code == 200
        assert resp.json()["syncedCounts"]["foodEntries"] == 1
        assert fake_db.row("food_entries", "ancient") is not None


class TestConnectionTest:
    @pytest.mark.asyncio
    async def test_successful_probe(self, app: FastAPI) -> None:
        async with client_for(app) as client:
            resp = await client.post("/api/database/test", json={"connectionString": DSN})

        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "message": "PostgreSQL connection successful",
            "type": "postgresql",
        }

    @pytest.mark.asyncio
    async def test_malformed_connection_string(self, app: FastAPI) -> None:
        async with client_for(app) as client:
            resp = await client.post("/api/database/test", json={"connectionString": "mysql://x"})

        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid PostgreSQL connection string format"

    @pytest.mark.asyncio
    async def test_refused_connection(self, app: FastAPI, fake_db: FakeDatabase) -> None:
        fake_db.unreachable = True

        async with client_for(app) as client:
            resp = await client.post("/api/database/test", json={"connectionString": DSN})

        assert resp.status_code == 400
        assert "connection failed" in resp.json()["message"]


class TestInspect:
    @pytest.mark.asyncio
    async def test_reports_every_table(self, app: FastAPI, fake_db: FakeDatabase) -> None:
        async with client_for(app) as client:
            await client.post("/api/database/sync", json={
                "connectionString": DSN,
                "data": {"foodEntries": [_food("f1", now_ms())]},
            })
            resp = await client.post("/api/database/inspect", json={"connectionString": DSN})

        assert resp.status_code == 200
        data = resp.json()
        assert data["currentTime"] > 0
        assert data["inspection"]["food_entries"]["count"] == 1
        assert data["inspection"]["food_entries"]["recent"][0]["id"] == "f1"
        assert data["inspection"]["goals"]["count"] == 0

    @pytest.mark.asyncio
    async def test_unreachable_database_is_503(self, app: FastAPI, fake_db: FakeDatabase) -> None:
        fake_db.unreachable = True

        async with client_for(app) as client:
            resp = await client.post("/api/database/inspect", json={"connectionString": DSN})

        assert resp.status_code == 503
