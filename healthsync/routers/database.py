"""Endpoints for syncing with, testing and inspecting a user's database.

Every endpoint takes the connection string in the request body and opens
exactly one connection for the duration of the request.

Failure bodies are always ``{"success": false, "message": ...}``:
    400 — bad request (unsupported type, malformed connection string,
          connection test refused)
    503 — the database could not be reached during a sync
    500 — anything else
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from healthsync.dependencies import DbConnector, Engine
from healthsync.models.base import ErrorResponse
from healthsync.models.sync import (
    BidirectionalSyncRequest,
    BidirectionalSyncResponse,
    ConnectionRequest,
    ConnectionTestResponse,
    InspectionResponse,
    PullRequest,
    PullResponse,
    PushRequest,
    PushResponse,
)
from healthsync.services.postgres import is_postgres_url, probe
from healthsync.sync.errors import ConnectivityError
from healthsync.sync.inspect import inspect_database
from healthsync.sync.result import SyncReport, summary_message
from healthsync.sync.session import now_ms

router = APIRouter(prefix="/database", tags=["database"])
logger = logging.getLogger("healthsync.routers.database")

SUPPORTED_TYPE = "postgresql"

# Documented failure bodies; handlers return them as JSONResponse
SYNC_ERRORS = {
    400: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _failure(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "message": message}, status_code=status_code)


def _sync_failure(prefix: str, exc: Exception) -> JSONResponse:
    if isinstance(exc, ConnectivityError):
        return _failure(f"{prefix}: database unreachable: {exc}", 503)
    logger.exception("%s", prefix)
    return _failure(f"{prefix}: {exc}", 500)


def _report_body(report: SyncReport, message: str) -> dict[str, Any]:
    return {
        "message": message,
        "synced_counts": report.synced_counts,
        "pull_counts": report.pull_counts,
        "pulled_data": report.pulled_data,
        "errors": report.errors,
        "warnings": report.warnings,
    }


@router.post(
    "/bidirectional-sync", response_model=BidirectionalSyncResponse, responses=SYNC_ERRORS
)
async def bidirectional_sync(body: BidirectionalSyncRequest, engine: Engine) -> Any:
    """Push local changes, then pull remote ones, in a single session.

    The caller merges ``pulledData`` into its local store by ``id`` and,
    if it is satisfied with the outcome, records a new ``lastSyncTimestamp``.
    """
    try:
        report = await engine.run(
            body.connection_string,
            body.local_data.as_engine_input(),
            body.last_sync_timestamp,
        )
    except Exception as exc:
        return _sync_failure("Sync failed", exc)

    return BidirectionalSyncResponse.model_validate(
        _report_body(report, summary_message(report))
    )


@router.post("/pull", response_model=PullResponse, responses=SYNC_ERRORS)
async def pull(body: PullRequest, engine: Engine) -> Any:
    if body.type != SUPPORTED_TYPE:
        return _failure("Only PostgreSQL is supported currently", 400)
    try:
        report = await engine.pull_only(body.connection_string, body.last_sync_timestamp)
    except Exception as exc:
        return _sync_failure("Pull failed", exc)

    return PullResponse.model_validate(_report_body(report, summary_message(report, "Pull")))


@router.post("/sync", response_model=PushResponse, responses=SYNC_ERRORS)
async def push_all(body: PushRequest, engine: Engine) -> Any:
    """Export every local record to the remote database."""
    if body.type != SUPPORTED_TYPE:
        return _failure("Only PostgreSQL is supported currently", 400)
    try:
        report = await engine.push_all(body.connection_string, body.data.as_engine_input())
    except Exception as exc:
        return _sync_failure("Sync failed", exc)

    return PushResponse.model_validate(_report_body(report, summary_message(report, "Push")))


@router.post("/test", response_model=ConnectionTestResponse, responses=SYNC_ERRORS)
async def test_connection(body: ConnectionRequest, connector: DbConnector) -> Any:
    if body.type != SUPPORTED_TYPE:
        return _failure("Database type not supported yet", 400)
    if not is_postgres_url(body.connection_string):
        return _failure("Invalid PostgreSQL connection string format", 400)

    try:
        await probe(connector, body.connection_string)
    except Exception as exc:
        logger.warning("Connection test failed: %s", exc)
        return _failure(
            "Database connection failed. Please check your connection string.", 400
        )

    return {"message": "PostgreSQL connection successful", "type": body.type}


@router.post("/inspect", response_model=InspectionResponse, responses=SYNC_ERRORS)
async def inspect(body: ConnectionRequest, connector: DbConnector) -> Any:
    try:
        async with connector(body.connection_string) as conn:
            inspection = await inspect_database(conn)
    except Exception as exc:
        return _sync_failure("Inspection failed", exc)

    return {"current_time": now_ms(), "inspection": inspection}
