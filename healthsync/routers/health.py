"""Health check endpoint — public, no database required."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

from healthsync.dependencies import AppSettings

router = APIRouter(tags=["system"])


@router.get("/health")
async def health_check(settings: AppSettings) -> dict:
    """Liveness probe. Returns 200 if the API process is up.

    There is no server-owned database to probe: every sync brings its own
    connection string.
    """
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
