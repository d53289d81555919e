"""Health Sync API — FastAPI application entry point.

Run locally:
    uvicorn healthsync.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from healthsync.config import get_settings
from healthsync.middleware.rate_limit import RateLimitMiddleware
from healthsync.middleware.security import SecurityHeadersMiddleware
from healthsync.routers import database, health

# ---------- Logging ----------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("healthsync")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks.

    Nothing is pooled: connections are opened per request against the
    database each client names.
    """
    settings = get_settings()
    logger.info(
        "Starting Health Sync API v%s [%s]",
        settings.app_version,
        settings.environment,
    )
    yield
    logger.info("Health Sync API shut down")


# ---------- App factory ----------

def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Health Sync API",
        description=(
            "Bidirectional sync between a local-first health tracker and a "
            "user-owned PostgreSQL database."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ---------- Middleware (the last one added runs first) ----------

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RateLimitMiddleware, settings=settings)

    # CORS wraps everything else so preflight requests are answered directly
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"],
    )

    app.include_router(health.router)
    app.include_router(database.router, prefix="/api")

    return app


app = create_app()
