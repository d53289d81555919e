"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from healthsync.config import Settings, get_settings
from healthsync.services.postgres import Connector, open_connection
from healthsync.sync.engine import SyncEngine


def get_connector(settings: Annotated[Settings, Depends(get_settings)]) -> Connector:
    """Connection factory for one request.

    Overridden in tests with an in-memory database double.
    """

    def connect(connection_string: str):
        return open_connection(connection_string, settings)

    return connect


def get_sync_engine(
    settings: Annotated[Settings, Depends(get_settings)],
    connector: Annotated[Connector, Depends(get_connector)],
) -> SyncEngine:
    return SyncEngine(connector=connector, settings=settings)


# Annotated shortcuts for route signatures
AppSettings = Annotated[Settings, Depends(get_settings)]
DbConnector = Annotated[Connector, Depends(get_connector)]
Engine = Annotated[SyncEngine, Depends(get_sync_engine)]
