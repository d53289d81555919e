"""Per-session connections to a user-supplied PostgreSQL database.

Unlike a server-owned database, the sync target is chosen by the client:
every request carries its own connection string.  There is therefore no
pool — each sync session opens exactly one ``asyncpg`` connection and closes
it on every exit path.

The connection is left in autocommit mode.  Each upsert is its own
statement-level transaction, so one failing row never poisons the rest of
the session.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncContextManager, Callable
from urllib.parse import parse_qs, urlparse

import asyncpg

from healthsync.config import Settings, get_settings
from healthsync.sync.errors import ConnectivityError

logger = logging.getLogger("healthsync.db")

_LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1"}

# Signature of anything that can hand the engine a connection for one session
Connector = Callable[[str], AsyncContextManager[Any]]


def ssl_for(connection_string: str) -> str | bool | None:
    """Pick the ``ssl`` argument for ``asyncpg.connect``.

    Local databases connect in plain text.  Remote ones request TLS without
    certificate verification, which is what hosted Postgres providers expect
    from ad-hoc clients.  An explicit ``sslmode`` in the URL always wins.
    """
    parsed = urlparse(connection_string)
    if "sslmode" in parse_qs(parsed.query):
        return None
    if (parsed.hostname or "") in _LOCAL_HOSTS:
        return False
    return "require"


def is_postgres_url(connection_string: str) -> bool:
    return connection_string.startswith(("postgres://", "postgresql://"))


def connection_lost(exc: BaseException, conn: Any = None) -> bool:
    """Tell a dropped connection apart from a statement that merely failed.

    Bad parameters (``DataError``) and server-side errors on a live
    connection are data-level and absorbed by the caller.  Anything that
    leaves the session without a usable connection is not.
    """
    if isinstance(exc, asyncpg.exceptions.DataError):
        return False
    if isinstance(exc, (asyncpg.exceptions.PostgresConnectionError, asyncpg.InterfaceError, OSError)):
        return True
    is_closed = getattr(conn, "is_closed", None)
    return bool(callable(is_closed) and is_closed())


def raise_if_connection_lost(exc: BaseException, conn: Any, action: str) -> None:
    """Re-raise ``exc`` as ``ConnectivityError`` if the connection is gone.

    Raises:
        ConnectivityError: The connection dropped while performing ``action``.
    """
    if connection_lost(exc, conn):
        logger.error("Connection lost while %s: %s", action, exc)
        raise ConnectivityError(f"connection lost while {action}: {exc}") from exc


@asynccontextmanager
async def open_connection(
    connection_string: str,
    settings: Settings | None = None,
) -> AsyncGenerator[asyncpg.Connection, None]:
    """Open one connection for the duration of a sync session.

    Usage::

        async with open_connection(dsn) as conn:
            rows = await conn.fetch("SELECT * FROM goals")

    Raises:
        ConnectivityError: The server could not be reached or refused the login.
    """
    s = settings or get_settings()
    kwargs: dict[str, Any] = {
        "timeout": s.db_connect_timeout_seconds,
        "command_timeout": s.db_command_timeout_seconds,
    }
    ssl = ssl_for(connection_string)
    if ssl is not None:
        kwargs["ssl"] = ssl

    try:
        conn = await asyncpg.connect(connection_string, **kwargs)
    except Exception as exc:
        logger.error("Could not connect to remote database: %s", exc)
        raise ConnectivityError(str(exc)) from exc

    logger.debug("Remote database connection opened")
    try:
        yield conn
    finally:
        await conn.close()
        logger.debug("Remote database connection closed")


async def probe(connector: Connector, connection_string: str) -> Any:
    """Open a connection and ask the server for its clock.

    Returns:
        The server's ``NOW()`` value.
    """
    async with connector(connection_string) as conn:
        return await conn.fetchval("SELECT NOW()")
