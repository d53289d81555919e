"""Sync orchestrator — the single entry point for a sync session.

Sequencing for a bidirectional session:

1. Open one connection (fatal ``ConnectivityError`` if that fails)
2. Schema guardian — create / migrate tables, never fatal
3. Push phase for **every** entity kind
4. Pull phase for every entity kind, with one session-wide cutoff
5. Aggregate counts, records, errors and warnings into a ``SyncReport``

The push phase finishes before any pull starts, so rows written in this
session are already remote when the pull window is scanned.  Some of them
come back (the pull window always covers the last few days); clients dedupe
by ``id``.

There is no cross-entity transaction.  If the process dies half way, some
entity kinds are synchronized and others are not; the next session repairs
that because pushes are idempotent upserts.

Usage::

    engine = SyncEngine()
    report = await engine.run(dsn, local_data, last_sync_timestamp=1718000000000)
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from healthsync.config import Settings, get_settings
from healthsync.services.postgres import Connector, open_connection
from healthsync.sync.entities import ENTITIES
from healthsync.sync.pull import PullReconciler
from healthsync.sync.push import PushReconciler
from healthsync.sync.result import SyncReport, aggregate
from healthsync.sync.schema import SchemaGuardian
from healthsync.sync.session import SyncSession, SyncWindows, now_ms

logger = logging.getLogger("healthsync.sync.engine")


class SyncEngine:
    """Drive push / pull sessions against a remote database.

    The connection factory and clock are injected so the engine can run
    against a test double with a frozen "now".
    """

    def __init__(
        self,
        connector: Connector | None = None,
        windows: SyncWindows | None = None,
        clock: Callable[[], int] = now_ms,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            connector: Callable(connection_string) → async context manager
                       yielding an asyncpg-compatible connection.  Defaults
                       to ``open_connection``.
            windows:   Sync horizons.  Defaults to the configured values.
            clock:     Returns "now" in epoch millis.
            settings:  Settings used for the defaults above.
        """
        s = settings or get_settings()
        self._connector = connector or (lambda dsn: open_connection(dsn, s))
        self._windows = windows or SyncWindows.from_settings(s)
        self._clock = clock

    def session(self, last_sync_timestamp: int) -> SyncSession:
        return SyncSession(
            last_sync_timestamp=int(last_sync_timestamp or 0),
            now=self._clock(),
            windows=self._windows,
        )

    async def run(
        self,
        connection_string: str,
        local_data: Mapping[str, Any] | None,
        last_sync_timestamp: int,
    ) -> SyncReport:
        """Run one bidirectional sync session.

        Raises:
            ConnectivityError: The remote database could not be reached.
        """
        session = self.session(last_sync_timestamp)
        local_data = local_data or {}
        logger.info(
            "Sync session start: lastSync=%d first_sync=%s",
            session.last_sync_timestamp, session.is_first_sync,
        )

        async with self._connector(connection_string) as conn:
            schema = await SchemaGuardian(conn).ensure()

            pusher = PushReconciler(conn, session)
            pushed = await pusher.push_entities(ENTITIES, local_data)

            cutoff = session.effective_pull_timestamp()
            logger.debug("Effective pull timestamp: %d", cutoff)
            pulled = await PullReconciler(conn, cutoff).pull_entities(ENTITIES)

        report = aggregate(
            schema, pushed, pulled,
            pull_timestamp=cutoff, first_sync=session.is_first_sync,
        )
        logger.info(
            "Sync session done: pushed=%s pulled=%s",
            report.synced_counts, report.pull_counts,
        )
        return report

    async def pull_only(self, connection_string: str, last_sync_timestamp: int) -> SyncReport:
        """Pull remote changes without pushing or touching the schema.

        Always uses the incremental window ``min(lastSync, now - 3d)``,
        regardless of how old ``last_sync_timestamp`` is.
        """
        session = self.session(last_sync_timestamp)
        cutoff = session.incremental_pull_timestamp()
        async with self._connector(connection_string) as conn:
            pulled = await PullReconciler(conn, cutoff).pull_entities(ENTITIES)
        return aggregate(None, {}, pulled, pull_timestamp=cutoff)

    async def push_all(self, connection_string: str, local_data: Mapping[str, Any] | None) -> SyncReport:
        """Export every local record, ignoring eligibility windows."""
        session = self.session(0)
        async with self._connector(connection_string) as conn:
            schema = await SchemaGuardian(conn).ensure()
            pushed = await PushReconciler(conn, session, push_all=True).push_entities(
                ENTITIES, local_data or {}
            )
        return aggregate(schema, pushed, {})
