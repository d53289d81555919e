"""Pull reconciler: fetch remote records newer than the session cutoff.

One cutoff (``SyncSession.effective_pull_timestamp``) applies to every entity
kind.  Each kind is queried on its own authoring timestamp column, newest
first.  The user profile is a singleton: only the most recently updated row
comes back.

Compatibility fallback
----------------------
Tables created by older clients may predate a timestamp column (goals and
profiles gained theirs late).  If the filtered query fails, the reconciler
re-reads the table unfiltered, ordered by the server audit column, and
applies the cutoff in Python.  Rows without the domain timestamp are
excluded.  If that also fails the entity simply yields no records; both
failures are returned as warnings rather than raised.  A dropped connection
is the exception: it aborts the session as a ``ConnectivityError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from healthsync.services.postgres import raise_if_connection_lost
from healthsync.sync.entities import EntitySpec, to_int
from healthsync.sync.errors import MalformedBlobError, RowReadError, SyncError

logger = logging.getLogger("healthsync.sync.pull")


@dataclass
class PullResult:
    """Outcome of pulling one entity kind.

    Attributes:
        entity:        Wire key of the entity kind.
        records:       Hydrated camelCase records, newest first.
        warnings:      Read failures and malformed blobs absorbed on the way.
        used_fallback: True if the unfiltered compatibility query was used.
    """

    entity: str
    records: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[SyncError] = field(default_factory=list)
    used_fallback: bool = False

    @property
    def count(self) -> int:
        return len(self.records)


def primary_query(spec: EntitySpec) -> str:
    query = (
        f"SELECT * FROM {spec.table} WHERE {spec.pull_column} > $1 "
        f"ORDER BY {spec.pull_column} DESC"
    )
    if spec.singleton:
        query += " LIMIT 1"
    return query


def fallback_query(spec: EntitySpec) -> str:
    query = f"SELECT * FROM {spec.table} ORDER BY {spec.fallback_order} DESC"
    if spec.singleton:
        query += " LIMIT 1"
    return query


def filter_after(spec: EntitySpec, rows: Iterable[Mapping[str, Any]], cutoff: int) -> list[Mapping[str, Any]]:
    """Apply the pull cutoff in Python, dropping rows without a usable stamp."""
    kept = []
    for row in rows:
        stamp = to_int(row.get(spec.pull_column))
        if stamp is not None and stamp > cutoff:
            kept.append(row)
    kept.sort(key=lambda r: to_int(r.get(spec.pull_column)) or 0, reverse=True)
    return kept


class PullReconciler:
    """Read remote changes for every entity kind.

    Usage::

        puller = PullReconciler(conn, cutoff=session.effective_pull_timestamp())
        result = await puller.pull(GOALS)
    """

    def __init__(self, conn: Any, cutoff: int) -> None:
        self._conn = conn
        self._cutoff = cutoff

    async def pull(self, spec: EntitySpec) -> PullResult:
        result = PullResult(entity=spec.key)
        try:
            rows = await self._conn.fetch(primary_query(spec), self._cutoff)
        except Exception as exc:
            raise_if_connection_lost(exc, self._conn, f"pulling {spec.key}")
            err = RowReadError(spec.key, str(exc))
            logger.warning("%s; retrying without timestamp filter", err)
            result.warnings.append(err)
            result.used_fallback = True
            try:
                rows = filter_after(spec, await self._conn.fetch(fallback_query(spec)), self._cutoff)
            except Exception as fallback_exc:
                raise_if_connection_lost(fallback_exc, self._conn, f"pulling {spec.key}")
                err = RowReadError(spec.key, str(fallback_exc), fallback=True)
                logger.warning("%s; returning no %s", err, spec.key)
                result.warnings.append(err)
                return result

        blob_warnings: list[MalformedBlobError] = []
        for row in rows:
            row = dict(row)
            try:
                result.records.append(spec.hydrate(row, blob_warnings))
            except Exception as exc:
                err = RowReadError(spec.key, f"row {row.get('id')}: {exc}")
                logger.warning("Skipping unreadable row: %s", err)
                result.warnings.append(err)
        result.warnings.extend(blob_warnings)

        logger.info(
            "Pulled %d %s newer than %d%s",
            result.count, spec.key, self._cutoff,
            " (fallback)" if result.used_fallback else "",
        )
        return result

    async def pull_entities(self, specs: Iterable[EntitySpec]) -> dict[str, PullResult]:
        return {spec.key: await self.pull(spec) for spec in specs}
