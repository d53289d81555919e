"""Push reconciler: upsert locally-held records into the remote tables.

For each entity kind the reconciler filters the local collection down to
records authored after the session's push cutoff and writes them with
``INSERT ... ON CONFLICT (id) DO UPDATE``.  Every mutable column is
overwritten with the local value, so whatever push writes wins.

Rows are written one statement at a time on an autocommit connection.  A
failing row is recorded as a ``RowWriteError`` and the loop moves on; it
never stops the rest of that entity kind, nor any other kind.  A dropped
connection does: it is raised as ``ConnectivityError`` and ends the session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from healthsync.services.postgres import raise_if_connection_lost
from healthsync.sync.entities import EntitySpec
from healthsync.sync.errors import RowWriteError
from healthsync.sync.schema import NOW_MS_SQL
from healthsync.sync.session import SyncSession

logger = logging.getLogger("healthsync.sync.push")


def build_upsert_query(
    table: str,
    columns: list[str],
    conflict_columns: list[str],
    update_columns: list[str] | None = None,
) -> str:
    """Build a PostgreSQL INSERT ... ON CONFLICT DO UPDATE (upsert) query.

    On conflict every update column takes the incoming value and the audit
    ``updated_at`` column is stamped with the server clock, whether or not
    any domain value changed.

    Args:
        table:            Target table name.
        columns:          All columns to insert.
        conflict_columns: Columns that define the UNIQUE constraint.
        update_columns:   Columns to update on conflict (defaults to non-key columns).

    Returns:
        Parameterized SQL string.
    """
    if update_columns is None:
        update_columns = [c for c in columns if c not in conflict_columns]

    placeholders = ", ".join(f"${i + 1}" for i in range(len(columns)))
    col_list = ", ".join(columns)
    conflict_target = ", ".join(conflict_columns)

    update_set = ", ".join(f"{col} = EXCLUDED.{col}" for col in update_columns)
    if update_set:
        update_set += ", "
    update_set += f"updated_at = {NOW_MS_SQL}"

    return (
        f"INSERT INTO {table} ({col_list}) "
        f"VALUES ({placeholders}) "
        f"ON CONFLICT ({conflict_target}) DO UPDATE SET {update_set}"
    )


def upsert_query_for(spec: EntitySpec) -> str:
    return build_upsert_query(spec.table, spec.column_names, ["id"], spec.update_columns)


@dataclass
class PushResult:
    """Outcome of pushing one entity kind.

    Attributes:
        entity:   Wire key of the entity kind.
        pushed:   Records successfully upserted.
        skipped:  Records present locally but not eligible this session.
        errors:   One RowWriteError per record that failed to write.
    """

    entity: str
    pushed: int = 0
    skipped: int = 0
    errors: list[RowWriteError] = field(default_factory=list)


def is_eligible(spec: EntitySpec, record: Mapping[str, Any], cutoff: int | None) -> bool:
    """Decide whether a local record is new enough to push.

    The comparison is strict: a record stamped exactly at the cutoff was
    already covered by the session that produced that cutoff.
    """
    if cutoff is None:
        return True
    stamp = spec.authoring_timestamp(record)
    return stamp is not None and stamp > cutoff


def as_records(value: Any) -> list[Mapping[str, Any]]:
    """Normalize a snapshot entry (list, single record or None) to a list."""
    if value is None:
        return []
    if isinstance(value, Mapping):
        return [value]
    return [r for r in value if isinstance(r, Mapping)]


class PushReconciler:
    """Upsert eligible local records for every entity kind.

    Usage::

        pusher = PushReconciler(conn, session)
        result = await pusher.push(FOOD_ENTRIES, local_data.get("foodEntries"))
    """

    def __init__(self, conn: Any, session: SyncSession, *, push_all: bool = False) -> None:
        """Initialize the reconciler.

        Args:
            conn:     Open connection (asyncpg-compatible ``execute``).
            session:  Session that supplies the eligibility cutoffs.
            push_all: Ignore eligibility and push every record (full export).
        """
        self._conn = conn
        self._session = session
        self._push_all = push_all

    async def push(self, spec: EntitySpec, local: Any) -> PushResult:
        result = PushResult(entity=spec.key)
        records = as_records(local)
        if not records:
            return result

        cutoff = None if self._push_all else self._session.push_cutoff(spec)
        query = upsert_query_for(spec)
        logger.debug(
            "Pushing %s: %d local record(s), cutoff=%s", spec.key, len(records), cutoff
        )

        for record in records:
            record_id = record.get("id")
            try:
                if not is_eligible(spec, record, cutoff):
                    result.skipped += 1
                    continue
                if not record_id:
                    raise ValueError("record has no id")
                await self._conn.execute(query, *spec.to_params(record))
            except Exception as exc:
                raise_if_connection_lost(exc, self._conn, f"pushing {spec.key}")
                err = RowWriteError(spec.key, record_id, str(exc))
                logger.warning("Push failed: %s", err)
                result.errors.append(err)
                continue

            result.pushed += 1
            logger.debug("Pushed %s %s", spec.key, record_id)

        logger.info(
            "Pushed %d %s (%d skipped, %d failed)",
            result.pushed, spec.key, result.skipped, len(result.errors),
        )
        return result

    async def push_entities(
        self, specs: Iterable[EntitySpec], local_data: Mapping[str, Any]
    ) -> dict[str, PushResult]:
        return {spec.key: await self.push(spec, local_data.get(spec.key)) for spec in specs}
