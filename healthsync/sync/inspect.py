"""Read-only snapshot of what the remote database currently holds.

A debugging aid for clients: per table, the row count and the five most
recent rows with their timestamps.  A table that cannot be read (usually
because it does not exist yet) reports an error for that table only.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from healthsync.services.postgres import raise_if_connection_lost
from healthsync.sync.entities import ENTITIES, EntitySpec, to_int

logger = logging.getLogger("healthsync.sync.inspect")

RECENT_LIMIT = 5


def _recent_query(spec: EntitySpec) -> str:
    columns = ["id", spec.label_column, *spec.inspect_extra, *spec.inspect_columns, "created_at"]
    # Tables with late-added timestamp columns are ordered by the audit column
    order = "timestamp" if spec.pull_column == "timestamp" else "created_at"
    return (
        f"SELECT {', '.join(columns)} FROM {spec.table} "
        f"ORDER BY {order} DESC LIMIT {RECENT_LIMIT}"
    )


def _describe(spec: EntitySpec, row: dict[str, Any]) -> dict[str, Any]:
    item = dict(row)
    for column in spec.inspect_extra:
        if isinstance(row.get(column), Decimal):
            item[column] = float(row[column])
    for column in spec.inspect_columns:
        item[column] = to_int(row.get(column))
    return item


async def inspect_table(conn: Any, spec: EntitySpec) -> dict[str, Any]:
    try:
        count = await conn.fetchval(f"SELECT COUNT(*) FROM {spec.table}")
        rows = await conn.fetch(_recent_query(spec))
    except Exception as exc:
        raise_if_connection_lost(exc, conn, f"inspecting {spec.table}")
        logger.info("Inspection of %s failed: %s", spec.table, exc)
        return {"count": 0, "recent": [], "error": "Table may not exist"}
    return {
        "count": int(count or 0),
        "recent": [_describe(spec, dict(r)) for r in rows],
    }


async def inspect_database(conn: Any) -> dict[str, dict[str, Any]]:
    """Inspect every sync table, keyed by table name."""
    return {spec.table: await inspect_table(conn, spec) for spec in ENTITIES}
