"""Schema guardian: make sure the remote tables look the way sync expects.

Runs at the start of every bidirectional sync.  Every statement is
idempotent (``IF NOT EXISTS``) and runs on its own, outside any transaction:
a failure is recorded in the returned ``SchemaReport`` and the remaining
statements still run.  Only a dropped connection stops the pass.

Order of work:
    1. CREATE TABLE for the five entity tables
    2. ADD COLUMN for columns that were introduced after the first release
    3. CREATE INDEX on the timestamp columns the pull phase filters on
    4. Normalize each table's ``updated_at`` audit column to BIGINT millis
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from healthsync.services.postgres import raise_if_connection_lost
from healthsync.sync.entities import ENTITIES
from healthsync.sync.errors import SchemaError

logger = logging.getLogger("healthsync.sync.schema")

# Server-side "now" in epoch millis; used for the audit updated_at column
NOW_MS_SQL = "(EXTRACT(EPOCH FROM NOW()) * 1000)::BIGINT"

CREATE_TABLES: list[str] = [
    f"""CREATE TABLE IF NOT EXISTS food_entries (
        id VARCHAR PRIMARY KEY,
        name VARCHAR NOT NULL,
        calories DECIMAL NOT NULL,
        protein DECIMAL NOT NULL,
        carbs DECIMAL NOT NULL,
        fat DECIMAL NOT NULL,
        fiber DECIMAL NOT NULL,
        sugar DECIMAL NOT NULL,
        sodium DECIMAL NOT NULL,
        image_uri TEXT,
        timestamp BIGINT NOT NULL,
        meal_type VARCHAR NOT NULL,
        confidence DECIMAL,
        ai_analysis TEXT,
        portion_multiplier DECIMAL,
        portion_unit VARCHAR,
        base_calories DECIMAL,
        base_protein DECIMAL,
        base_carbs DECIMAL,
        base_fat DECIMAL,
        base_fiber DECIMAL,
        base_sugar DECIMAL,
        base_sodium DECIMAL,
        show_manual_nutrition BOOLEAN,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at BIGINT DEFAULT {NOW_MS_SQL}
    )""",
    f"""CREATE TABLE IF NOT EXISTS workout_entries (
        id VARCHAR PRIMARY KEY,
        name VARCHAR NOT NULL,
        type VARCHAR NOT NULL,
        duration INTEGER NOT NULL,
        calories DECIMAL NOT NULL,
        intensity VARCHAR NOT NULL,
        exercises JSONB,
        notes TEXT,
        timestamp BIGINT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at BIGINT DEFAULT {NOW_MS_SQL}
    )""",
    f"""CREATE TABLE IF NOT EXISTS biomarker_entries (
        id VARCHAR PRIMARY KEY,
        type VARCHAR NOT NULL,
        value DECIMAL NOT NULL,
        unit VARCHAR NOT NULL,
        timestamp BIGINT NOT NULL,
        notes TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at BIGINT DEFAULT {NOW_MS_SQL}
    )""",
    f"""CREATE TABLE IF NOT EXISTS goals (
        id VARCHAR PRIMARY KEY,
        title VARCHAR NOT NULL,
        description TEXT,
        type VARCHAR NOT NULL,
        target_value DECIMAL NOT NULL,
        current_value DECIMAL DEFAULT 0,
        unit VARCHAR NOT NULL,
        target_date BIGINT NOT NULL,
        created_at_timestamp BIGINT NOT NULL,
        is_completed BOOLEAN DEFAULT FALSE,
        milestones JSONB,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at BIGINT DEFAULT {NOW_MS_SQL}
    )""",
    f"""CREATE TABLE IF NOT EXISTS user_profiles (
        id VARCHAR PRIMARY KEY,
        name VARCHAR NOT NULL,
        age INTEGER,
        gender VARCHAR,
        height DECIMAL,
        activity_level VARCHAR,
        preferences JSONB,
        created_at_timestamp BIGINT NOT NULL,
        updated_at_timestamp BIGINT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at BIGINT DEFAULT {NOW_MS_SQL}
    )""",
]

# (table, column, type) for columns added after the tables first shipped.
# Nullable so they can be backfilled onto tables that already hold rows.
ADDITIVE_COLUMNS: list[tuple[str, str, str]] = [
    ("food_entries", "base_calories", "DECIMAL"),
    ("food_entries", "base_protein", "DECIMAL"),
    ("food_entries", "base_carbs", "DECIMAL"),
    ("food_entries", "base_fat", "DECIMAL"),
    ("food_entries", "base_fiber", "DECIMAL"),
    ("food_entries", "base_sugar", "DECIMAL"),
    ("food_entries", "base_sodium", "DECIMAL"),
    ("food_entries", "show_manual_nutrition", "BOOLEAN"),
    ("food_entries", "portion_multiplier", "DECIMAL"),
    ("food_entries", "portion_unit", "VARCHAR"),
    ("food_entries", "confidence", "DECIMAL"),
    ("food_entries", "ai_analysis", "TEXT"),
    ("goals", "created_at_timestamp", "BIGINT"),
    ("user_profiles", "created_at_timestamp", "BIGINT"),
    ("user_profiles", "updated_at_timestamp", "BIGINT"),
]

CREATE_INDEXES: list[str] = [
    "CREATE INDEX IF NOT EXISTS idx_food_entries_timestamp ON food_entries(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_food_entries_meal_type ON food_entries(meal_type)",
    "CREATE INDEX IF NOT EXISTS idx_workout_entries_timestamp ON workout_entries(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_biomarker_entries_timestamp ON biomarker_entries(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_biomarker_entries_type ON biomarker_entries(type)",
    "CREATE INDEX IF NOT EXISTS idx_goals_created_at ON goals(created_at_timestamp)",
]

_COLUMN_TYPE_SQL = """
    SELECT data_type
    FROM information_schema.columns
    WHERE table_name = $1 AND column_name = $2
"""

_TIMESTAMP_TYPES = {"timestamp with time zone", "timestamp without time zone"}


def add_column_sql(table: str, column: str, type_: str) -> str:
    return f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {column} {type_}"


@dataclass
class SchemaReport:
    """Outcome of one schema pass.

    Attributes:
        applied:  Statements that executed successfully.
        warnings: One SchemaError per statement that failed.
    """

    applied: list[str] = field(default_factory=list)
    warnings: list[SchemaError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings

    def messages(self) -> list[str]:
        return [str(w) for w in self.warnings]


class SchemaGuardian:
    """Idempotently create and migrate the five sync tables.

    Usage::

        report = await SchemaGuardian(conn).ensure()
        if not report.ok:
            logger.warning("Schema issues: %s", report.messages())
    """

    def __init__(self, conn: Any) -> None:
        self._conn = conn
        self._report = SchemaReport()

    async def ensure(self) -> SchemaReport:
        """Run the full schema pass. Never raises for a single bad statement."""
        for statement in CREATE_TABLES:
            await self._run(statement)

        for table, column, type_ in ADDITIVE_COLUMNS:
            await self._run(add_column_sql(table, column, type_))

        for statement in CREATE_INDEXES:
            await self._run(statement)

        for spec in ENTITIES:
            await self._ensure_updated_at(spec.table)

        if self._report.ok:
            logger.info("Schema ensured (%d statements)", len(self._report.applied))
        else:
            logger.warning(
                "Schema ensured with %d failed statement(s)", len(self._report.warnings)
            )
        return self._report

    async def _run(self, statement: str) -> bool:
        try:
            await self._conn.execute(statement)
        except Exception as exc:
            raise_if_connection_lost(exc, self._conn, "ensuring the schema")
            err = SchemaError(statement, str(exc))
            logger.warning("Schema statement failed: %s", err)
            self._report.warnings.append(err)
            return False
        self._report.applied.append(statement)
        return True

    async def _column_type(self, table: str, column: str) -> str | None:
        try:
            return await self._conn.fetchval(_COLUMN_TYPE_SQL, table, column)
        except Exception as exc:
            raise_if_connection_lost(exc, self._conn, "ensuring the schema")
            logger.warning("Could not inspect %s.%s: %s", table, column, exc)
            return None

    async def _ensure_updated_at(self, table: str) -> None:
        """Make ``updated_at`` a BIGINT epoch-millis column with a server default.

        Older tables carried it as TIMESTAMP; the column is audit-only, so it
        is dropped and recreated rather than converted in place.
        """
        column_type = await self._column_type(table, "updated_at")
        logger.debug("%s.updated_at type: %s", table, column_type)

        add = f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS updated_at BIGINT DEFAULT {NOW_MS_SQL}"
        if column_type is None:
            await self._run(add)
        elif column_type in _TIMESTAMP_TYPES:
            logger.info("Recreating %s.updated_at as BIGINT", table)
            if await self._run(f"ALTER TABLE {table} DROP COLUMN updated_at"):
                await self._run(add)
        elif column_type == "bigint":
            await self._run(
                f"ALTER TABLE {table} ALTER COLUMN updated_at SET DEFAULT {NOW_MS_SQL}"
            )


async def ensure_schema(conn: Any) -> SchemaReport:
    """Convenience wrapper around ``SchemaGuardian(conn).ensure()``."""
    return await SchemaGuardian(conn).ensure()
