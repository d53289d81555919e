"""Declarative description of the five synchronized entity kinds.

Each ``EntitySpec`` says how one local collection maps onto its remote table:
which columns exist, how values are coerced on the way out (push parameters)
and on the way back in (pulled records), which column carries the authoring
timestamp, and how the entity behaves on a first sync.

Push, pull, schema and inspection code never mention a table by hand —
they iterate over ``ENTITIES`` — so adding a field means editing one list.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from healthsync.sync.blobs import decode_blob, encode_blob
from healthsync.sync.errors import MalformedBlobError

# Column kinds
TEXT = "text"
NUMERIC = "numeric"
INT = "int"
BOOL = "bool"
BLOB = "blob"

# First-sync push windows
RECENT = "recent"        # last 24 hours
GOAL = "goal"            # last 30 days
ALWAYS = "always"        # unconditionally (singleton profile)


@dataclass(frozen=True)
class Column:
    """One synchronized field.

    Attributes:
        field:        camelCase key in the local / wire record.
        column:       snake_case column in the remote table.
        kind:         Coercion kind (text, numeric, int, bool, blob).
        insert_only:  Written on insert, left alone on conflict.
        default_from: Local field to copy when ``field`` is absent on push.
    """

    field: str
    column: str
    kind: str = TEXT
    insert_only: bool = False
    default_from: str | None = None


@dataclass(frozen=True)
class EntitySpec:
    """How one entity kind is stored remotely and synchronized.

    Attributes:
        key:              Wire key (``foodEntries``, ``userProfile``...).
        table:            Remote table name.
        columns:          Synchronized columns; ``id`` first.
        timestamp_field:  Local field the push eligibility rule reads.
        pull_column:      Remote column the pull cutoff is applied to.
        fallback_order:   Audit column used to order the compatibility query.
        first_sync:       First-sync push window (recent, goal, always).
        singleton:        At most one record (user profile).
        label_column:     Human-readable column shown by inspection.
        inspect_columns:  Timestamp columns shown by inspection.
        inspect_extra:    Other columns shown by inspection, between label and timestamps.
    """

    key: str
    table: str
    columns: tuple[Column, ...]
    timestamp_field: str
    pull_column: str
    fallback_order: str = "created_at"
    first_sync: str = RECENT
    singleton: bool = False
    label_column: str = "name"
    inspect_columns: tuple[str, ...] = ("timestamp",)
    inspect_extra: tuple[str, ...] = ()

    @property
    def column_names(self) -> list[str]:
        return [c.column for c in self.columns]

    @property
    def update_columns(self) -> list[str]:
        return [c.column for c in self.columns if c.column != "id" and not c.insert_only]

    @property
    def blob_fields(self) -> list[str]:
        return [c.field for c in self.columns if c.kind == BLOB]

    def authoring_timestamp(self, record: Mapping[str, Any]) -> int | None:
        """Return the record's authoring timestamp in epoch millis, if usable."""
        return to_int(record.get(self.timestamp_field))

    def to_params(self, record: Mapping[str, Any]) -> list[Any]:
        """Build positional upsert parameters from a local record.

        Raises:
            ValueError: A field cannot be coerced to its column type.
        """
        params: list[Any] = []
        for col in self.columns:
            value = record.get(col.field)
            if value is None and col.default_from:
                value = record.get(col.default_from)
            params.append(_encode(col, value))
        return params

    def hydrate(
        self,
        row: Mapping[str, Any],
        warnings: list[MalformedBlobError] | None = None,
    ) -> dict[str, Any]:
        """Convert a remote row into a camelCase local record."""
        record_id = row.get("id")
        record: dict[str, Any] = {}
        for col in self.columns:
            raw = row.get(col.column)
            if col.kind == BLOB:
                record[col.field] = decode_blob(raw, col.field, record_id, warnings)
            else:
                record[col.field] = _decode(col, raw)
        return record


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


def to_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _encode(col: Column, value: Any) -> Any:
    if value is None:
        return None
    if col.kind == BLOB:
        return encode_blob(value)
    if col.kind == NUMERIC:
        try:
            return Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"{col.field}: not a number: {value!r}") from exc
    if col.kind == INT:
        result = to_int(value)
        if result is None:
            raise ValueError(f"{col.field}: not an integer: {value!r}")
        return result
    if col.kind == BOOL:
        return bool(value)
    return str(value)


def _decode(col: Column, value: Any) -> Any:
    if value is None:
        return None
    if col.kind == NUMERIC:
        return _to_float(value)
    if col.kind == INT:
        return to_int(value)
    if col.kind == BOOL:
        return bool(value)
    return value


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

FOOD_ENTRIES = EntitySpec(
    key="foodEntries",
    table="food_entries",
    columns=(
        Column("id", "id"),
        Column("name", "name"),
        Column("calories", "calories", NUMERIC),
        Column("protein", "protein", NUMERIC),
        Column("carbs", "carbs", NUMERIC),
        Column("fat", "fat", NUMERIC),
        Column("fiber", "fiber", NUMERIC),
        Column("sugar", "sugar", NUMERIC),
        Column("sodium", "sodium", NUMERIC),
        Column("imageUri", "image_uri"),
        Column("timestamp", "timestamp", INT),
        Column("mealType", "meal_type"),
        Column("confidence", "confidence", NUMERIC),
        Column("aiAnalysis", "ai_analysis"),
        Column("portionMultiplier", "portion_multiplier", NUMERIC),
        Column("portionUnit", "portion_unit"),
        Column("baseCalories", "base_calories", NUMERIC),
        Column("baseProtein", "base_protein", NUMERIC),
        Column("baseCarbs", "base_carbs", NUMERIC),
        Column("baseFat", "base_fat", NUMERIC),
        Column("baseFiber", "base_fiber", NUMERIC),
        Column("baseSugar", "base_sugar", NUMERIC),
        Column("baseSodium", "base_sodium", NUMERIC),
        Column("showManualNutrition", "show_manual_nutrition", BOOL),
    ),
    timestamp_field="timestamp",
    pull_column="timestamp",
)

WORKOUT_ENTRIES = EntitySpec(
    key="workoutEntries",
    table="workout_entries",
    columns=(
        Column("id", "id"),
        Column("name", "name"),
        Column("type", "type"),
        Column("duration", "duration", INT),
        Column("calories", "calories", NUMERIC),
        Column("intensity", "intensity"),
        Column("exercises", "exercises", BLOB),
        Column("notes", "notes"),
        Column("timestamp", "timestamp", INT),
    ),
    timestamp_field="timestamp",
    pull_column="timestamp",
)

BIOMARKER_ENTRIES = EntitySpec(
    key="biomarkerEntries",
    table="biomarker_entries",
    columns=(
        Column("id", "id"),
        Column("type", "type"),
        Column("value", "value", NUMERIC),
        Column("unit", "unit"),
        Column("timestamp", "timestamp", INT),
        Column("notes", "notes"),
    ),
    timestamp_field="timestamp",
    pull_column="timestamp",
    label_column="type",
    inspect_extra=("value",),
)

GOALS = EntitySpec(
    key="goals",
    table="goals",
    columns=(
        Column("id", "id"),
        Column("title", "title"),
        Column("description", "description"),
        Column("type", "type"),
        Column("targetValue", "target_value", NUMERIC),
        Column("currentValue", "current_value", NUMERIC),
        Column("unit", "unit"),
        Column("targetDate", "target_date", INT),
        Column("createdAt", "created_at_timestamp", INT, insert_only=True),
        Column("isCompleted", "is_completed", BOOL),
        Column("milestones", "milestones", BLOB),
    ),
    timestamp_field="createdAt",
    pull_column="created_at_timestamp",
    first_sync=GOAL,
    label_column="title",
    inspect_columns=("created_at_timestamp",),
)

USER_PROFILE = EntitySpec(
    key="userProfile",
    table="user_profiles",
    columns=(
        Column("id", "id"),
        Column("name", "name"),
        Column("age", "age", INT),
        Column("gender", "gender"),
        Column("height", "height", NUMERIC),
        Column("activityLevel", "activity_level"),
        Column("preferences", "preferences", BLOB),
        Column("createdAt", "created_at_timestamp", INT, insert_only=True),
        Column("updatedAt", "updated_at_timestamp", INT, default_from="createdAt"),
    ),
    # Edits after creation are not pushed incrementally; kept for client compatibility
    timestamp_field="createdAt",
    pull_column="updated_at_timestamp",
    fallback_order="updated_at",
    first_sync=ALWAYS,
    singleton=True,
    inspect_columns=("created_at_timestamp", "updated_at_timestamp"),
)

# Push and pull both walk this tuple in order
ENTITIES: tuple[EntitySpec, ...] = (
    FOOD_ENTRIES,
    WORKOUT_ENTRIES,
    BIOMARKER_ENTRIES,
    GOALS,
    USER_PROFILE,
)

ENTITY_KEYS: tuple[str, ...] = tuple(e.key for e in ENTITIES)

