"""Pydantic models for the database sync endpoints.

Local records stay plain dicts: the engine coerces each field itself so that
one malformed record is reported as a per-record push error instead of
rejecting the whole request.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from healthsync.models.base import HealthSyncBase

Record = dict[str, Any]


# ---------- Shared ----------

class EntityCounts(HealthSyncBase):
    food_entries: int = 0
    workout_entries: int = 0
    biomarker_entries: int = 0
    goals: int = 0
    user_profile: int = 0


class LocalSnapshot(HealthSyncBase):
    """The client's local collections. Any of them may be omitted."""

    food_entries: list[Record] | None = None
    workout_entries: list[Record] | None = None
    biomarker_entries: list[Record] | None = None
    goals: list[Record] | None = None
    user_profile: Record | None = None

    def as_engine_input(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class PulledData(HealthSyncBase):
    food_entries: list[Record] = Field(default_factory=list)
    workout_entries: list[Record] = Field(default_factory=list)
    biomarker_entries: list[Record] = Field(default_factory=list)
    goals: list[Record] = Field(default_factory=list)
    user_profile: Record | None = None


class ConnectionRequest(HealthSyncBase):
    connection_string: str = Field(min_length=1)
    # Accepted for client compatibility; every entity kind is always synced
    type: str = "postgresql"


# ---------- Bidirectional sync ----------

class BidirectionalSyncRequest(ConnectionRequest):
    local_data: LocalSnapshot = Field(default_factory=LocalSnapshot)
    last_sync_timestamp: int = Field(default=0, ge=0)


class BidirectionalSyncResponse(HealthSyncBase):
    success: bool = True
    message: str
    synced_counts: EntityCounts
    pull_counts: EntityCounts
    pulled_data: PulledData
    errors: dict[str, list[str]] = Field(default_factory=dict)
    warnings: dict[str, list[str]] = Field(default_factory=dict)


# ---------- Pull only ----------

class PullRequest(ConnectionRequest):
    last_sync_timestamp: int = Field(default=0, ge=0)


class PullResponse(HealthSyncBase):
    success: bool = True
    message: str
    pull_counts: EntityCounts
    pulled_data: PulledData
    warnings: dict[str, list[str]] = Field(default_factory=dict)


# ---------- Push all ----------

class PushRequest(ConnectionRequest):
    data: LocalSnapshot


class PushResponse(HealthSyncBase):
    success: bool = True
    message: str
    synced_counts: EntityCounts
    errors: dict[str, list[str]] = Field(default_factory=dict)
    warnings: dict[str, list[str]] = Field(default_factory=dict)


# ---------- Connection test / inspection ----------

class ConnectionTestResponse(HealthSyncBase):
    success: bool = True
    message: str
    type: str


class TableInspection(HealthSyncBase):
    count: int = 0
    recent: list[Record] = Field(default_factory=list)
    error: str | None = None


class InspectionResponse(HealthSyncBase):
    success: bool = True
    current_time: int
    inspection: dict[str, TableInspection]
