"""Aggregate per-entity push and pull outcomes into one response envelope."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from healthsync.sync.entities import ENTITY_KEYS, USER_PROFILE
from healthsync.sync.pull import PullResult
from healthsync.sync.push import PushResult
from healthsync.sync.schema import SchemaReport


def _zero_counts() -> dict[str, int]:
    return {key: 0 for key in ENTITY_KEYS}


def empty_pulled_data() -> dict[str, Any]:
    data: dict[str, Any] = {key: [] for key in ENTITY_KEYS}
    data[USER_PROFILE.key] = None
    return data


@dataclass
class SyncReport:
    """Everything one sync session produced.

    Attributes:
        synced_counts:   Records upserted, per entity key.
        pull_counts:     Records pulled, per entity key.
        pulled_data:     Full hydrated records pulled, per entity key.
                         ``userProfile`` is a single record or None.
        errors:          Row write failures, per entity key.
        warnings:        Absorbed read / blob / schema problems, per key.
                         Schema problems are filed under ``schema``.
        pull_timestamp:  Cutoff the pull phase used, if it ran.
        first_sync:      Whether the session was classified as bootstrap.
    """

    synced_counts: dict[str, int] = field(default_factory=_zero_counts)
    pull_counts: dict[str, int] = field(default_factory=_zero_counts)
    pulled_data: dict[str, Any] = field(default_factory=empty_pulled_data)
    errors: dict[str, list[str]] = field(default_factory=dict)
    warnings: dict[str, list[str]] = field(default_factory=dict)
    pull_timestamp: int | None = None
    first_sync: bool = False

    @property
    def total_pushed(self) -> int:
        return sum(self.synced_counts.values())

    @property
    def total_pulled(self) -> int:
        return sum(self.pull_counts.values())

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def add_schema(self, report: SchemaReport) -> None:
        if report.warnings:
            self.warnings.setdefault("schema", []).extend(report.messages())

    def add_push(self, result: PushResult) -> None:
        self.synced_counts[result.entity] = result.pushed
        if result.errors:
            self.errors.setdefault(result.entity, []).extend(str(e) for e in result.errors)

    def add_pull(self, result: PullResult) -> None:
        if result.entity == USER_PROFILE.key:
            self.pulled_data[result.entity] = result.records[0] if result.records else None
            self.pull_counts[result.entity] = 1 if result.records else 0
        else:
            self.pulled_data[result.entity] = list(result.records)
            self.pull_counts[result.entity] = result.count
        if result.warnings:
            self.warnings.setdefault(result.entity, []).extend(str(w) for w in result.warnings)


def aggregate(
    schema: SchemaReport | None,
    pushed: dict[str, PushResult],
    pulled: dict[str, PullResult],
    *,
    pull_timestamp: int | None = None,
    first_sync: bool = False,
) -> SyncReport:
    """Merge the outputs of every phase into a single ``SyncReport``."""
    report = SyncReport(pull_timestamp=pull_timestamp, first_sync=first_sync)
    if schema is not None:
        report.add_schema(schema)
    for result in pushed.values():
        report.add_push(result)
    for result in pulled.values():
        report.add_pull(result)
    return report


def summary_message(report: SyncReport, mode: str = "Bidirectional sync") -> str:
    message = (
        f"{mode} completed: pushed {report.total_pushed}, "
        f"pulled {report.total_pulled} item(s)"
    )
    if report.has_errors:
        failed = sum(len(v) for v in report.errors.values())
        message += f", {failed} record(s) failed to push"
    return message
