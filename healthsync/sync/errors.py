"""Exception taxonomy for the sync engine.

Only ``ConnectivityError`` ever escapes a session.  The rest describe
data-level failures that the engine absorbs: they are caught where they
happen, recorded on the relevant result object, and reported back to the
caller alongside the counts.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for every sync engine error."""


class ConnectivityError(SyncError):
    """The remote database could not be reached. Fatal for the session."""


class SchemaError(SyncError):
    """A single CREATE / ALTER statement failed."""

    def __init__(self, statement: str, message: str) -> None:
        self.statement = statement
        self.message = message
        super().__init__(f"{message} [{_first_line(statement)}]")


class RowWriteError(SyncError):
    """One upsert failed during the push phase."""

    def __init__(self, entity: str, record_id: str | None, message: str) -> None:
        self.entity = entity
        self.record_id = record_id
        self.message = message
        super().__init__(f"{entity} {record_id or '<no id>'}: {message}")


class RowReadError(SyncError):
    """A pull query failed for one entity type."""

    def __init__(self, entity: str, message: str, *, fallback: bool = False) -> None:
        self.entity = entity
        self.message = message
        self.fallback = fallback
        stage = "fallback query" if fallback else "query"
        super().__init__(f"{entity} {stage} failed: {message}")


class MalformedBlobError(SyncError):
    """A stored JSON column could not be decoded."""

    def __init__(self, field: str, message: str, record_id: str | None = None) -> None:
        self.field = field
        self.record_id = record_id
        self.message = message
        where = f"{record_id}.{field}" if record_id else field
        super().__init__(f"malformed {where}: {message}")


def _first_line(statement: str) -> str:
    return " ".join(statement.split())[:80]
