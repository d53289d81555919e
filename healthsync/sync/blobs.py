"""Encode and decode the JSON blob columns (exercises, milestones, preferences).

Remotely these live in JSONB columns and travel as text; locally they are
plain Python structures.  Decoding never raises: absent values and malformed
text both come back as ``None``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from healthsync.sync.errors import MalformedBlobError

logger = logging.getLogger("healthsync.sync.blobs")


def encode_blob(value: Any) -> str | None:
    """Serialize a native structure for a JSONB parameter.

    Strings are assumed to already be JSON text and pass through unchanged.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value)
    except (TypeError, ValueError) as exc:
        logger.warning("Could not serialize blob value: %s", exc)
        return None


def decode_blob(
    value: Any,
    field: str = "blob",
    record_id: str | None = None,
    warnings: list[MalformedBlobError] | None = None,
) -> Any:
    """Parse a stored blob back into a native structure.

    Args:
        value:     Raw column value (text, already-decoded structure, or None).
        field:     Column name, used in the warning.
        record_id: Owning record id, used in the warning.
        warnings:  If given, a MalformedBlobError is appended on parse failure.

    Returns:
        The decoded structure, or None if the value was absent or malformed.
    """
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return value
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    if not isinstance(value, str):
        return None
    try:
        return json.loads(value)
    except ValueError as exc:
        err = MalformedBlobError(field, str(exc), record_id)
        logger.warning("Dropping %s", err)
        if warnings is not None:
            warnings.append(err)
        return None
