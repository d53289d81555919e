"""Bidirectional sync between a client's local store and a remote Postgres.

Modules:
    engine   — Sync orchestrator (schema → push → pull → aggregate)
    schema   — Idempotent table creation and additive migrations
    push     — Eligibility rules and upsert-by-id writes
    pull     — Session-wide cutoff reads with a legacy-schema fallback
    result   — Per-entity counts, records, errors and warnings
    session  — First-sync classification and time windows
    entities — Column mappings for the five synchronized entity kinds
    blobs    — JSON blob column encoding that never raises on bad data
    inspect  — Read-only per-table snapshot for debugging
    errors   — Exception taxonomy
"""
