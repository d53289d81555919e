"""Health Sync API — local-first health data sync against a remote Postgres."""
