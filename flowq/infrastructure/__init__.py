"""Database pool, schema, settings, retry and idempotency."""
