"""HTTP API for flowq."""
