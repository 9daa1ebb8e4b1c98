"""Outcome classification, routing, materialization and review."""
