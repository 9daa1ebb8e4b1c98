"""Centralized configuration for the flowq backend.

Re-exports everything from flowq.infrastructure.settings so existing imports
continue to work, then adds typed constants for database, pipeline, LLM,
embedding, upstream and API settings.  Environment variable overrides use safe
defaults so the app starts without extra env configuration.
"""

from __future__ import annotations

import os

from flowq.infrastructure.settings import *  # noqa: F401, F403 - re-export existing

# --- App ---
APP_VERSION: str = "1.0.0"

# --- Database ---
DB_POOL_SIZE: int = int(os.getenv("FLOWQ_DB_POOL_SIZE", "5"))
DB_POOL_TIMEOUT: float = float(os.getenv("FLOWQ_DB_POOL_TIMEOUT", "5.0"))
DB_CONNECT_TIMEOUT: float = float(os.getenv("FLOWQ_DB_CONNECT_TIMEOUT", "30.0"))
DB_RETRY_MAX: int = int(os.getenv("FLOWQ_DB_RETRY_MAX", "5"))
DB_RETRY_BASE_DELAY: float = float(os.getenv("FLOWQ_DB_RETRY_BASE_DELAY", "0.1"))
DB_RETRY_MAX_DELAY: float = float(os.getenv("FLOWQ_DB_RETRY_MAX_DELAY", "2.0"))
DB_RETRY_JITTER: float = float(os.getenv("FLOWQ_DB_RETRY_JITTER", "0.1"))

# --- Classification Pipeline ---
PIPELINE_MAX_WORKERS: int = int(os.getenv("FLOWQ_PIPELINE_MAX_WORKERS", "4"))
PIPELINE_EXECUTION_TIMEOUT_SECONDS: float = float(
    os.getenv("FLOWQ_PIPELINE_EXECUTION_TIMEOUT", "90")
)
PIPELINE_DESCRIPTION_NODES: int = 5
PIPELINE_AI_SAMPLE_NODES: int = 10
PIPELINE_AI_SAMPLE_CHARS: int = 1000
NOTIFICATION_NODE_DISPLAY_CAP: int = 5

# Idempotency guard: treat a failed lookup as "not processed" (re-run) when true
GUARD_FAIL_OPEN: bool = os.getenv("FLOWQ_GUARD_FAIL_OPEN", "true").lower() == "true"

# An in-progress claim older than this is abandoned and may be taken over.
# Keep it well above PIPELINE_EXECUTION_TIMEOUT_SECONDS.
CLAIM_LEASE_SECONDS: float = float(os.getenv("FLOWQ_CLAIM_LEASE_SECONDS", "900"))

# --- LLM ---
LLM_TIMEOUT_SECONDS: int = int(os.getenv("FLOWQ_LLM_TIMEOUT", "30"))
LLM_MAX_RETRIES: int = int(os.getenv("FLOWQ_LLM_MAX_RETRIES", "3"))

# --- Embeddings / vector search ---
EMBEDDING_TIMEOUT_SECONDS: int = int(os.getenv("FLOWQ_EMBEDDING_TIMEOUT", "15"))
EMBEDDING_MAX_RETRIES: int = int(os.getenv("FLOWQ_EMBEDDING_MAX_RETRIES", "2"))
VECTOR_MATCH_COUNT: int = 3

# --- Upstream workflow engine ---
UPSTREAM_PAGE_SIZE: int = int(os.getenv("FLOWQ_UPSTREAM_PAGE_SIZE", "20"))
UPSTREAM_MAX_PAGES: int = int(os.getenv("FLOWQ_UPSTREAM_MAX_PAGES", "1"))
UPSTREAM_TIMEOUT_SECONDS: float = float(os.getenv("FLOWQ_UPSTREAM_TIMEOUT", "20"))
UPSTREAM_MAX_ATTEMPTS: int = int(os.getenv("FLOWQ_UPSTREAM_MAX_ATTEMPTS", "3"))

# --- Notification fan-out ---
DISPATCH_TIMEOUT_SECONDS: float = float(os.getenv("FLOWQ_DISPATCH_TIMEOUT", "5"))
DISPATCH_ACTION_URL: str = "/automations"

# --- API ---
API_LIST_LIMIT_DEFAULT: int = 100
API_LIST_LIMIT_MAX: int = 500

# --- LLM fallback layer ---
# Disabled unless explicitly enabled (needs Vertex AI credentials)
USE_LLM: bool = os.getenv("FLOWQ_USE_LLM", "false").lower() == "true"
