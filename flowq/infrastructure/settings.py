"""
Application-wide settings and environment configuration
"""

from __future__ import annotations

import os
from pathlib import Path

# Project paths
FLOWQ_ROOT = Path(__file__).parent.parent

# Environment
ENV = os.getenv("FLOWQ_ENV", "development")
DEBUG = ENV == "development"

# API Configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))

# Google Cloud / Gemini
GOOGLE_CLOUD_PROJECT = os.getenv("GOOGLE_CLOUD_PROJECT", "")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
GEMINI_LOCATION = os.getenv("GEMINI_LOCATION", "us-central1")
GEMINI_MAX_TOKENS = int(os.getenv("GEMINI_MAX_TOKENS", "1024"))
GEMINI_TEMPERATURE = float(os.getenv("GEMINI_TEMPERATURE", "0.2"))

# Embeddings (Vertex AI text embedding model)
EMBEDDING_MODEL = os.getenv("FLOWQ_EMBEDDING_MODEL", "text-embedding-004")

# Notification fan-out endpoint (push dispatch service)
NOTIFICATION_DISPATCH_URL = os.getenv("FLOWQ_NOTIFICATION_DISPATCH_URL", "")
NOTIFICATION_DISPATCH_TOKEN = os.getenv("FLOWQ_NOTIFICATION_DISPATCH_TOKEN", "")

# Upstream workflow engine
UPSTREAM_USER_AGENT = "flowq-execution-sync/1.0"


def is_production() -> bool:
    """Check if running in production"""
    return ENV == "production"
