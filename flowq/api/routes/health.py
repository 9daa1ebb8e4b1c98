"""Health check endpoint.

Provides a liveness check plus credential and database readiness.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter

from flowq.config import APP_VERSION
from flowq.infrastructure.database import get_pool_stats
from flowq.llm.gemini import llm_credentials_configured
from flowq.observability.logging import get_logger
from flowq.observability.telemetry import get_latency_stats

router = APIRouter(tags=["health"])
logger = get_logger(__name__)


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Service status, version, LLM credential presence, pool usage and latencies.

    Does not call Vertex AI; only checks that credentials are configured.
    """
    try:
        database: dict[str, Any] = {"ok": True, **get_pool_stats()}
    except Exception as e:
        logger.warning("Pool stats unavailable: %s", e)
        database = {"ok": False}

    return {
        "status": "healthy",
        "service": "flowq",
        "version": APP_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "llm": {"ready": llm_credentials_configured()},
        "database": database,
        "latency": {
            "classification": get_latency_stats("classification.latency"),
            "upstream_fetch": get_latency_stats("upstream.fetch_latency"),
        },
    }
