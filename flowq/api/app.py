"""FastAPI server for flowq"""

from __future__ import annotations

import sqlite3
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from flowq.api.routes.embeddings import router as embeddings_router
from flowq.api.routes.health import router as health_router
from flowq.api.routes.notifications import router as notifications_router
from flowq.api.routes.sync import router as sync_router
from flowq.config import API_HOST, API_PORT, APP_VERSION, DEBUG, is_production
from flowq.infrastructure.database import init_database, validate_schema
from flowq.observability.confidence import get_all_thresholds
from flowq.observability.logging import get_logger
from flowq.observability.telemetry import counter, log_event

# Load environment variables from .env file
load_dotenv()

# Interactive docs are disabled in production
app = FastAPI(
    title="flowq Outcome API",
    version=APP_VERSION,
    docs_url=None if is_production() else "/docs",
    redoc_url=None if is_production() else "/redoc",
)

logger = get_logger(__name__)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Return field names only; validation rules stay server side.
    """
    logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
    counter("api.validation_errors")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Invalid request format. Please check your request and try again.",
            "error_count": len(exc.errors()),
            "invalid_fields": [str(err["loc"][-1]) for err in exc.errors()],
        },
    )


# Initialize database schema (idempotent - safe to run on every startup)
try:
    logger.info("Initializing database schema...")
    init_database()
    logger.info("Database initialization complete")
except sqlite3.OperationalError as e:
    logger.critical("Database schema error: %s", e)
    raise RuntimeError(f"Database initialization failed: {e}") from e
except Exception as e:
    logger.critical("Unexpected database initialization error: %s", e)
    raise RuntimeError(f"Database initialization failed: {e}") from e

app.include_router(health_router)
app.include_router(sync_router)
app.include_router(notifications_router)
app.include_router(embeddings_router)

log_event("api.startup", service="flowq", version=APP_VERSION)


@app.on_event("startup")
async def validate_database_schema() -> None:
    """Fail fast if the database is missing tables."""
    try:
        validate_schema()
        logger.info("Database schema validation passed")
    except ValueError as e:
        logger.critical("Database schema invalid: %s", e)
        raise RuntimeError(f"Database schema validation failed: {e}") from e


@app.get("/")
def root() -> dict[str, Any]:
    return {
        "service": "flowq Outcome API",
        "version": APP_VERSION,
        "status": "running",
        "endpoints": {
            "health": "/health",
            "sync": "/api/sync",
            "notifications": "/api/notifications",
            "approve": "/api/notifications/{id}/approve",
            "dismiss": "/api/notifications/{id}/dismiss",
            "seed_embeddings": "/api/embeddings/seed",
            "thresholds": "/api/thresholds",
        },
    }


@app.get("/api/thresholds")
def thresholds() -> dict[str, Any]:
    """Current confidence policy (routing tiers, per-layer confidences)."""
    return get_all_thresholds()


def main() -> None:
    import uvicorn

    uvicorn.run("flowq.api.app:app", host=API_HOST, port=API_PORT, reload=DEBUG)


if __name__ == "__main__":
    main()
