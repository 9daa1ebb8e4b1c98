"""
Gemini Model Manager - shared Vertex AI initialization and model instances.

The classification fallback and the embedding client both go through
init_vertexai() so the SDK is configured exactly once per process.
"""

from __future__ import annotations

import os
from functools import lru_cache

from flowq.infrastructure.settings import (
    EMBEDDING_MODEL,
    GEMINI_LOCATION,
    GEMINI_MODEL,
    GOOGLE_CLOUD_PROJECT,
)
from flowq.observability.logging import get_logger

logger = get_logger(__name__)


class GeminiInitializationError(RuntimeError):
    """Raised when Gemini model cannot be initialized."""


@lru_cache(maxsize=1)
def init_vertexai() -> str:
    """
    Initialize the Vertex AI SDK for this process.

    Returns:
        The project id the SDK was initialized with

    Raises:
        GeminiInitializationError: If the SDK is missing or no project is configured
    """
    # Read env vars fresh (settings may predate dotenv loading)
    project = os.getenv("GOOGLE_CLOUD_PROJECT") or GOOGLE_CLOUD_PROJECT
    location = os.getenv("GEMINI_LOCATION", "") or GEMINI_LOCATION or "us-central1"

    if not project:
        raise GeminiInitializationError("GOOGLE_CLOUD_PROJECT not set")

    try:
        import vertexai
    except ImportError as e:
        raise GeminiInitializationError(
            "Vertex AI SDK not available. Install google-cloud-aiplatform."
        ) from e

    try:
        vertexai.init(project=project, location=location)
    except Exception as e:
        logger.error("Failed to initialize Vertex AI: %s", e)
        raise GeminiInitializationError(f"Failed to initialize Vertex AI: {e}") from e

    logger.info("Initialized Vertex AI: project=%s, location=%s", project, location)
    return project


def get_gemini_model_with_options(system_instruction: str | None = None):
    """Create a Gemini model, optionally bound to a system instruction.

    System instructions are per-model-instance in the Gemini API, so a fresh
    GenerativeModel is built for each distinct instruction.
    """
    init_vertexai()
    from vertexai.generative_models import GenerativeModel

    if system_instruction is None:
        return GenerativeModel(GEMINI_MODEL)
    return GenerativeModel(GEMINI_MODEL, system_instruction=system_instruction)


@lru_cache(maxsize=1)
def get_embedding_model():
    """Shared text embedding model instance."""
    init_vertexai()
    from vertexai.language_models import TextEmbeddingModel

    model = TextEmbeddingModel.from_pretrained(EMBEDDING_MODEL)
    logger.info("Initialized embedding model: %s", EMBEDDING_MODEL)
    return model


def llm_credentials_configured() -> bool:
    """True when a Vertex AI project is configured (reported by /health)."""
    return bool(os.getenv("GOOGLE_CLOUD_PROJECT") or GOOGLE_CLOUD_PROJECT)


def clear_model_cache() -> None:
    """
    Clear cached SDK state.

    Useful for testing or when reconfiguration is needed.
    """
    init_vertexai.cache_clear()
    get_embedding_model.cache_clear()
    logger.info("Cleared Gemini model cache")
