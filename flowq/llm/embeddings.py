"""Text embedding client used by the vector-semantic layer and the learning loop."""

from __future__ import annotations

from typing import Protocol

from flowq.llm.retry import embed_text


class EmbeddingClient(Protocol):
    def embed(self, text: str) -> list[float]: ...


class VertexEmbeddingClient:
    """Vertex AI text embeddings (model from FLOWQ_EMBEDDING_MODEL)."""

    def embed(self, text: str) -> list[float]:
        return embed_text(text)
