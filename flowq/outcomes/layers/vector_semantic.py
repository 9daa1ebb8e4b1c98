"""
Vector-semantic layer: nearest learned description of a similar execution.

A short description (workflow name, node names, a few field values) is
embedded and compared with the tenant's anchors and the global seeds.

- best similarity >= VECTOR_ACCEPT_MIN: accepted, anchor usage recorded
- [VECTOR_SIMILARITY_FLOOR, VECTOR_ACCEPT_MIN): held on the context for the
  held-candidate layer; this layer reports no result
- nothing above the floor, or any embedding/search failure: no result
"""

from __future__ import annotations

from flowq.config import PIPELINE_DESCRIPTION_NODES, VECTOR_MATCH_COUNT
from flowq.observability.confidence import VECTOR_ACCEPT_MIN, VECTOR_SIMILARITY_FLOOR
from flowq.observability.logging import get_logger
from flowq.observability.telemetry import counter
from flowq.outcomes.layers.base import ClassificationContext
from flowq.outcomes.models import ClassificationResult, DetectionLayer, EmbeddingMatch
from flowq.storage.embeddings import EmbeddingRepository

logger = get_logger(__name__)

DESCRIPTION_FIELDS = ("email", "phone", "name", "start_time", "scheduled_at", "status", "ticket_id")


def build_description(context: ClassificationContext) -> str:
    """
    Workflow: <name>
    Nodes: <node, node, ...>
    Data: <node: field: value, ... | ...>

    Data comes from the first item of the first few nodes.
    """
    evidence = context.evidence
    samples = []
    for node_name in evidence.node_names[:PIPELINE_DESCRIPTION_NODES]:
        item = evidence.first_item(node_name)
        if not item:
            continue
        extracted = [f"{field}: {item[field]}" for field in DESCRIPTION_FIELDS if item.get(field)]
        if extracted:
            samples.append(f"{node_name}: {', '.join(extracted)}")

    return "\n".join(
        [
            f"Workflow: {context.workflow.name}",
            f"Nodes: {', '.join(evidence.node_names)}",
            f"Data: {' | '.join(samples)}",
        ]
    )


class VectorSemanticLayer:
    name = "vector_semantic"

    def __init__(self, embedder, embeddings=EmbeddingRepository):
        self.embedder = embedder
        self.embeddings = embeddings

    def attempt(self, context: ClassificationContext) -> ClassificationResult | None:
        if self.embedder is None or context.evidence.is_empty:
            return None

        description = build_description(context)
        try:
            vector = self.embedder.embed(description)
            matches = self.embeddings.search(
                vector,
                company_id=context.company_id,
                similarity_floor=VECTOR_SIMILARITY_FLOOR,
                match_count=VECTOR_MATCH_COUNT,
            )
        except Exception as e:
            counter("classification.vector.failed")
            logger.warning("Vector search unavailable for %s: %s", context.execution.execution_id, e)
            return None

        if not matches:
            logger.debug("No vector matches above %.2f", VECTOR_SIMILARITY_FLOOR)
            return None

        best = matches[0]
        result = self._result(context, best)

        if best.similarity < VECTOR_ACCEPT_MIN:
            counter("classification.vector.held")
            context.held_candidate = result
            return None

        try:
            self.embeddings.record_usage(best.id, best.similarity)
        except Exception as e:
            logger.warning("Could not record usage for embedding %s: %s", best.id, e)

        logger.info("Vector match: %s (similarity %.2f)", best.metric_key.value, best.similarity)
        return result

    @staticmethod
    def _result(context: ClassificationContext, match: EmbeddingMatch) -> ClassificationResult:
        return ClassificationResult(
            metric_key=match.metric_key,
            confidence=match.similarity,
            detection_layer=DetectionLayer.VECTOR_SEMANTIC,
            metadata=context.base_metadata(
                matched_description=match.description,
                matched_embedding_id=match.id,
                vector_similarity=match.similarity,
            ),
        )
