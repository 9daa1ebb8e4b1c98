"""
Outcome classifier: runs the detection layers in order, first result wins.

Default order:
1. user-confirmed mapping (bypasses everything else)
2. deterministic vendor signatures
3. vector-semantic match (may hold a weaker match instead of answering)
4. keyword heuristics
5. the held vector match
6. LLM fallback
7. unknown at 0.0

A layer that raises is logged and skipped; classification itself never
raises for evidence reasons.
"""

from __future__ import annotations

from flowq.llm.embeddings import EmbeddingClient, VertexEmbeddingClient
from flowq.observability.logging import get_logger
from flowq.observability.telemetry import counter, log_event, time_block
from flowq.outcomes.layers import (
    AIFallbackLayer,
    ClassificationContext,
    DetectionStrategy,
    DeterministicLayer,
    HeldCandidateLayer,
    HeuristicLayer,
    UserConfirmedLayer,
    VectorSemanticLayer,
)
from flowq.outcomes.models import (
    ClassificationResult,
    DetectionLayer,
    ExecutionRecord,
    MetricKey,
    WorkflowDefinition,
)

logger = get_logger(__name__)


def default_layers(
    embedder: EmbeddingClient | None = None,
    ai_layer: AIFallbackLayer | None = None,
) -> list[DetectionStrategy]:
    return [
        UserConfirmedLayer(),
        DeterministicLayer(),
        VectorSemanticLayer(embedder if embedder is not None else VertexEmbeddingClient()),
        HeuristicLayer(),
        HeldCandidateLayer(),
        ai_layer if ai_layer is not None else AIFallbackLayer(),
    ]


class OutcomeClassifier:
    def __init__(self, layers: list[DetectionStrategy] | None = None):
        self.layers = layers if layers is not None else default_layers()

    def classify(
        self,
        execution: ExecutionRecord,
        workflow: WorkflowDefinition,
        company_id: str,
    ) -> ClassificationResult:
        context = ClassificationContext(execution=execution, workflow=workflow, company_id=company_id)

        with time_block("classification.latency"):
            for layer in self.layers:
                try:
                    result = layer.attempt(context)
                except Exception as e:
                    counter(f"classification.{layer.name}.error")
                    logger.error(
                        "Layer %s failed on execution %s: %s",
                        layer.name,
                        execution.execution_id,
                        e,
                    )
                    continue

                if result is not None:
                    counter(f"classification.{result.detection_layer.value}")
                    log_event(
                        "classification.result",
                        execution_id=execution.execution_id,
                        metric_key=result.metric_key.value,
                        layer=result.detection_layer.value,
                        confidence=round(result.confidence, 3),
                    )
                    return result

        counter("classification.none")
        logger.info("No layer classified execution %s", execution.execution_id)
        return ClassificationResult(
            metric_key=MetricKey.UNKNOWN,
            confidence=0.0,
            detection_layer=DetectionLayer.NONE,
            metadata=context.base_metadata(),
        )
