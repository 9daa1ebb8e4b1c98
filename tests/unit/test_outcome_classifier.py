from __future__ import annotations

import pytest

from flowq.observability.telemetry import get_counter
from flowq.outcomes.classifier import OutcomeClassifier
from flowq.outcomes.layers import (
    AIFallbackLayer,
    DeterministicLayer,
    HeldCandidateLayer,
    HeuristicLayer,
    UserConfirmedLayer,
    VectorSemanticLayer,
)
from flowq.outcomes.models import (
    ClassificationResult,
    DetectionLayer,
    MetricKey,
    OutcomeEmbeddingEntry,
)
from flowq.storage.embeddings import EmbeddingRepository
from flowq.storage.mappings import MappingRepository

CALENDAR_NODES = {
    "Google Calendar": [
        {"start_time": "2025-03-01T10:00:00Z", "attendees": ["ada@example.com"]}
    ]
}


class RaisingLayer:
    name = "broken"

    def attempt(self, context):
        raise RuntimeError("layer exploded")


class FixedLayer:
    name = "fixed"

    def __init__(self, metric_key=MetricKey.DEAL_WON, confidence=0.8):
        self.metric_key = metric_key
        self.confidence = confidence
        self.calls = 0

    def attempt(self, context):
        self.calls += 1
        return ClassificationResult(
            metric_key=self.metric_key,
            confidence=self.confidence,
            detection_layer=DetectionLayer.HEURISTIC,
            metadata=context.base_metadata(),
        )


def _classifier(fake_embedder, ai_answer=None):
    return OutcomeClassifier(
        layers=[
            UserConfirmedLayer(),
            DeterministicLayer(),
            VectorSemanticLayer(fake_embedder),
            HeuristicLayer(),
            HeldCandidateLayer(),
            AIFallbackLayer(llm_call=lambda prompt: ai_answer, enabled=ai_answer is not None),
        ]
    )


def test_confirmed_mapping_wins_over_evidence(make_execution, workflow, fake_embedder):
    MappingRepository.upsert("company-1", workflow.workflow_id, MetricKey.TICKET_CREATED)

    result = _classifier(fake_embedder).classify(
        make_execution("e1", CALENDAR_NODES), workflow, "company-1"
    )

    assert result.metric_key == MetricKey.TICKET_CREATED
    assert result.confidence == 1.0
    assert result.detection_layer == DetectionLayer.USER_CONFIRMED
    assert fake_embedder.calls == []


def test_mapping_is_tenant_scoped(make_execution, workflow, fake_embedder):
    MappingRepository.upsert("company-2", workflow.workflow_id, MetricKey.TICKET_CREATED)

    result = _classifier(fake_embedder).classify(
        make_execution("e1", CALENDAR_NODES), workflow, "company-1"
    )

    assert result.metric_key == MetricKey.MEETING_BOOKED
    assert result.detection_layer == DetectionLayer.DETERMINISTIC


def test_raising_layer_is_skipped(make_execution, workflow):
    fixed = FixedLayer()
    classifier = OutcomeClassifier(layers=[RaisingLayer(), fixed])

    result = classifier.classify(make_execution("e1", {"Set": [{"a": 1}]}), workflow, "company-1")

    assert result.metric_key == MetricKey.DEAL_WON
    assert fixed.calls == 1
    assert get_counter("classification.broken.error") == 1


def test_first_result_stops_the_chain(make_execution, workflow):
    first, second = FixedLayer(MetricKey.EMAIL_SENT), FixedLayer()
    result = OutcomeClassifier(layers=[first, second]).classify(
        make_execution("e1", {"Set": [{"a": 1}]}), workflow, "company-1"
    )
    assert result.metric_key == MetricKey.EMAIL_SENT
    assert second.calls == 0


def test_held_vector_match_used_when_heuristics_find_nothing(
    make_execution, workflow, fake_embedder
):
    fake_embedder.default = [1.0, 0.0]
    EmbeddingRepository.add(
        OutcomeEmbeddingEntry(
            description="anchor", embedding=[0.72, (1 - 0.72**2) ** 0.5], metric_key=MetricKey.LEAD_CREATED
        )
    )

    result = _classifier(fake_embedder).classify(
        make_execution("e1", {"Set": [{"value": 42}]}), workflow, "company-1"
    )

    assert result.metric_key == MetricKey.LEAD_CREATED
    assert result.detection_layer == DetectionLayer.VECTOR_SEMANTIC
    assert result.confidence == pytest.approx(0.72)


def test_ai_fallback_answers_when_nothing_else_does(make_execution, workflow, fake_embedder):
    answer = {"metric_key": "deal_won", "confidence": 0.65, "reasoning": "Deal stage moved"}

    result = _classifier(fake_embedder, ai_answer=answer).classify(
        make_execution("e1", {"Set": [{"value": 42}]}), workflow, "company-1"
    )

    assert result.metric_key == MetricKey.DEAL_WON
    assert result.detection_layer == DetectionLayer.AI


def test_nothing_matches_is_unknown_at_zero(make_execution, workflow, fake_embedder):
    result = _classifier(fake_embedder).classify(
        make_execution("e1", {"Set": [{"value": 42}]}), workflow, "company-1"
    )

    assert result.metric_key == MetricKey.UNKNOWN
    assert result.confidence == 0.0
    assert result.detection_layer == DetectionLayer.NONE
    assert result.metadata.execution_id == "e1"
    assert result.metadata.workflow_name == "Client Intake"
