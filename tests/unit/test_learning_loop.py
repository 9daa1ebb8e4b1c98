from __future__ import annotations

import pytest

from flowq.outcomes.learning import (
    NotificationNotFoundError,
    NotificationStateError,
    OutcomeLearner,
    confirmation_description,
)
from flowq.outcomes.models import ClassificationResult, DetectionLayer, MetricKey, OutcomeMetadata
from flowq.outcomes.seeds import OUTCOME_SEEDS, detect_language, iter_seeds
from flowq.storage.audit import OutcomeAuditRepository
from flowq.storage.business import MeetingRepository
from flowq.storage.embeddings import EmbeddingRepository
from flowq.storage.mappings import MappingRepository
from flowq.storage.notifications import NotificationRepository
from flowq.storage.runs import WorkflowRunRepository

BOOKING = {
    "Webhook": [
        {"scheduled_at": "2025-03-04T15:00:00Z", "email": "ada@example.com", "name": "Ada"}
    ]
}


@pytest.fixture
def learner(fake_embedder):
    return OutcomeLearner(embedder=fake_embedder)


@pytest.fixture
def pending(make_execution):
    """A stored run with a pending review notification suggesting lead_created."""
    execution = make_execution("e1", BOOKING)
    WorkflowRunRepository.upsert("company-1", execution)
    result = ClassificationResult(
        metric_key=MetricKey.LEAD_CREATED,
        confidence=0.65,
        detection_layer=DetectionLayer.HEURISTIC,
        metadata=OutcomeMetadata(workflow_id="wf-1", workflow_name="Client Intake", execution_id="e1"),
    )
    return NotificationRepository.create(
        "company-1", result, workflow_id="wf-1", execution_id="e1",
        title="t", message="m", priority="medium",
    )


def test_confirmation_description():
    assert (
        confirmation_description(MetricKey.MEETING_BOOKED, "wf-1")
        == 'User confirmed: meeting_booked for workflow "wf-1"'
    )
    assert confirmation_description(MetricKey.LEAD_CREATED, "wf-1", "  Website form  ").endswith(
        "\n\nUser Description: Website form"
    )


def test_approve_records_everything(learner, pending):
    result = learner.approve(pending, "company-1", MetricKey.MEETING_BOOKED, "Viewing bookings")

    assert result.metric_key == MetricKey.MEETING_BOOKED
    assert MappingRepository.get("company-1", "wf-1").override_metric_key == MetricKey.MEETING_BOOKED

    anchor = EmbeddingRepository.get(result.embedding_id)
    assert anchor.company_id == "company-1"
    assert anchor.source == "user_confirmed"
    assert anchor.usage_count == 1
    assert "User Description: Viewing bookings" in anchor.description

    assert "meeting" in result.materialization.created
    [meeting] = MeetingRepository.list_for_company("company-1")
    assert meeting.execution_id == "e1"

    [audit] = OutcomeAuditRepository.list_for_execution("company-1", "e1")
    assert audit["status"] == "confirmed"
    assert audit["detection_layer"] == "user_confirmed"
    assert audit["confidence"] == 1.0

    assert NotificationRepository.get(pending, "company-1").status == "approved"


def test_correction_without_business_table(learner, pending):
    result = learner.approve(pending, "company-1", "ticket_created")
    assert result.materialization is None
    assert MappingRepository.get("company-1", "wf-1").override_metric_key == MetricKey.TICKET_CREATED


def test_embedding_failure_does_not_block_approval(learner, pending, fake_embedder):
    fake_embedder.fail = True

    result = learner.approve(pending, "company-1", MetricKey.LEAD_CREATED)

    assert result.embedding_id is None
    assert MappingRepository.get("company-1", "wf-1") is not None
    assert NotificationRepository.get(pending, "company-1").status == "approved"


def test_cannot_confirm_unknown(learner, pending):
    with pytest.raises(ValueError):
        learner.approve(pending, "company-1", MetricKey.UNKNOWN)
    assert MappingRepository.get("company-1", "wf-1") is None


def test_other_tenant_cannot_approve(learner, pending):
    with pytest.raises(NotificationNotFoundError):
        learner.approve(pending, "company-2", MetricKey.LEAD_CREATED)


def test_decided_notification_cannot_be_decided_again(learner, pending):
    learner.dismiss(pending, "company-1")

    assert NotificationRepository.get(pending, "company-1").status == "dismissed"
    with pytest.raises(NotificationStateError):
        learner.approve(pending, "company-1", MetricKey.LEAD_CREATED)
    with pytest.raises(NotificationStateError):
        learner.dismiss(pending, "company-1")


def test_dismiss_learns_nothing(learner, pending, fake_embedder):
    learner.dismiss(pending, "company-1")
    assert MappingRepository.get("company-1", "wf-1") is None
    assert fake_embedder.calls == []


def test_seeds_cover_every_concrete_outcome():
    assert set(OUTCOME_SEEDS) == {key for key in MetricKey if key != MetricKey.UNKNOWN}
    assert detect_language("預約看房確認") == "zh"
    assert detect_language("Calendar booking confirmed") == "en"
    assert all(language in ("en", "zh") for _, _, language in iter_seeds())


def test_seeding_skips_existing_descriptions(learner, fake_embedder):
    total = len(list(iter_seeds()))

    first = learner.seed_embeddings()
    second = learner.seed_embeddings()

    assert first.total_seeded == total
    assert first.total_skipped == 0
    assert second.total_seeded == 0
    assert second.total_skipped == total
    assert len(fake_embedder.calls) == total
    assert "meeting_booked" in first.outcome_types


def test_seeding_counts_failures(learner, fake_embedder):
    fake_embedder.fail = True
    result = learner.seed_embeddings(company_id="company-1")
    assert result.total_seeded == 0
    assert result.total_failed == len(list(iter_seeds()))
