from __future__ import annotations

import pytest

from flowq.outcomes.models import ClassificationResult, DetectionLayer, MetricKey, OutcomeMetadata
from flowq.outcomes.notifier import (
    ReviewNotifier,
    notification_priority,
    notification_title,
    render_review_message,
)
from flowq.storage.notifications import NotificationRepository


class RecordingDispatcher:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def dispatch(self, company_id, subject, message, severity):
        self.sent.append((company_id, subject, severity))
        if self.fail:
            raise RuntimeError("push service exploded")
        return True


def _result(metric_key=MetricKey.LEAD_CREATED, confidence=0.65, layer=DetectionLayer.HEURISTIC, **meta):
    meta.setdefault("workflow_name", "Client Intake")
    meta.setdefault("node_names", ["Webhook", "Set"])
    return ClassificationResult(
        metric_key=metric_key,
        confidence=confidence,
        detection_layer=layer,
        metadata=OutcomeMetadata(**meta),
    )


def test_title_names_the_workflow():
    assert notification_title("Client Intake") == 'Need help understanding "Client Intake"'
    assert notification_title(None) == 'Need help understanding "this workflow"'


@pytest.mark.parametrize(("confidence", "priority"), [(0.0, "high"), (0.29, "high"), (0.3, "medium"), (0.8, "medium")])
def test_priority_follows_confidence(confidence, priority):
    assert notification_priority(confidence) == priority


def test_unknown_message_lists_known_activities():
    message = render_review_message(_result(MetricKey.UNKNOWN, 0.0, DetectionLayer.NONE))
    assert message.startswith("We couldn't identify what this workflow tracks.")
    assert "• Meetings booked" in message
    assert "• Deals won" in message
    assert "What happened:\n• Webhook\n• Set" in message


def test_vector_message_quotes_the_matched_description():
    message = render_review_message(
        _result(
            MetricKey.MEETING_BOOKED,
            0.72,
            DetectionLayer.VECTOR_SEMANTIC,
            matched_description="Calendar booking with attendees",
            vector_similarity=0.72,
        )
    )
    assert '"Calendar booking with attendees" (72% match)' in message
    assert '"Meeting Booked"' in message


def test_heuristic_message_reports_confidence():
    message = render_review_message(_result())
    assert message.startswith('Keywords suggest this workflow tracks "Lead Created" (65% confident).')


def test_ai_message_includes_reasoning():
    message = render_review_message(
        _result(MetricKey.DEAL_WON, 0.66, DetectionLayer.AI, reasoning="Deal stage moved to won")
    )
    assert "Why: Deal stage moved to won" in message


def test_long_node_lists_are_truncated():
    nodes = [f"Step {i}" for i in range(8)]
    message = render_review_message(_result(node_names=nodes))
    assert "• Step 4" in message
    assert "• Step 5" not in message
    assert "• ...and 3 more steps" in message


def test_notify_persists_pending_row_and_dispatches():
    dispatcher = RecordingDispatcher()
    notifier = ReviewNotifier(dispatcher=dispatcher)

    notification_id = notifier.notify(_result(confidence=0.2), "company-1", "wf-1", "e1")

    stored = NotificationRepository.get(notification_id, "company-1")
    assert stored.status == "pending"
    assert stored.priority == "high"
    assert stored.suggested_metric_key == "lead_created"
    assert stored.workflow_name == "Client Intake"
    assert stored.metadata["node_names"] == ["Webhook", "Set"]
    assert dispatcher.sent == [("company-1", 'Need help understanding "Client Intake"', "high")]


def test_second_notification_for_execution_is_noop():
    dispatcher = RecordingDispatcher()
    notifier = ReviewNotifier(dispatcher=dispatcher)

    first = notifier.notify(_result(), "company-1", "wf-1", "e1")
    second = notifier.notify(_result(), "company-1", "wf-1", "e1")

    assert first is not None
    assert second is None
    assert len(NotificationRepository.list_for_company("company-1")) == 1
    assert len(dispatcher.sent) == 1


def test_dispatch_failure_keeps_the_notification():
    notifier = ReviewNotifier(dispatcher=RecordingDispatcher(fail=True))

    notification_id = notifier.notify(_result(), "company-1", "wf-1", "e1")

    assert notification_id is not None
    assert NotificationRepository.get(notification_id, "company-1") is not None
