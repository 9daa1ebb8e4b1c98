from __future__ import annotations

import pytest

from flowq.outcomes.materializer import OutcomeMaterializer, prep_task_title
from flowq.outcomes.models import ClassificationResult, DetectionLayer, MetricKey, OutcomeMetadata
from flowq.storage.business import (
    ContactRepository,
    LeadRepository,
    MeetingRepository,
    TaskRepository,
    count_contacts,
)

BOOKING = {
    "Google Calendar": [
        {
            "start_time": "2025-03-04T15:00:00Z",
            "attendees": ["ada@example.com"],
            "email": "ada@example.com",
            "name": "Ada Lovelace",
        }
    ]
}


def _result(metric_key, **metadata):
    return ClassificationResult(
        metric_key=metric_key,
        confidence=0.95,
        detection_layer=DetectionLayer.DETERMINISTIC,
        metadata=OutcomeMetadata(workflow_id="wf-1", workflow_name="Client Intake", **metadata),
    )


@pytest.fixture
def materializer():
    return OutcomeMaterializer()


def test_prep_task_title_falls_back_to_email_then_client():
    assert prep_task_title("Ada", "ada@example.com") == "Prepare for meeting with Ada"
    assert prep_task_title(None, "ada@example.com") == "Prepare for meeting with ada@example.com"
    assert prep_task_title(None, None) == "Prepare for meeting with client"


def test_meeting_creates_contact_meeting_and_prep_task(materializer, make_execution):
    execution = make_execution("e1", BOOKING)

    outcome = materializer.materialize(_result(MetricKey.MEETING_BOOKED), execution, "company-1")

    assert set(outcome.created) == {"contact", "meeting", "task"}
    assert outcome.errors == []

    contact = ContactRepository.find_by_email("company-1", "ADA@example.com")
    assert contact.first_name == "Ada"
    assert contact.last_name == "Lovelace"

    [meeting] = MeetingRepository.list_for_company("company-1")
    assert meeting.contact_id == contact.id
    assert meeting.scheduled_at == "2025-03-04T15:00:00Z"
    assert meeting.execution_id == "e1"
    assert meeting.notes.startswith("Auto-created from Client Intake.")

    [task] = TaskRepository.list_for_company("company-1")
    assert task.title == "Prepare for meeting with Ada Lovelace"
    assert task.priority == "HIGH"
    assert task.meeting_id == meeting.id
    assert task.due_at == "2025-03-04T15:00:00Z"


def test_meeting_without_time_uses_execution_start(materializer, make_execution):
    execution = make_execution("e1", {"Form": [{"email": "ada@example.com"}]})

    materializer.materialize(_result(MetricKey.MEETING_BOOKED), execution, "company-1")

    [meeting] = MeetingRepository.list_for_company("company-1")
    assert meeting.scheduled_at == execution.started_at


def test_second_pass_over_same_execution_writes_nothing(materializer, make_execution):
    execution = make_execution("e1", BOOKING)
    materializer.materialize(_result(MetricKey.MEETING_BOOKED), execution, "company-1")

    again = materializer.materialize(_result(MetricKey.MEETING_BOOKED), execution, "company-1")

    assert again.created == {}
    assert again.skipped == ["meeting_exists"]
    assert len(MeetingRepository.list_for_company("company-1")) == 1
    assert len(TaskRepository.list_for_company("company-1")) == 1


def test_open_prep_task_is_not_duplicated(materializer, make_execution):
    materializer.materialize(
        _result(MetricKey.MEETING_BOOKED), make_execution("e1", BOOKING), "company-1"
    )

    outcome = materializer.materialize(
        _result(MetricKey.MEETING_BOOKED), make_execution("e2", BOOKING), "company-1"
    )

    assert set(outcome.created) == {"meeting"}
    assert "task_exists" in outcome.skipped
    assert len(MeetingRepository.list_for_company("company-1")) == 2
    assert len(TaskRepository.list_for_company("company-1")) == 1
    assert count_contacts("company-1") == 1


def test_new_lead_creates_contact_and_lead(materializer, make_execution):
    execution = make_execution(
        "e1", {"Webhook": [{"email": "grace@example.com", "name": "Grace Hopper"}]}
    )

    outcome = materializer.materialize(_result(MetricKey.LEAD_CREATED), execution, "company-1")

    assert set(outcome.created) == {"contact", "lead"}
    [lead] = LeadRepository.list_for_company("company-1")
    assert lead.stage == "NEW"
    assert lead.contact_id == outcome.created["contact"]


def test_known_contact_is_not_a_new_lead(materializer, make_execution):
    ContactRepository.create(
        "company-1", email="grace@example.com", phone=None, first_name="Grace", last_name="Hopper"
    )
    execution = make_execution("e1", {"Webhook": [{"email": "Grace@Example.com", "name": "G"}]})

    outcome = materializer.materialize(_result(MetricKey.LEAD_CREATED), execution, "company-1")

    assert outcome.created == {}
    assert outcome.skipped == ["contact_exists"]
    assert count_contacts("company-1") == 1
    assert LeadRepository.list_for_company("company-1") == []


def test_lead_without_email_writes_nothing(materializer, make_execution):
    execution = make_execution("e1", {"Webhook": [{"phone": "555-1234", "name": "Grace"}]})
    outcome = materializer.materialize(_result(MetricKey.LEAD_CREATED), execution, "company-1")
    assert outcome.skipped == ["no_contact_email"]
    assert count_contacts("company-1") == 0


@pytest.mark.parametrize(
    "metric_key",
    [MetricKey.TICKET_CREATED, MetricKey.TICKET_RESOLVED, MetricKey.EMAIL_SENT, MetricKey.DEAL_WON],
)
def test_outcomes_without_business_table(materializer, make_execution, metric_key):
    outcome = materializer.materialize(_result(metric_key), make_execution("e1", BOOKING), "company-1")
    assert outcome.created == {}
    assert outcome.skipped == ["no_target_table"]


def test_metadata_fields_take_precedence(materializer, make_execution):
    execution = make_execution("e1", BOOKING)
    result = _result(
        MetricKey.MEETING_BOOKED,
        contact_email="other@example.com",
        contact_name="Other Person",
        scheduled_time="2025-04-01T09:00:00Z",
    )

    materializer.materialize(result, execution, "company-1")

    assert ContactRepository.find_by_email("company-1", "other@example.com") is not None
    [meeting] = MeetingRepository.list_for_company("company-1")
    assert meeting.scheduled_at == "2025-04-01T09:00:00Z"


class _BrokenContacts(ContactRepository):
    @staticmethod
    def find_by_email(company_id, email):
        raise ConnectionError("contacts table unavailable")


def test_failed_contact_step_still_books_meeting(make_execution):
    materializer = OutcomeMaterializer(contacts=_BrokenContacts)

    outcome = materializer.materialize(
        _result(MetricKey.MEETING_BOOKED), make_execution("e1", BOOKING), "company-1"
    )

    assert "meeting" in outcome.created
    assert "contact" not in outcome.created
    assert outcome.errors and outcome.errors[0].startswith("contact:")
    [meeting] = MeetingRepository.list_for_company("company-1")
    assert meeting.contact_id is None
