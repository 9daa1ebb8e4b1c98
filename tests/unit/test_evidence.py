from __future__ import annotations

from flowq.outcomes.evidence import (
    ContactShape,
    ExecutionEvidence,
    MeetingShape,
    MessageShape,
    TicketShape,
    detect_shapes,
    extract_contact_fields,
    find_shape,
    first_present,
    split_name,
)


def test_first_present_skips_empty_values():
    item = {"email": "", "contact_email": None, "電郵": "chan@example.hk"}
    assert first_present(item, "email", "contact_email", "電郵") == "chan@example.hk"
    assert first_present({}, "email") is None


def test_detects_chinese_meeting_and_contact_fields():
    shapes = detect_shapes({"預約時間": "2025-03-01 10:00", "姓名": "陳 大文", "電話": "91234567"})

    meeting = find_shape(shapes, MeetingShape)
    contact = find_shape(shapes, ContactShape)
    assert meeting.start_time == "2025-03-01 10:00"
    assert contact.phone == "91234567"
    assert contact.first_name == "陳"
    assert contact.identifiable


def test_contact_without_name_is_not_identifiable():
    contact = find_shape(detect_shapes({"email": "a@x.com"}), ContactShape)
    assert contact is not None
    assert not contact.identifiable


def test_ticket_resolution_from_status():
    ticket = find_shape(detect_shapes({"ticket_id": 17, "status": "Resolved"}), TicketShape)
    assert ticket.ticket_id == "17"
    assert ticket.is_resolved

    open_ticket = find_shape(detect_shapes({"issue_id": "GH-3", "state": "open"}), TicketShape)
    assert not open_ticket.is_resolved


def test_message_shape_needs_id_or_sent_flag():
    assert find_shape(detect_shapes({"to": "a@x.com"}), MessageShape) is None
    message = find_shape(detect_shapes({"message_id": "m-1", "to": "a@x.com"}), MessageShape)
    assert message.recipient == "a@x.com"


def test_unknown_shape_yields_nothing():
    assert detect_shapes({"foo": "bar", "count": 3}) == []


def test_split_name():
    assert split_name("Ada Lovelace King") == ("Ada", "Lovelace King")
    assert split_name("Ada") == ("Ada", None)
    assert split_name(None) == (None, None)


def test_evidence_accessors(make_execution):
    execution = make_execution(
        "e1",
        {
            "Webhook": [{"name": "Ada Lovelace", "email": "ada@example.com"}, {"n": 1}],
            "Schedule": [{"scheduled_at": "2025-03-01T10:00:00Z"}],
        },
    )
    evidence = ExecutionEvidence(execution)

    assert evidence.node_names == ["Webhook", "Schedule"]
    assert evidence.first_item("Webhook") == {"name": "Ada Lovelace", "email": "ada@example.com"}
    assert evidence.first_item("Missing") is None
    assert len(list(evidence.iter_items())) == 3
    assert "ada@example.com" in list(evidence.string_values())
    assert "scheduled_at" in evidence.all_keys()

    fields = extract_contact_fields(evidence)
    assert fields.email == "ada@example.com"
    assert fields.first_name == "Ada"
    assert fields.last_name == "Lovelace"
    assert fields.scheduled_time == "2025-03-01T10:00:00Z"
