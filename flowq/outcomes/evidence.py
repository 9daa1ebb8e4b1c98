"""
Safe access to an execution's node-output graph.

Node outputs are vendor-shaped JSON with no guaranteed fields. Classifiers
never index into them directly: they go through ExecutionEvidence and the
shape detectors below, which only report what is actually present.

Key: detect_shapes() turns one output item into the known shapes it carries;
first_present() resolves a field through its multilingual aliases.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Union

from flowq.outcomes.models import ExecutionRecord, NodeRun

# Field aliases (English + Traditional Chinese), most specific first
EMAIL_FIELDS = ("email", "contact_email", "user_email", "電郵", "電子郵件")
PHONE_FIELDS = ("phone", "mobile", "telephone", "contact_phone", "電話", "手機")
NAME_FIELDS = ("name", "full_name", "contact_name", "姓名", "名字")
START_TIME_FIELDS = ("start_time", "scheduled_at", "event_date", "預約時間", "會議時間")
STATUS_FIELDS = ("status", "state", "狀態")
TICKET_ID_FIELDS = ("ticket_id", "issue_id")
MESSAGE_ID_FIELDS = ("message_id",)
RECIPIENT_FIELDS = ("to", "recipient")


def is_present(value: Any) -> bool:
    """Truthiness as the upstream engine's payloads mean it: empty means absent."""
    if value is None or value is False:
        return False
    if isinstance(value, (str, list, dict)):
        return len(value) > 0
    return True


def first_present(item: dict[str, Any], *aliases: str) -> Any:
    """Return the first alias whose value is present, else None."""
    for alias in aliases:
        value = item.get(alias)
        if is_present(value):
            return value
    return None


def as_text(value: Any) -> str | None:
    if not is_present(value):
        return None
    return value if isinstance(value, str) else str(value)


def split_name(name: str | None) -> tuple[str | None, str | None]:
    """'Ada Lovelace King' -> ('Ada', 'Lovelace King')."""
    if not name:
        return None, None
    parts = name.split(" ")
    first = parts[0] or None
    last = " ".join(parts[1:]) or None
    return first, last


# ============================================================================
# KNOWN SHAPES
# ============================================================================


@dataclass(frozen=True)
class MeetingShape:
    start_time: str | None
    attendees: Any
    event_id: str | None
    kind: str = "meeting"


@dataclass(frozen=True)
class ContactShape:
    email: str | None
    phone: str | None
    name: str | None
    first_name: str | None
    last_name: str | None
    kind: str = "contact"

    @property
    def identifiable(self) -> bool:
        """Has a way to reach the person (email or phone) and a name."""
        return bool((self.email or self.phone) and self.name)


@dataclass(frozen=True)
class TicketShape:
    ticket_id: str | None
    status: str | None
    kind: str = "ticket"

    @property
    def is_resolved(self) -> bool:
        status = (self.status or "").lower()
        return "closed" in status or "resolved" in status


@dataclass(frozen=True)
class MessageShape:
    message_id: str | None
    recipient: str | None
    email_sent: bool
    kind: str = "message"


Shape = Union[MeetingShape, ContactShape, TicketShape, MessageShape]


def detect_shapes(item: dict[str, Any]) -> list[Shape]:
    """Every known shape an output item carries, by field presence."""
    shapes: list[Shape] = []

    start_time = as_text(first_present(item, *START_TIME_FIELDS))
    attendees = item.get("attendees") if is_present(item.get("attendees")) else None
    event_id = as_text(item.get("event_id"))
    if start_time or attendees is not None or event_id:
        shapes.append(MeetingShape(start_time=start_time, attendees=attendees, event_id=event_id))

    email = as_text(first_present(item, *EMAIL_FIELDS))
    phone = as_text(first_present(item, *PHONE_FIELDS))
    name = as_text(first_present(item, *NAME_FIELDS))
    if email or phone or name:
        first, last = split_name(name)
        shapes.append(
            ContactShape(
                email=email,
                phone=phone,
                name=name,
                first_name=as_text(item.get("first_name")) or first,
                last_name=as_text(item.get("last_name")) or last,
            )
        )

    ticket_id = as_text(first_present(item, *TICKET_ID_FIELDS))
    if ticket_id:
        shapes.append(
            TicketShape(ticket_id=ticket_id, status=as_text(first_present(item, *STATUS_FIELDS)))
        )

    message_id = as_text(first_present(item, *MESSAGE_ID_FIELDS))
    email_sent = is_present(item.get("email_sent"))
    if message_id or email_sent:
        shapes.append(
            MessageShape(
                message_id=message_id,
                recipient=as_text(first_present(item, *RECIPIENT_FIELDS)),
                email_sent=email_sent,
            )
        )

    return shapes


def find_shape(shapes: list[Shape], shape_type: type) -> Any:
    for shape in shapes:
        if isinstance(shape, shape_type):
            return shape
    return None


# ============================================================================
# EVIDENCE VIEW
# ============================================================================


class ExecutionEvidence:
    """Read-only view over an ExecutionRecord's node graph."""

    def __init__(self, execution: ExecutionRecord):
        self.execution = execution

    @property
    def node_names(self) -> list[str]:
        return list(self.execution.node_outputs.keys())

    @property
    def is_empty(self) -> bool:
        return not self.execution.node_outputs

    def runs(self, node_name: str) -> list[NodeRun]:
        return self.execution.node_outputs.get(node_name, [])

    def node_items(self, node_name: str) -> Iterator[dict[str, Any]]:
        for run in self.runs(node_name):
            yield from run.items

    def iter_nodes(self) -> Iterator[tuple[str, list[NodeRun]]]:
        yield from self.execution.node_outputs.items()

    def iter_items(self) -> Iterator[dict[str, Any]]:
        for node_name in self.node_names:
            yield from self.node_items(node_name)

    def first_item(self, node_name: str) -> dict[str, Any] | None:
        """First item of the node's first run."""
        runs = self.runs(node_name)
        if runs and runs[0].items:
            return runs[0].items[0]
        return None

    def string_values(self) -> Iterator[str]:
        for item in self.iter_items():
            for value in item.values():
                if isinstance(value, str):
                    yield value

    def all_keys(self) -> list[str]:
        keys: list[str] = []
        for item in self.iter_items():
            keys.extend(str(key) for key in item.keys())
        return keys


@dataclass
class ContactFields:
    email: str | None = None
    phone: str | None = None
    name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    scheduled_time: str | None = None


def extract_contact_fields(evidence: ExecutionEvidence) -> ContactFields:
    """First non-empty contact and scheduling values across all items."""
    fields = ContactFields()
    for item in evidence.iter_items():
        for shape in detect_shapes(item):
            if isinstance(shape, ContactShape):
                fields.email = fields.email or shape.email
                fields.phone = fields.phone or shape.phone
                fields.name = fields.name or shape.name
                fields.first_name = fields.first_name or shape.first_name
                fields.last_name = fields.last_name or shape.last_name
            elif isinstance(shape, MeetingShape):
                fields.scheduled_time = fields.scheduled_time or shape.start_time
    return fields
