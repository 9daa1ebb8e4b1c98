"""
Deterministic layer: vendor-signature nodes carrying the matching data shape.

Nodes are scanned in execution order; for each node the rules are tried in
order meeting, lead, ticket, email. The first node/rule pair with supporting
evidence decides.
"""

from __future__ import annotations

from flowq.observability.confidence import DETERMINISTIC_CEILING, DETERMINISTIC_CONFIDENCE
from flowq.outcomes.evidence import (
    ContactShape,
    MeetingShape,
    MessageShape,
    TicketShape,
    detect_shapes,
    find_shape,
)
from flowq.outcomes.layers.base import ClassificationContext
from flowq.outcomes.models import ClassificationResult, DetectionLayer, MetricKey, NodeRun

CALENDAR_SIGNATURES = ("calendar", "calendly", "booking")
CRM_SIGNATURES = ("hubspot", "pipedrive", "crm")
TICKET_SIGNATURES = ("zendesk", "jira", "freshdesk")
EMAIL_SIGNATURES = ("email", "gmail", "sendgrid")


def _any_in(name: str, signatures: tuple[str, ...]) -> bool:
    return any(signature in name for signature in signatures)


def is_calendar_node(name: str) -> bool:
    return _any_in(name.lower(), CALENDAR_SIGNATURES)


def is_crm_node(name: str) -> bool:
    lowered = name.lower()
    if _any_in(lowered, CRM_SIGNATURES):
        return True
    return "supabase" in lowered and ("insert" in lowered or "create" in lowered)


def is_ticket_node(name: str) -> bool:
    lowered = name.lower()
    return _any_in(lowered, TICKET_SIGNATURES) or ("github" in lowered and "issue" in lowered)


def is_email_node(name: str) -> bool:
    return _any_in(name.lower(), EMAIL_SIGNATURES)


class DeterministicLayer:
    name = "deterministic"

    def attempt(self, context: ClassificationContext) -> ClassificationResult | None:
        for node_name, runs in context.evidence.iter_nodes():
            result = self._match_node(context, node_name, runs)
            if result is not None:
                return result.capped(DETERMINISTIC_CEILING)
        return None

    def _match_node(
        self, context: ClassificationContext, node_name: str, runs: list[NodeRun]
    ) -> ClassificationResult | None:
        if is_calendar_node(node_name):
            for run in runs:
                for item in run.items:
                    meeting = find_shape(detect_shapes(item), MeetingShape)
                    if meeting is not None:
                        return self._result(
                            context,
                            MetricKey.MEETING_BOOKED,
                            DETERMINISTIC_CONFIDENCE["meeting_booked"],
                            scheduled_time=meeting.start_time,
                            attendees=meeting.attendees,
                        )

        if is_crm_node(node_name):
            for run in runs:
                for item in run.items:
                    contact = find_shape(detect_shapes(item), ContactShape)
                    if contact is not None and contact.identifiable:
                        return self._result(
                            context,
                            MetricKey.LEAD_CREATED,
                            DETERMINISTIC_CONFIDENCE["lead_created"],
                            contact_email=contact.email,
                            contact_phone=contact.phone,
                            contact_name=contact.name,
                            first_name=contact.first_name,
                            last_name=contact.last_name,
                        )

        if is_ticket_node(node_name):
            for run in runs:
                for item in run.items:
                    ticket = find_shape(detect_shapes(item), TicketShape)
                    if ticket is not None:
                        key = MetricKey.TICKET_RESOLVED if ticket.is_resolved else MetricKey.TICKET_CREATED
                        return self._result(
                            context,
                            key,
                            DETERMINISTIC_CONFIDENCE["ticket"],
                            ticket_id=ticket.ticket_id,
                            status=ticket.status,
                        )

        if is_email_node(node_name):
            for run in runs:
                # an explicit null error on the run counts as a delivered send
                clean_run = run.has_error_field and run.error is None
                for item in run.items:
                    message = find_shape(detect_shapes(item), MessageShape)
                    if message is not None or clean_run:
                        recipient = message.recipient if message is not None else None
                        if recipient is None:
                            recipient = item.get("to") or item.get("recipient")
                        return self._result(
                            context,
                            MetricKey.EMAIL_SENT,
                            DETERMINISTIC_CONFIDENCE["email_sent"],
                            recipient=str(recipient) if recipient else None,
                        )

        return None

    @staticmethod
    def _result(
        context: ClassificationContext, key: MetricKey, confidence: float, **fields
    ) -> ClassificationResult:
        return ClassificationResult(
            metric_key=key,
            confidence=confidence,
            detection_layer=DetectionLayer.DETERMINISTIC,
            metadata=context.base_metadata(**fields),
        )
