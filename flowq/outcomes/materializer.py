"""
Outcome materializer: writes the business records an accepted outcome implies.

- meeting_booked: contact (resolve or create), meeting, prep task
- lead_created: contact and NEW lead, only for contacts not seen before
- anything else: nothing to write; the audit row is enough

Additive only. Every record write is isolated: a failure is logged, counted
and reported in the result, never raised.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from flowq.observability.logging import get_logger, redact_email
from flowq.observability.telemetry import counter, log_event
from flowq.outcomes.evidence import ExecutionEvidence, extract_contact_fields, split_name
from flowq.outcomes.models import (
    ClassificationResult,
    Contact,
    ExecutionRecord,
    MaterializationResult,
    MetricKey,
)
from flowq.storage.business import (
    ContactRepository,
    LeadRepository,
    MeetingRepository,
    TaskRepository,
)

logger = get_logger(__name__)


def prep_task_title(contact_name: str | None, contact_email: str | None) -> str:
    return f"Prepare for meeting with {contact_name or contact_email or 'client'}".strip()


class _Facts:
    """Classification metadata with gaps filled from the execution's own outputs."""

    def __init__(self, result: ClassificationResult, execution: ExecutionRecord):
        meta = result.metadata
        found = extract_contact_fields(ExecutionEvidence(execution))

        self.workflow_id = meta.workflow_id or execution.workflow_id
        self.workflow_name = meta.workflow_name or self.workflow_id
        self.email = meta.contact_email or found.email
        self.phone = meta.contact_phone or found.phone
        self.name = meta.contact_name or found.name
        fallback_first, fallback_last = split_name(self.name)
        self.first_name = meta.first_name or found.first_name or fallback_first
        self.last_name = meta.last_name or found.last_name or fallback_last
        self.scheduled_time = meta.scheduled_time or found.scheduled_time or execution.started_at

    @property
    def display_name(self) -> str | None:
        if self.name:
            return self.name
        joined = " ".join(part for part in (self.first_name, self.last_name) if part)
        return joined or None


class OutcomeMaterializer:
    def __init__(
        self,
        contacts=ContactRepository,
        meetings=MeetingRepository,
        tasks=TaskRepository,
        leads=LeadRepository,
    ):
        self.contacts = contacts
        self.meetings = meetings
        self.tasks = tasks
        self.leads = leads

    def materialize(
        self,
        result: ClassificationResult,
        execution: ExecutionRecord,
        company_id: str,
    ) -> MaterializationResult:
        outcome = MaterializationResult()
        facts = _Facts(result, execution)

        if result.metric_key == MetricKey.MEETING_BOOKED:
            self._materialize_meeting(outcome, facts, execution, company_id)
        elif result.metric_key == MetricKey.LEAD_CREATED:
            self._materialize_lead(outcome, facts, execution, company_id)
        else:
            outcome.skipped.append("no_target_table")

        if outcome.created:
            counter("materialization.created")
            log_event(
                "materialization.created",
                execution_id=execution.execution_id,
                metric_key=result.metric_key.value,
                entities=sorted(outcome.created),
            )
        return outcome

    # ------------------------------------------------------------------

    def _guarded(self, outcome: MaterializationResult, step: str, func: Callable[[], Any]) -> Any:
        try:
            return func()
        except Exception as e:
            counter("materialization.error")
            logger.error("Materialization step %s failed: %s", step, e)
            outcome.errors.append(f"{step}: {e}")
            return None

    def _resolve_contact(
        self, facts: _Facts, execution: ExecutionRecord, company_id: str
    ) -> tuple[Contact | None, bool]:
        """Existing contact (email first, then phone) or a new one. Second value: created."""
        if facts.email:
            existing = self.contacts.find_by_email(company_id, facts.email)
            if existing is not None:
                return existing, False
        elif facts.phone:
            existing = self.contacts.find_by_phone(company_id, facts.phone)
            if existing is not None:
                return existing, False

        if not (facts.email or facts.phone):
            return None, False

        created = self.contacts.create(
            company_id,
            email=facts.email,
            phone=facts.phone,
            first_name=facts.first_name or "Unknown",
            last_name=facts.last_name or "",
            workflow_id=facts.workflow_id,
            execution_id=execution.execution_id,
        )
        if created is None and facts.email:
            # lost a race with a concurrent writer for the same email
            return self.contacts.find_by_email(company_id, facts.email), False
        return created, created is not None

    def _materialize_meeting(
        self,
        outcome: MaterializationResult,
        facts: _Facts,
        execution: ExecutionRecord,
        company_id: str,
    ) -> None:
        execution_id = execution.execution_id

        if self._guarded(
            outcome, "meeting_lookup", lambda: self.meetings.exists_for_execution(company_id, execution_id)
        ):
            outcome.skipped.append("meeting_exists")
            return

        resolved = self._guarded(
            outcome, "contact", lambda: self._resolve_contact(facts, execution, company_id)
        )
        contact, contact_created = resolved if resolved else (None, False)
        if contact is not None and contact_created:
            outcome.created["contact"] = contact.id

        notes = (
            f"Auto-created from {facts.workflow_name}. "
            f"Contact: {facts.display_name or facts.email or 'Unknown'}"
        )
        meeting = self._guarded(
            outcome,
            "meeting",
            lambda: self.meetings.create_for_execution(
                company_id,
                workflow_id=facts.workflow_id,
                execution_id=execution_id,
                contact_id=contact.id if contact else None,
                scheduled_at=facts.scheduled_time,
                notes=notes,
            ),
        )
        if meeting is None:
            if not outcome.errors:
                outcome.skipped.append("meeting_exists")
            return
        outcome.created["meeting"] = meeting.id

        title = prep_task_title(facts.display_name, facts.email)
        existing_task = self._guarded(
            outcome,
            "task_lookup",
            lambda: self.tasks.find_open_automation_task(company_id, facts.workflow_id, title),
        )
        if existing_task is not None:
            outcome.skipped.append("task_exists")
            return

        task = self._guarded(
            outcome,
            "task",
            lambda: self.tasks.create(
                company_id,
                title=title,
                workflow_id=facts.workflow_id,
                execution_id=execution_id,
                due_at=facts.scheduled_time,
                contact_id=contact.id if contact else None,
                meeting_id=meeting.id,
                priority="HIGH",
                description=(
                    f"Auto-created from {facts.workflow_name}. "
                    "Review the contact's details before the meeting."
                ),
            ),
        )
        if task is not None:
            outcome.created["task"] = task.id

    def _materialize_lead(
        self,
        outcome: MaterializationResult,
        facts: _Facts,
        execution: ExecutionRecord,
        company_id: str,
    ) -> None:
        if not facts.email:
            outcome.skipped.append("no_contact_email")
            return

        existing = self._guarded(
            outcome, "contact_lookup", lambda: self.contacts.find_by_email(company_id, facts.email)
        )
        if existing is not None:
            logger.info("Contact %s already known, no new lead", redact_email(facts.email))
            outcome.skipped.append("contact_exists")
            return
        if outcome.errors:
            return

        contact = self._guarded(
            outcome,
            "contact",
            lambda: self.contacts.create(
                company_id,
                email=facts.email,
                phone=facts.phone,
                first_name=facts.first_name or "Unknown",
                last_name=facts.last_name or "",
                workflow_id=facts.workflow_id,
                execution_id=execution.execution_id,
            ),
        )
        if contact is None:
            if not outcome.errors:
                outcome.skipped.append("contact_exists")
            return
        outcome.created["contact"] = contact.id

        lead = self._guarded(
            outcome,
            "lead",
            lambda: self.leads.create_for_execution(
                company_id,
                contact_id=contact.id,
                workflow_id=facts.workflow_id,
                execution_id=execution.execution_id,
            ),
        )
        if lead is not None:
            outcome.created["lead"] = lead.id
        elif not outcome.errors:
            outcome.skipped.append("lead_exists")
