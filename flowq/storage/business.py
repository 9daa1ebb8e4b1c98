"""
Business store repositories - contacts, meetings, tasks, leads.

Writes are additive: rows are created, never updated or deleted here. Rows
tied to an execution are unique per (company_id, execution_id); inserting a
duplicate is reported as None rather than raised.
"""

from __future__ import annotations

import sqlite3
import uuid

from flowq.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from flowq.observability.logging import get_logger
from flowq.outcomes.models import Contact, Lead, Meeting, Task, utc_now_iso

logger = get_logger(__name__)


class ContactRepository:
    @staticmethod
    def find_by_email(company_id: str, email: str) -> Contact | None:
        """Case-insensitive exact email match."""
        with get_db_connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM contacts
                WHERE company_id = ? AND email IS NOT NULL AND lower(email) = lower(?)
                LIMIT 1
                """,
                (company_id, email),
            ).fetchone()
        return Contact.model_validate(dict(row)) if row else None

    @staticmethod
    def find_by_phone(company_id: str, phone: str) -> Contact | None:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM contacts WHERE company_id = ? AND phone = ? LIMIT 1",
                (company_id, phone),
            ).fetchone()
        return Contact.model_validate(dict(row)) if row else None

    @staticmethod
    @retry_on_db_lock()
    def create(
        company_id: str,
        email: str | None,
        phone: str | None,
        first_name: str | None,
        last_name: str | None,
        workflow_id: str | None = None,
        execution_id: str | None = None,
    ) -> Contact | None:
        """
        Create an ACTIVE contact.

        Returns None when another writer created a contact with the same
        email first (unique index on lower(email)).
        """
        contact = Contact(
            id=str(uuid.uuid4()),
            company_id=company_id,
            email=email,
            phone=phone,
            first_name=first_name,
            last_name=last_name,
        )
        with db_transaction() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO contacts (
                    id, company_id, email, phone, first_name, last_name,
                    status, source, workflow_id, execution_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, 'ACTIVE', 'automation', ?, ?, ?)
                """,
                (
                    contact.id,
                    company_id,
                    email,
                    phone,
                    first_name,
                    last_name,
                    workflow_id,
                    execution_id,
                    utc_now_iso(),
                ),
            )
            if cursor.rowcount == 0:
                return None
        return contact


class MeetingRepository:
    @staticmethod
    def exists_for_execution(company_id: str, execution_id: str) -> bool:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM meetings WHERE company_id = ? AND execution_id = ? LIMIT 1",
                (company_id, execution_id),
            ).fetchone()
        return row is not None

    @staticmethod
    @retry_on_db_lock()
    def create_for_execution(
        company_id: str,
        workflow_id: str,
        execution_id: str,
        contact_id: str | None,
        scheduled_at: str | None,
        notes: str | None,
        lead_id: str | None = None,
    ) -> Meeting | None:
        """Insert the execution's meeting; None if it already has one."""
        meeting = Meeting(
            id=str(uuid.uuid4()),
            company_id=company_id,
            contact_id=contact_id,
            lead_id=lead_id,
            scheduled_at=scheduled_at,
            notes=notes,
            workflow_id=workflow_id,
            execution_id=execution_id,
        )
        with db_transaction() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO meetings (
                    id, company_id, contact_id, lead_id, scheduled_at, notes,
                    source, workflow_id, execution_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, 'automation', ?, ?, ?)
                """,
                (
                    meeting.id,
                    company_id,
                    contact_id,
                    lead_id,
                    scheduled_at,
                    notes,
                    workflow_id,
                    execution_id,
                    utc_now_iso(),
                ),
            )
            if cursor.rowcount == 0:
                return None
        return meeting

    @staticmethod
    def list_for_company(company_id: str) -> list[Meeting]:
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM meetings WHERE company_id = ? ORDER BY created_at",
                (company_id,),
            ).fetchall()
        return [Meeting.model_validate(dict(row)) for row in rows]


class TaskRepository:
    @staticmethod
    def exists_for_execution(company_id: str, execution_id: str) -> bool:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM tasks WHERE company_id = ? AND execution_id = ? LIMIT 1",
                (company_id, execution_id),
            ).fetchone()
        return row is not None

    @staticmethod
    def find_open_automation_task(company_id: str, workflow_id: str, title: str) -> Task | None:
        """Non-completed automation task of this workflow with the same title (any case)."""
        with get_db_connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM tasks
                WHERE company_id = ? AND workflow_id = ? AND created_by = 'automation'
                  AND status != 'COMPLETED' AND lower(title) = lower(?)
                LIMIT 1
                """,
                (company_id, workflow_id, title),
            ).fetchone()
        return Task.model_validate(dict(row)) if row else None

    @staticmethod
    @retry_on_db_lock()
    def create(
        company_id: str,
        title: str,
        workflow_id: str,
        execution_id: str,
        due_at: str | None,
        contact_id: str | None = None,
        meeting_id: str | None = None,
        priority: str = "HIGH",
        description: str | None = None,
    ) -> Task:
        task = Task(
            id=str(uuid.uuid4()),
            company_id=company_id,
            title=title,
            priority=priority,
            due_at=due_at,
            contact_id=contact_id,
            meeting_id=meeting_id,
            workflow_id=workflow_id,
            execution_id=execution_id,
        )
        with db_transaction() as conn:
            conn.execute(
                """
                INSERT INTO tasks (
                    id, company_id, title, description, priority, status, due_at,
                    contact_id, meeting_id, created_by, workflow_id, execution_id, created_at
                ) VALUES (?, ?, ?, ?, ?, 'PENDING', ?, ?, ?, 'automation', ?, ?, ?)
                """,
                (
                    task.id,
                    company_id,
                    title,
                    description,
                    priority,
                    due_at,
                    contact_id,
                    meeting_id,
                    workflow_id,
                    execution_id,
                    utc_now_iso(),
                ),
            )
        return task

    @staticmethod
    def list_for_company(company_id: str) -> list[Task]:
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE company_id = ? ORDER BY created_at",
                (company_id,),
            ).fetchall()
        return [Task.model_validate(dict(row)) for row in rows]


class LeadRepository:
    @staticmethod
    @retry_on_db_lock()
    def create_for_execution(
        company_id: str,
        contact_id: str,
        workflow_id: str,
        execution_id: str,
    ) -> Lead | None:
        """NEW-stage lead for the execution; None if it already has one."""
        lead = Lead(
            id=str(uuid.uuid4()),
            company_id=company_id,
            contact_id=contact_id,
            workflow_id=workflow_id,
            execution_id=execution_id,
        )
        try:
            with db_transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO leads (
                        id, company_id, contact_id, stage, priority, source,
                        workflow_id, execution_id, created_at
                    ) VALUES (?, ?, ?, 'NEW', 'MEDIUM', 'automation', ?, ?, ?)
                    """,
                    (lead.id, company_id, contact_id, workflow_id, execution_id, utc_now_iso()),
                )
                if cursor.rowcount == 0:
                    return None
        except sqlite3.IntegrityError as e:
            logger.warning("Lead insert rejected for execution %s: %s", execution_id, e)
            return None
        return lead

    @staticmethod
    def list_for_company(company_id: str) -> list[Lead]:
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM leads WHERE company_id = ? ORDER BY created_at",
                (company_id,),
            ).fetchall()
        return [Lead.model_validate(dict(row)) for row in rows]


def count_contacts(company_id: str) -> int:
    with get_db_connection() as conn:
        row = conn.execute(
            "SELECT COUNT(*) FROM contacts WHERE company_id = ?", (company_id,)
        ).fetchone()
    return int(row[0])
