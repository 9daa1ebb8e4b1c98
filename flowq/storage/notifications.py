"""
Review Notification Repository.

One notification per (company_id, execution_id); a second insert for the
same execution is a no-op.
"""

from __future__ import annotations

import json
from typing import Any

from flowq.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from flowq.observability.logging import get_logger
from flowq.outcomes.models import (
    ClassificationResult,
    NotificationStatus,
    ReviewNotification,
    utc_now_iso,
)

logger = get_logger(__name__)


def _from_row(row: Any) -> ReviewNotification:
    data = dict(row)
    data["metadata"] = json.loads(data.get("metadata") or "{}")
    return ReviewNotification.model_validate(data)


class NotificationRepository:
    @staticmethod
    def exists_for_execution(company_id: str, execution_id: str) -> bool:
        with get_db_connection() as conn:
            row = conn.execute(
                """
                SELECT 1 FROM review_notifications
                WHERE company_id = ? AND execution_id = ? LIMIT 1
                """,
                (company_id, execution_id),
            ).fetchone()
        return row is not None

    @staticmethod
    @retry_on_db_lock()
    def create(
        company_id: str,
        result: ClassificationResult,
        workflow_id: str,
        execution_id: str,
        title: str,
        message: str,
        priority: str,
    ) -> int | None:
        """
        Insert a pending notification.

        Returns:
            New notification id, or None when the execution already has one
        """
        with db_transaction() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO review_notifications (
                    company_id, workflow_id, workflow_name, execution_id,
                    suggested_metric_key, confidence, detection_layer,
                    title, message, priority, status, metadata, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?)
                """,
                (
                    company_id,
                    workflow_id,
                    result.metadata.workflow_name,
                    execution_id,
                    result.metric_key.value,
                    result.confidence,
                    result.detection_layer.value,
                    title,
                    message,
                    priority,
                    result.metadata.model_dump_json(exclude_none=True),
                    utc_now_iso(),
                ),
            )
            if cursor.rowcount == 0:
                return None
            return int(cursor.lastrowid)

    @staticmethod
    def get(notification_id: int, company_id: str) -> ReviewNotification | None:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM review_notifications WHERE id = ? AND company_id = ?",
                (notification_id, company_id),
            ).fetchone()
        return _from_row(row) if row else None

    @staticmethod
    def list_for_company(
        company_id: str,
        status: NotificationStatus | None = NotificationStatus.PENDING,
        limit: int = 100,
    ) -> list[ReviewNotification]:
        query = "SELECT * FROM review_notifications WHERE company_id = ?"
        params: list[Any] = [company_id]
        if status is not None:
            query += " AND status = ?"
            params.append(NotificationStatus(status).value)
        query += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)

        with get_db_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_from_row(row) for row in rows]

    @staticmethod
    @retry_on_db_lock()
    def set_status(notification_id: int, company_id: str, status: NotificationStatus) -> bool:
        """Move a pending notification to a terminal status. False if it was not pending."""
        with db_transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE review_notifications SET status = ?, reviewed_at = ?
                WHERE id = ? AND company_id = ? AND status = 'pending'
                """,
                (NotificationStatus(status).value, utc_now_iso(), notification_id, company_id),
            )
            updated = cursor.rowcount > 0

        if updated:
            logger.info("Notification %s marked %s", notification_id, NotificationStatus(status).value)
        return updated
