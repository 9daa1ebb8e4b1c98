"""
Outcome Audit Repository - append-only automation_outcomes rows.

Each execution gets at most one row per status, so re-processing cannot
double count a metric.
"""

from __future__ import annotations

import json
from typing import Any

from flowq.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from flowq.outcomes.models import ClassificationResult, OutcomeStatus, utc_now_iso


class OutcomeAuditRepository:
    @staticmethod
    def exists_for_execution(company_id: str, execution_id: str) -> bool:
        with get_db_connection() as conn:
            row = conn.execute(
                """
                SELECT 1 FROM automation_outcomes
                WHERE company_id = ? AND execution_id = ? LIMIT 1
                """,
                (company_id, execution_id),
            ).fetchone()
        return row is not None

    @staticmethod
    @retry_on_db_lock()
    def record(
        company_id: str,
        workflow_id: str,
        execution_id: str,
        result: ClassificationResult,
        status: OutcomeStatus,
        entity_refs: dict[str, str] | None = None,
    ) -> bool:
        """Append the audit row. False when this (execution, status) is already recorded."""
        with db_transaction() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO automation_outcomes (
                    company_id, workflow_id, execution_id, metric_key, metric_value,
                    confidence, detection_layer, status, entity_refs, metadata, created_at
                ) VALUES (?, ?, ?, ?, 1.0, ?, ?, ?, ?, ?, ?)
                """,
                (
                    company_id,
                    workflow_id,
                    execution_id,
                    result.metric_key.value,
                    result.confidence,
                    result.detection_layer.value,
                    OutcomeStatus(status).value,
                    json.dumps(entity_refs or {}),
                    result.metadata.model_dump_json(exclude_none=True),
                    utc_now_iso(),
                ),
            )
            return cursor.rowcount > 0

    @staticmethod
    def list_for_execution(company_id: str, execution_id: str) -> list[dict[str, Any]]:
        with get_db_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM automation_outcomes
                WHERE company_id = ? AND execution_id = ? ORDER BY id
                """,
                (company_id, execution_id),
            ).fetchall()
        return [dict(row) for row in rows]
