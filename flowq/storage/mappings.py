"""
Workflow Mapping Repository - confirmed workflow -> metric overrides.
"""

from __future__ import annotations

from flowq.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from flowq.observability.logging import get_logger
from flowq.outcomes.models import MetricKey, OutcomeMapping, utc_now_iso

logger = get_logger(__name__)


class MappingRepository:
    @staticmethod
    def get(company_id: str, workflow_id: str) -> OutcomeMapping | None:
        with get_db_connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM workflow_metric_mappings
                WHERE company_id = ? AND workflow_id = ? AND user_confirmed = 1
                """,
                (company_id, workflow_id),
            ).fetchone()

        if not row:
            return None
        return OutcomeMapping.model_validate(dict(row))

    @staticmethod
    @retry_on_db_lock()
    def upsert(company_id: str, workflow_id: str, metric_key: MetricKey) -> OutcomeMapping:
        """
        Insert or replace the confirmed override for a workflow.

        Side Effects:
            - Writes one row to workflow_metric_mappings (upsert on conflict)
        """
        now = utc_now_iso()
        with db_transaction() as conn:
            conn.execute(
                """
                INSERT INTO workflow_metric_mappings (
                    company_id, workflow_id, override_metric_key, confidence,
                    detection_layer, user_confirmed, updated_at
                ) VALUES (?, ?, ?, 1.0, 'user_confirmed', 1, ?)
                ON CONFLICT(company_id, workflow_id) DO UPDATE SET
                    override_metric_key = excluded.override_metric_key,
                    confidence = 1.0,
                    detection_layer = 'user_confirmed',
                    user_confirmed = 1,
                    updated_at = excluded.updated_at
                """,
                (company_id, workflow_id, MetricKey(metric_key).value, now),
            )

        logger.info("Confirmed mapping %s -> %s", workflow_id, MetricKey(metric_key).value)
        return OutcomeMapping(
            company_id=company_id,
            workflow_id=workflow_id,
            override_metric_key=MetricKey(metric_key),
            updated_at=now,
        )
