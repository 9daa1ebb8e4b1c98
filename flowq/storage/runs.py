"""
Workflow run audit and per-execution processing claims.
"""

from __future__ import annotations

import json
from datetime import timedelta

from flowq.config import CLAIM_LEASE_SECONDS
from flowq.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from flowq.observability.logging import get_logger
from flowq.outcomes.models import ExecutionRecord, utc_now, utc_now_iso

logger = get_logger(__name__)


class WorkflowRunRepository:
    """Raw executions as fetched, kept whatever the classification outcome."""

    @staticmethod
    @retry_on_db_lock()
    def upsert(company_id: str, execution: ExecutionRecord) -> None:
        with db_transaction() as conn:
            conn.execute(
                """
                INSERT INTO workflow_runs (
                    company_id, workflow_id, execution_id, status, mode,
                    started_at, finished_at, node_outputs, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(company_id, execution_id) DO UPDATE SET
                    status = excluded.status,
                    finished_at = excluded.finished_at,
                    node_outputs = excluded.node_outputs
                """,
                (
                    company_id,
                    execution.workflow_id,
                    execution.execution_id,
                    execution.status.value,
                    execution.mode,
                    execution.started_at,
                    execution.finished_at,
                    json.dumps(execution.to_storage(), default=str),
                    utc_now_iso(),
                ),
            )

    @staticmethod
    def get(company_id: str, execution_id: str) -> ExecutionRecord | None:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM workflow_runs WHERE company_id = ? AND execution_id = ?",
                (company_id, execution_id),
            ).fetchone()

        if not row:
            return None
        return ExecutionRecord.from_storage(
            execution_id=row["execution_id"],
            workflow_id=row["workflow_id"],
            status=row["status"],
            node_outputs=json.loads(row["node_outputs"] or "{}"),
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            mode=row["mode"],
        )


class ExecutionClaimRepository:
    """
    Atomic per-execution claims.

    The primary key on (company_id, execution_id) makes claim() a single
    check-then-act: exactly one caller wins. claimed_at doubles as a lease;
    an in-progress claim older than the lease belongs to a worker that died
    or hung, and the next claim() takes it over in the same statement.
    """

    @staticmethod
    @retry_on_db_lock()
    def claim(
        company_id: str, execution_id: str, lease_seconds: float = CLAIM_LEASE_SECONDS
    ) -> bool:
        now = utc_now()
        # fixed-width timestamps so claimed_at compares as text
        claimed_at = now.isoformat(timespec="microseconds")
        stale_before = (now - timedelta(seconds=lease_seconds)).isoformat(timespec="microseconds")
        with db_transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO execution_claims (company_id, execution_id, state, claimed_at)
                VALUES (?, ?, 'in_progress', ?)
                ON CONFLICT(company_id, execution_id) DO UPDATE SET
                    claimed_at = excluded.claimed_at
                WHERE execution_claims.state = 'in_progress'
                  AND execution_claims.claimed_at < ?
                """,
                (company_id, execution_id, claimed_at, stale_before),
            )
            return cursor.rowcount > 0

    @staticmethod
    @retry_on_db_lock()
    def complete(company_id: str, execution_id: str) -> None:
        with db_transaction() as conn:
            conn.execute(
                """
                UPDATE execution_claims SET state = 'done', completed_at = ?
                WHERE company_id = ? AND execution_id = ?
                """,
                (utc_now_iso(), company_id, execution_id),
            )

    @staticmethod
    @retry_on_db_lock()
    def release(company_id: str, execution_id: str) -> None:
        """Drop an in-progress claim so a later run can retry the execution."""
        with db_transaction() as conn:
            conn.execute(
                """
                DELETE FROM execution_claims
                WHERE company_id = ? AND execution_id = ? AND state = 'in_progress'
                """,
                (company_id, execution_id),
            )

    @staticmethod
    def state(company_id: str, execution_id: str) -> str | None:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT state FROM execution_claims WHERE company_id = ? AND execution_id = ?",
                (company_id, execution_id),
            ).fetchone()
        return row["state"] if row else None
