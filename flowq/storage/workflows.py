"""
Workflow definitions and tenant integrations.

Both are maintained outside the classification pipeline (workflow sync and
integration setup); the pipeline only reads them. The upsert helpers serve
those collaborators and tests.
"""

from __future__ import annotations

import json

from pydantic import BaseModel

from flowq.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from flowq.outcomes.models import WorkflowDefinition, utc_now_iso


class TenantIntegration(BaseModel):
    company_id: str
    provider: str = "n8n"
    base_url: str
    api_key: str
    is_active: bool = True


class WorkflowRepository:
    @staticmethod
    def get(company_id: str, workflow_id: str) -> WorkflowDefinition | None:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM workflows WHERE company_id = ? AND workflow_id = ?",
                (company_id, workflow_id),
            ).fetchone()
        if not row:
            return None
        data = dict(row)
        data["tags"] = json.loads(data.get("tags") or "[]")
        return WorkflowDefinition.model_validate(data)

    @staticmethod
    def list_active(company_id: str) -> list[WorkflowDefinition]:
        with get_db_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM workflows
                WHERE company_id = ? AND is_active = 1
                ORDER BY workflow_id
                """,
                (company_id,),
            ).fetchall()

        workflows = []
        for row in rows:
            data = dict(row)
            data["tags"] = json.loads(data.get("tags") or "[]")
            workflows.append(WorkflowDefinition.model_validate(data))
        return workflows

    @staticmethod
    @retry_on_db_lock()
    def upsert(workflow: WorkflowDefinition) -> None:
        with db_transaction() as conn:
            conn.execute(
                """
                INSERT INTO workflows (company_id, workflow_id, name, is_active, tags, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(company_id, workflow_id) DO UPDATE SET
                    name = excluded.name,
                    is_active = excluded.is_active,
                    tags = excluded.tags,
                    updated_at = excluded.updated_at
                """,
                (
                    workflow.company_id,
                    workflow.workflow_id,
                    workflow.name,
                    int(workflow.is_active),
                    json.dumps(workflow.tags),
                    utc_now_iso(),
                ),
            )


class IntegrationRepository:
    @staticmethod
    def get_active(company_id: str) -> TenantIntegration | None:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM tenant_integrations WHERE company_id = ? AND is_active = 1",
                (company_id,),
            ).fetchone()
        return TenantIntegration.model_validate(dict(row)) if row else None

    @staticmethod
    @retry_on_db_lock()
    def upsert(integration: TenantIntegration) -> None:
        with db_transaction() as conn:
            conn.execute(
                """
                INSERT INTO tenant_integrations (
                    company_id, provider, base_url, api_key, is_active, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(company_id) DO UPDATE SET
                    provider = excluded.provider,
                    base_url = excluded.base_url,
                    api_key = excluded.api_key,
                    is_active = excluded.is_active,
                    updated_at = excluded.updated_at
                """,
                (
                    integration.company_id,
                    integration.provider,
                    integration.base_url,
                    integration.api_key,
                    int(integration.is_active),
                    utc_now_iso(),
                ),
            )
