"""
Database schema initialization for flowq.

Contains the SQL schema and initialization logic, extracted from database.py to reduce file size.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from flowq.observability.logging import get_logger

logger = get_logger(__name__)


def init_database(db_path: Path) -> None:
    """
    Initialize database with schema (idempotent)

    Safe to run multiple times - uses CREATE TABLE IF NOT EXISTS.

    Every table that must not be written twice for one execution carries an
    execution_id column with a unique (company_id, execution_id) constraint.

    Side Effects:
    - Creates tables and indexes in flowq.db if they don't exist
    - Creates flowq/data/ directory if needed
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)

    conn.executescript("""
        -- Upstream workflow-engine connection per tenant
        CREATE TABLE IF NOT EXISTS tenant_integrations (
            company_id TEXT PRIMARY KEY,
            provider TEXT NOT NULL DEFAULT 'n8n',
            base_url TEXT NOT NULL,
            api_key TEXT NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            updated_at TEXT NOT NULL
        );

        -- Workflow definitions (written by the workflow sync, read-only here)
        CREATE TABLE IF NOT EXISTS workflows (
            company_id TEXT NOT NULL,
            workflow_id TEXT NOT NULL,
            name TEXT NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            tags TEXT NOT NULL DEFAULT '[]',
            updated_at TEXT NOT NULL,
            PRIMARY KEY (company_id, workflow_id)
        );

        -- Raw execution audit, kept regardless of classification outcome
        CREATE TABLE IF NOT EXISTS workflow_runs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            company_id TEXT NOT NULL,
            workflow_id TEXT NOT NULL,
            execution_id TEXT NOT NULL,
            status TEXT NOT NULL,
            mode TEXT,
            started_at TEXT,
            finished_at TEXT,
            node_outputs TEXT NOT NULL DEFAULT '{}',
            created_at TEXT NOT NULL,
            UNIQUE(company_id, execution_id)
        );

        CREATE INDEX IF NOT EXISTS idx_workflow_runs_workflow
        ON workflow_runs(company_id, workflow_id);

        -- Per-execution processing claim (atomic check-then-act)
        CREATE TABLE IF NOT EXISTS execution_claims (
            company_id TEXT NOT NULL,
            execution_id TEXT NOT NULL,
            state TEXT NOT NULL DEFAULT 'in_progress',
            claimed_at TEXT NOT NULL,
            completed_at TEXT,
            PRIMARY KEY (company_id, execution_id)
        );

        -- Confirmed workflow -> metric overrides
        CREATE TABLE IF NOT EXISTS workflow_metric_mappings (
            company_id TEXT NOT NULL,
            workflow_id TEXT NOT NULL,
            override_metric_key TEXT NOT NULL,
            confidence REAL NOT NULL DEFAULT 1.0,
            detection_layer TEXT NOT NULL DEFAULT 'user_confirmed',
            user_confirmed INTEGER NOT NULL DEFAULT 1,
            updated_at TEXT NOT NULL,
            PRIMARY KEY (company_id, workflow_id)
        );

        -- Semantic anchors (company_id NULL = global seed)
        CREATE TABLE IF NOT EXISTS outcome_embeddings (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            company_id TEXT,
            description TEXT NOT NULL,
            embedding TEXT NOT NULL,
            metric_key TEXT NOT NULL,
            language TEXT NOT NULL DEFAULT 'en',
            source TEXT NOT NULL DEFAULT 'seed',
            usage_count INTEGER NOT NULL DEFAULT 0,
            average_similarity REAL NOT NULL DEFAULT 0.0,
            last_used_at TEXT,
            created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_outcome_embeddings_company
        ON outcome_embeddings(company_id);

        -- Downstream business tables
        CREATE TABLE IF NOT EXISTS contacts (
            id TEXT PRIMARY KEY,
            company_id TEXT NOT NULL,
            email TEXT,
            phone TEXT,
            first_name TEXT,
            last_name TEXT,
            status TEXT NOT NULL DEFAULT 'ACTIVE',
            source TEXT NOT NULL DEFAULT 'automation',
            workflow_id TEXT,
            execution_id TEXT,
            created_at TEXT NOT NULL
        );

        CREATE UNIQUE INDEX IF NOT EXISTS idx_contacts_company_email
        ON contacts(company_id, lower(email)) WHERE email IS NOT NULL;

        CREATE INDEX IF NOT EXISTS idx_contacts_company_phone
        ON contacts(company_id, phone);

        CREATE TABLE IF NOT EXISTS meetings (
            id TEXT PRIMARY KEY,
            company_id TEXT NOT NULL,
            contact_id TEXT,
            lead_id TEXT,
            scheduled_at TEXT,
            notes TEXT,
            source TEXT NOT NULL DEFAULT 'automation',
            workflow_id TEXT NOT NULL,
            execution_id TEXT NOT NULL,
            created_at TEXT NOT NULL,
            UNIQUE(company_id, execution_id),
            FOREIGN KEY (contact_id) REFERENCES contacts(id)
        );

        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            company_id TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            priority TEXT NOT NULL DEFAULT 'MEDIUM',
            status TEXT NOT NULL DEFAULT 'PENDING',
            due_at TEXT,
            contact_id TEXT,
            meeting_id TEXT,
            created_by TEXT NOT NULL DEFAULT 'automation',
            workflow_id TEXT,
            execution_id TEXT,
            created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_tasks_execution
        ON tasks(company_id, execution_id);

        CREATE INDEX IF NOT EXISTS idx_tasks_workflow
        ON tasks(company_id, workflow_id, created_by);

        CREATE TABLE IF NOT EXISTS leads (
            id TEXT PRIMARY KEY,
            company_id TEXT NOT NULL,
            contact_id TEXT NOT NULL,
            stage TEXT NOT NULL DEFAULT 'NEW',
            priority TEXT NOT NULL DEFAULT 'MEDIUM',
            source TEXT NOT NULL DEFAULT 'automation',
            workflow_id TEXT,
            execution_id TEXT NOT NULL,
            created_at TEXT NOT NULL,
            UNIQUE(company_id, execution_id),
            FOREIGN KEY (contact_id) REFERENCES contacts(id)
        );

        -- Append-only classification audit
        CREATE TABLE IF NOT EXISTS automation_outcomes (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            company_id TEXT NOT NULL,
            workflow_id TEXT NOT NULL,
            execution_id TEXT NOT NULL,
            metric_key TEXT NOT NULL,
            metric_value REAL NOT NULL DEFAULT 1.0,
            confidence REAL NOT NULL,
            detection_layer TEXT NOT NULL,
            status TEXT NOT NULL,
            entity_refs TEXT NOT NULL DEFAULT '{}',
            metadata TEXT NOT NULL DEFAULT '{}',
            created_at TEXT NOT NULL,
            UNIQUE(company_id, execution_id, status)
        );

        CREATE INDEX IF NOT EXISTS idx_automation_outcomes_execution
        ON automation_outcomes(company_id, execution_id);

        CREATE TABLE IF NOT EXISTS review_notifications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            company_id TEXT NOT NULL,
            workflow_id TEXT NOT NULL,
            workflow_name TEXT,
            execution_id TEXT NOT NULL,
            suggested_metric_key TEXT NOT NULL,
            confidence REAL NOT NULL,
            detection_layer TEXT NOT NULL,
            title TEXT NOT NULL,
            message TEXT NOT NULL,
            priority TEXT NOT NULL DEFAULT 'medium',
            status TEXT NOT NULL DEFAULT 'pending',
            metadata TEXT NOT NULL DEFAULT '{}',
            created_at TEXT NOT NULL,
            reviewed_at TEXT,
            UNIQUE(company_id, execution_id)
        );

        CREATE INDEX IF NOT EXISTS idx_review_notifications_status
        ON review_notifications(company_id, status);
    """)

    conn.commit()
    conn.close()

    logger.info("Database initialized: %s", db_path)


def validate_schema(conn: sqlite3.Connection) -> bool:
    """
    Validate database has expected schema

    Raises:
        ValueError: If tables or columns are missing
    """
    required_tables = {
        "tenant_integrations": ["company_id", "base_url", "api_key"],
        "workflows": ["company_id", "workflow_id", "name", "is_active"],
        "workflow_runs": ["company_id", "workflow_id", "execution_id", "node_outputs"],
        "execution_claims": ["company_id", "execution_id", "state"],
        "workflow_metric_mappings": ["company_id", "workflow_id", "override_metric_key"],
        "outcome_embeddings": ["id", "embedding", "metric_key", "usage_count"],
        "contacts": ["id", "company_id", "email", "phone"],
        "meetings": ["id", "company_id", "execution_id"],
        "tasks": ["id", "company_id", "title", "execution_id"],
        "leads": ["id", "company_id", "contact_id", "execution_id"],
        "automation_outcomes": ["id", "execution_id", "metric_key", "status"],
        "review_notifications": ["id", "execution_id", "suggested_metric_key", "status"],
    }

    cursor = conn.cursor()

    cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
    existing_tables = {row[0] for row in cursor.fetchall()}

    missing_tables = set(required_tables.keys()) - existing_tables
    if missing_tables:
        raise ValueError(f"Database missing tables: {missing_tables}")

    for table, required_cols in required_tables.items():
        if not table.replace("_", "").isalnum():
            raise ValueError(f"Invalid table name: {table}")

        cursor.execute(f"PRAGMA table_info({table})")
        existing_cols = {row[1] for row in cursor.fetchall()}

        missing_cols = set(required_cols) - existing_cols
        if missing_cols:
            raise ValueError(f"Table '{table}' missing columns: {missing_cols}")

    return True
