"""
Pytest configuration shared across unit and integration tests

Every test gets its own SQLite database; external services (embeddings,
Gemini, the workflow engine, push dispatch) are replaced by the fakes below.
"""

from __future__ import annotations

from typing import Any

import pytest

from flowq.infrastructure.database import get_pool, init_database
from flowq.observability.telemetry import reset_counters, reset_latencies
from flowq.outcomes.models import ExecutionRecord, WorkflowDefinition
from flowq.storage.workflows import IntegrationRepository, TenantIntegration, WorkflowRepository

COMPANY_ID = "company-1"
WORKFLOW_ID = "wf-1"


def _reset_pool() -> None:
    if get_pool.cache_info().currsize:
        get_pool().close_all()
    get_pool.cache_clear()


@pytest.fixture(autouse=True)
def isolated_db(tmp_path, monkeypatch):
    """Fresh schema in a temp file; pool singleton rebuilt around it."""
    db_path = tmp_path / "flowq.db"
    monkeypatch.setenv("FLOWQ_DB_PATH", str(db_path))
    _reset_pool()
    init_database()
    reset_counters()
    reset_latencies()
    yield db_path
    _reset_pool()


# ============================================================================
# Builders
# ============================================================================


def build_payload(
    execution_id: str,
    nodes: dict[str, list[dict[str, Any]]],
    workflow_id: str = WORKFLOW_ID,
    status: str = "success",
    started_at: str = "2025-03-01T09:00:00.000Z",
) -> dict[str, Any]:
    """Upstream execution envelope with one run per node, one branch per run."""
    run_data = {
        name: [{"data": {"main": [[{"json": item} for item in items]]}, "error": None}]
        for name, items in nodes.items()
    }
    return {
        "id": execution_id,
        "workflowId": workflow_id,
        "status": status,
        "finished": status == "success",
        "mode": "webhook",
        "startedAt": started_at,
        "stoppedAt": "2025-03-01T09:00:02.000Z",
        "data": {"resultData": {"runData": run_data}},
    }


@pytest.fixture
def make_execution():
    def _make(
        execution_id: str,
        nodes: dict[str, list[dict[str, Any]]],
        workflow_id: str = WORKFLOW_ID,
        status: str = "success",
    ) -> ExecutionRecord:
        return ExecutionRecord.from_api(
            build_payload(execution_id, nodes, workflow_id=workflow_id, status=status)
        )

    return _make


@pytest.fixture
def payload_builder():
    return build_payload


@pytest.fixture
def workflow() -> WorkflowDefinition:
    wf = WorkflowDefinition(company_id=COMPANY_ID, workflow_id=WORKFLOW_ID, name="Client Intake")
    WorkflowRepository.upsert(wf)
    return wf


@pytest.fixture
def integration() -> TenantIntegration:
    tenant = TenantIntegration(
        company_id=COMPANY_ID, base_url="n8n.example.com", api_key="test-key"
    )
    IntegrationRepository.upsert(tenant)
    return tenant


# ============================================================================
# Fakes
# ============================================================================


class FakeEmbedder:
    """
    Deterministic embeddings: the first registered phrase contained in the
    text picks the vector, otherwise the default.
    """

    def __init__(self, default: list[float] | None = None):
        self.default = default or [0.0, 0.0, 1.0]
        self.vectors: dict[str, list[float]] = {}
        self.calls: list[str] = []
        self.fail = False

    def register(self, phrase: str, vector: list[float]) -> None:
        self.vectors[phrase] = vector

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise ConnectionError("embedding service unavailable")
        for phrase, vector in self.vectors.items():
            if phrase in text:
                return vector
        return self.default


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        body: Any = None,
        content_type: str = "application/json",
        text: str = "",
    ):
        self.status_code = status_code
        self._body = body
        self.headers = {"content-type": content_type}
        self.text = text

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body


class FakeSession:
    """requests.Session stand-in that replays queued responses and records calls."""

    def __init__(self, responses: list[Any] | None = None):
        self.responses = list(responses or [])
        self.calls: list[dict[str, Any]] = []

    def _next(self, **call: Any) -> FakeResponse:
        self.calls.append(call)
        response = self.responses.pop(0) if self.responses else FakeResponse(200, {})
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, params=None, headers=None, timeout=None):
        return self._next(method="GET", url=url, params=params, headers=headers, timeout=timeout)

    def post(self, url, json=None, headers=None, timeout=None):
        return self._next(method="POST", url=url, json=json, headers=headers, timeout=timeout)


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def fake_session_factory():
    return FakeSession


@pytest.fixture
def fake_response_factory():
    return FakeResponse
