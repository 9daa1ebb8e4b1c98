"""
Workflow outcome domain models.

Execution records come from the upstream automation platform; everything
else is produced by the classification pipeline or the business store.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Return current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def utc_now_iso() -> str:
    return utc_now().isoformat()


class MetricKey(str, Enum):
    """Business outcome an execution represents."""

    MEETING_BOOKED = "meeting_booked"
    LEAD_CREATED = "lead_created"
    TICKET_CREATED = "ticket_created"
    TICKET_RESOLVED = "ticket_resolved"
    EMAIL_SENT = "email_sent"
    DEAL_WON = "deal_won"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        return _METRIC_LABELS[self]


_METRIC_LABELS = {
    MetricKey.MEETING_BOOKED: "Meeting Booked",
    MetricKey.LEAD_CREATED: "Lead Created",
    MetricKey.TICKET_CREATED: "Ticket Created",
    MetricKey.TICKET_RESOLVED: "Ticket Resolved",
    MetricKey.EMAIL_SENT: "Email Sent",
    MetricKey.DEAL_WON: "Deal Won",
    MetricKey.UNKNOWN: "Unknown Activity",
}


class DetectionLayer(str, Enum):
    """Classification stage that produced a result."""

    USER_CONFIRMED = "user_confirmed"
    DETERMINISTIC = "deterministic"
    VECTOR_SEMANTIC = "vector_semantic"
    HEURISTIC = "heuristic"
    AI = "ai"
    NONE = "none"  # terminal unknown


class OutcomeStatus(str, Enum):
    CONFIRMED = "confirmed"
    LEARNING = "learning"
    PENDING_REVIEW = "pending_review"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DISMISSED = "dismissed"


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    RUNNING = "running"

    @classmethod
    def from_upstream(cls, status: str | None, finished: bool | None = None) -> ExecutionStatus:
        """Map the upstream engine's status vocabulary onto ours."""
        value = (status or "").lower()
        if value == "success" or (not value and finished):
            return cls.SUCCESS
        if value in ("error", "crashed", "failed", "canceled", "cancelled"):
            return cls.ERROR
        return cls.RUNNING


# ============================================================================
# UPSTREAM RECORDS
# ============================================================================


class WorkflowDefinition(BaseModel):
    """Tenant-scoped workflow; maintained by the workflow sync, read-only here."""

    company_id: str
    workflow_id: str
    name: str = ""
    is_active: bool = True
    tags: list[str] = Field(default_factory=list)


class NodeRun(BaseModel):
    """One run attempt of a node: its JSON output items across all branches."""

    model_config = ConfigDict(frozen=True)

    items: list[dict[str, Any]] = Field(default_factory=list)
    error: Any = None
    # True when the run payload carries an explicit "error" key (even null)
    has_error_field: bool = False

    @classmethod
    def from_api(cls, run: Any) -> NodeRun:
        if not isinstance(run, dict):
            return cls()

        items: list[dict[str, Any]] = []
        data = run.get("data")
        main = data.get("main") if isinstance(data, dict) else None
        if isinstance(main, list):
            for branch in main:
                if not isinstance(branch, list):
                    continue
                for item in branch:
                    if isinstance(item, dict) and isinstance(item.get("json"), dict):
                        items.append(item["json"])

        return cls(items=items, error=run.get("error"), has_error_field="error" in run)


class ExecutionRecord(BaseModel):
    """One completed run of a workflow with its node-output graph."""

    model_config = ConfigDict(frozen=True)

    execution_id: str
    workflow_id: str
    status: ExecutionStatus = ExecutionStatus.SUCCESS
    started_at: str | None = None
    finished_at: str | None = None
    mode: str | None = None
    # insertion order is node order
    node_outputs: dict[str, list[NodeRun]] = Field(default_factory=dict)

    @field_validator("execution_id", "workflow_id", mode="before")
    @classmethod
    def coerce_identity(cls, v: Any) -> str:
        if v is None or str(v).strip() == "":
            raise ValueError("execution and workflow ids cannot be empty")
        return str(v)

    @classmethod
    def from_api(cls, payload: dict[str, Any], workflow_id: str | None = None) -> ExecutionRecord:
        """
        Build from the upstream execution envelope.

        Only data.resultData.runData is evidence; any missing level yields an
        empty graph.
        """
        data = payload.get("data")
        result_data = data.get("resultData") if isinstance(data, dict) else None
        run_data = result_data.get("runData") if isinstance(result_data, dict) else None

        node_outputs: dict[str, list[NodeRun]] = {}
        if isinstance(run_data, dict):
            for node_name, runs in run_data.items():
                if not isinstance(runs, list):
                    runs = []
                node_outputs[str(node_name)] = [NodeRun.from_api(run) for run in runs]

        return cls(
            execution_id=payload.get("id"),
            workflow_id=payload.get("workflowId") or workflow_id,
            status=ExecutionStatus.from_upstream(payload.get("status"), payload.get("finished")),
            started_at=payload.get("startedAt"),
            finished_at=payload.get("stoppedAt"),
            mode=payload.get("mode"),
            node_outputs=node_outputs,
        )

    def to_storage(self) -> dict[str, Any]:
        """Node graph in a JSON-serializable form (see from_storage)."""
        return {
            name: [run.model_dump() for run in runs] for name, runs in self.node_outputs.items()
        }

    @classmethod
    def from_storage(
        cls,
        execution_id: str,
        workflow_id: str,
        status: str,
        node_outputs: dict[str, Any],
        started_at: str | None = None,
        finished_at: str | None = None,
        mode: str | None = None,
    ) -> ExecutionRecord:
        return cls(
            execution_id=execution_id,
            workflow_id=workflow_id,
            status=ExecutionStatus(status),
            started_at=started_at,
            finished_at=finished_at,
            mode=mode,
            node_outputs={
                name: [NodeRun.model_validate(run) for run in runs]
                for name, runs in node_outputs.items()
            },
        )


# ============================================================================
# CLASSIFICATION
# ============================================================================


class OutcomeMetadata(BaseModel):
    """Fields extracted alongside a classification. Unknown keys are kept."""

    model_config = ConfigDict(extra="allow")

    workflow_id: str | None = None
    workflow_name: str | None = None
    execution_id: str | None = None

    contact_email: str | None = None
    contact_phone: str | None = None
    contact_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    scheduled_time: str | None = None
    attendees: Any = None
    ticket_id: str | None = None
    status: str | None = None
    recipient: str | None = None

    matched_description: str | None = None
    matched_embedding_id: int | None = None
    vector_similarity: float | None = None
    reasoning: str | None = None
    node_names: list[str] = Field(default_factory=list)


class ClassificationResult(BaseModel):
    metric_key: MetricKey
    confidence: float = Field(..., ge=0.0, le=1.0)
    detection_layer: DetectionLayer
    metadata: OutcomeMetadata = Field(default_factory=OutcomeMetadata)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        return max(0.0, min(1.0, float(v)))

    def capped(self, ceiling: float) -> ClassificationResult:
        if self.confidence <= ceiling:
            return self
        return self.model_copy(update={"confidence": ceiling})


class RoutingAction(str, Enum):
    AUTO_MATERIALIZE = "auto_materialize"
    SILENT_LEARN = "silent_learn"
    REVIEW = "review"


class RoutingDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: RoutingAction
    status: OutcomeStatus
    materialize: bool
    notify: bool


# ============================================================================
# LEARNED STATE
# ============================================================================


class OutcomeMapping(BaseModel):
    """Confirmed workflow -> metric override."""

    company_id: str
    workflow_id: str
    override_metric_key: MetricKey
    confidence: float = 1.0
    detection_layer: DetectionLayer = DetectionLayer.USER_CONFIRMED
    user_confirmed: bool = True
    updated_at: str | None = None


class OutcomeEmbeddingEntry(BaseModel):
    id: int | None = None
    company_id: str | None = None
    description: str
    embedding: list[float]
    metric_key: MetricKey
    language: str = "en"
    source: str = "seed"
    usage_count: int = 0
    average_similarity: float = 0.0
    last_used_at: str | None = None


class EmbeddingMatch(BaseModel):
    """One ranked vector search hit."""

    id: int
    metric_key: MetricKey
    description: str
    similarity: float
    usage_count: int = 0
    average_similarity: float = 0.0


# ============================================================================
# BUSINESS RECORDS
# ============================================================================


class Contact(BaseModel):
    id: str
    company_id: str
    email: str | None = None
    phone: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    status: str = "ACTIVE"


class Meeting(BaseModel):
    id: str
    company_id: str
    contact_id: str | None = None
    lead_id: str | None = None
    scheduled_at: str | None = None
    notes: str | None = None
    workflow_id: str
    execution_id: str


class Task(BaseModel):
    id: str
    company_id: str
    title: str
    priority: str = "MEDIUM"
    status: str = "PENDING"
    due_at: str | None = None
    contact_id: str | None = None
    meeting_id: str | None = None
    workflow_id: str | None = None
    execution_id: str | None = None


class Lead(BaseModel):
    id: str
    company_id: str
    contact_id: str
    stage: str = "NEW"
    priority: str = "MEDIUM"
    source: str = "automation"
    workflow_id: str | None = None
    execution_id: str


class ReviewNotification(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: int
    company_id: str
    workflow_id: str
    workflow_name: str | None = None
    execution_id: str
    suggested_metric_key: MetricKey
    confidence: float
    detection_layer: DetectionLayer
    title: str
    message: str
    priority: str = "medium"
    status: NotificationStatus = NotificationStatus.PENDING
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str | None = None
    reviewed_at: str | None = None


# ============================================================================
# PIPELINE RESULTS
# ============================================================================


class MaterializationResult(BaseModel):
    created: dict[str, str] = Field(default_factory=dict)
    skipped: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def any_created(self) -> bool:
        return bool(self.created)


class ProcessOutcome(str, Enum):
    PROCESSED = "processed"
    SKIPPED = "skipped"
    FAILED = "failed"


class ProcessResult(BaseModel):
    execution_id: str
    outcome: ProcessOutcome
    reason: str | None = None
    classification: ClassificationResult | None = None
    routing: RoutingDecision | None = None
    materialization: MaterializationResult | None = None
    notification_id: int | None = None


class BatchResult(BaseModel):
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    materialized: int = 0
    notified: int = 0
    errors: list[str] = Field(default_factory=list)
    message: str = ""

    def add(self, result: ProcessResult) -> None:
        if result.outcome == ProcessOutcome.PROCESSED:
            self.processed += 1
        elif result.outcome == ProcessOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
            if result.reason:
                self.errors.append(f"{result.execution_id}: {result.reason}")

        if result.materialization is not None and result.materialization.any_created:
            self.materialized += 1
        if result.notification_id is not None:
            self.notified += 1

    def merge(self, other: BatchResult) -> None:
        self.processed += other.processed
        self.skipped += other.skipped
        self.failed += other.failed
        self.materialized += other.materialized
        self.notified += other.notified
        self.errors.extend(other.errors)
