"""
Learning loop: turns a human review into durable classification knowledge.

Approving a review notification:
1. upserts the confirmed workflow -> metric mapping (checked first by the
   classifier on every later execution of the workflow)
2. learns a tenant-scoped semantic anchor from the confirmation (best effort)
3. materializes the business records the confirmed outcome implies, from the
   stored raw run
4. appends a confirmed audit row
5. marks the notification approved

Seeding embeds the multilingual global anchors the vector layer starts with.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from flowq.llm.embeddings import EmbeddingClient, VertexEmbeddingClient
from flowq.observability.logging import get_logger
from flowq.observability.telemetry import counter, log_event
from flowq.outcomes.materializer import OutcomeMaterializer
from flowq.outcomes.models import (
    ClassificationResult,
    DetectionLayer,
    MaterializationResult,
    MetricKey,
    NotificationStatus,
    OutcomeEmbeddingEntry,
    OutcomeMetadata,
    OutcomeStatus,
    ReviewNotification,
    utc_now_iso,
)
from flowq.outcomes.seeds import iter_seeds
from flowq.storage.audit import OutcomeAuditRepository
from flowq.storage.embeddings import EmbeddingRepository
from flowq.storage.mappings import MappingRepository
from flowq.storage.notifications import NotificationRepository
from flowq.storage.runs import WorkflowRunRepository

logger = get_logger(__name__)

# Outcomes with business records to backfill on approval
_RETROACTIVE_KEYS = (MetricKey.MEETING_BOOKED, MetricKey.LEAD_CREATED)


class LearningError(Exception):
    """Base exception for review decisions."""

    pass


class NotificationNotFoundError(LearningError):
    pass


class NotificationStateError(LearningError):
    """Notification was already approved or dismissed."""

    pass


class ApprovalResult(BaseModel):
    notification_id: int
    workflow_id: str
    metric_key: MetricKey
    embedding_id: int | None = None
    materialization: MaterializationResult | None = None


class SeedResult(BaseModel):
    total_seeded: int = 0
    total_skipped: int = 0
    total_failed: int = 0
    outcome_types: list[str] = Field(default_factory=list)


def confirmation_description(
    metric_key: MetricKey, workflow_id: str, custom_description: str | None = None
) -> str:
    """Text embedded for a user-confirmed anchor."""
    description = f'User confirmed: {MetricKey(metric_key).value} for workflow "{workflow_id}"'
    if custom_description and custom_description.strip():
        description += f"\n\nUser Description: {custom_description.strip()}"
    return description


class OutcomeLearner:
    def __init__(
        self,
        embedder: EmbeddingClient | None = None,
        materializer: OutcomeMaterializer | None = None,
        mappings=MappingRepository,
        embeddings=EmbeddingRepository,
        notifications=NotificationRepository,
        audit=OutcomeAuditRepository,
        runs=WorkflowRunRepository,
    ):
        self.embedder = embedder if embedder is not None else VertexEmbeddingClient()
        self.materializer = materializer if materializer is not None else OutcomeMaterializer()
        self.mappings = mappings
        self.embeddings = embeddings
        self.notifications = notifications
        self.audit = audit
        self.runs = runs

    def _pending(self, notification_id: int, company_id: str) -> ReviewNotification:
        notification = self.notifications.get(notification_id, company_id)
        if notification is None:
            raise NotificationNotFoundError(f"Notification not found: {notification_id}")
        if notification.status != NotificationStatus.PENDING.value:
            raise NotificationStateError(
                f"Notification {notification_id} is already {notification.status}"
            )
        return notification

    def approve(
        self,
        notification_id: int,
        company_id: str,
        confirmed_metric_key: MetricKey | str,
        custom_description: str | None = None,
    ) -> ApprovalResult:
        """
        Confirm (or correct) a suggested outcome.

        Raises:
            NotificationNotFoundError: no such notification for this tenant
            NotificationStateError: notification is no longer pending
            ValueError: confirmed_metric_key is not a concrete outcome
        """
        metric_key = MetricKey(confirmed_metric_key)
        if metric_key == MetricKey.UNKNOWN:
            raise ValueError("Cannot confirm a workflow as unknown")

        notification = self._pending(notification_id, company_id)
        workflow_id = notification.workflow_id
        execution_id = notification.execution_id

        self.mappings.upsert(company_id, workflow_id, metric_key)

        embedding_id = self._learn_embedding(company_id, metric_key, workflow_id, custom_description)

        metadata = OutcomeMetadata.model_validate(notification.metadata)
        confirmed = ClassificationResult(
            metric_key=metric_key,
            confidence=1.0,
            detection_layer=DetectionLayer.USER_CONFIRMED,
            metadata=metadata.model_copy(
                update={
                    "workflow_id": workflow_id,
                    "execution_id": execution_id,
                    "workflow_name": metadata.workflow_name or notification.workflow_name,
                }
            ),
        )

        materialization = None
        if metric_key in _RETROACTIVE_KEYS:
            execution = self.runs.get(company_id, execution_id)
            if execution is None:
                logger.warning("No stored run for execution %s, nothing to backfill", execution_id)
            else:
                materialization = self.materializer.materialize(confirmed, execution, company_id)

        self.audit.record(
            company_id,
            workflow_id,
            execution_id,
            confirmed,
            OutcomeStatus.CONFIRMED,
            entity_refs=materialization.created if materialization else None,
        )
        self.notifications.set_status(notification_id, company_id, NotificationStatus.APPROVED)

        counter("learning.approved")
        log_event(
            "learning.approved",
            notification_id=notification_id,
            workflow_id=workflow_id,
            metric_key=metric_key.value,
            corrected=metric_key.value != notification.suggested_metric_key,
        )
        return ApprovalResult(
            notification_id=notification_id,
            workflow_id=workflow_id,
            metric_key=metric_key,
            embedding_id=embedding_id,
            materialization=materialization,
        )

    def dismiss(self, notification_id: int, company_id: str) -> None:
        self._pending(notification_id, company_id)
        if not self.notifications.set_status(
            notification_id, company_id, NotificationStatus.DISMISSED
        ):
            raise NotificationStateError(f"Notification {notification_id} is no longer pending")
        counter("learning.dismissed")

    def _learn_embedding(
        self,
        company_id: str,
        metric_key: MetricKey,
        workflow_id: str,
        custom_description: str | None,
    ) -> int | None:
        """Store a tenant anchor for the confirmation. Failures are logged, never raised."""
        description = confirmation_description(metric_key, workflow_id, custom_description)
        try:
            if self.embeddings.exists(description, company_id):
                return None
            vector = self.embedder.embed(description)
            embedding_id = self.embeddings.add(
                OutcomeEmbeddingEntry(
                    company_id=company_id,
                    description=description,
                    embedding=vector,
                    metric_key=metric_key,
                    language="mixed",
                    source="user_confirmed",
                    usage_count=1,
                    last_used_at=utc_now_iso(),
                )
            )
        except Exception as e:
            counter("learning.embedding_failed")
            logger.warning("Failed to learn embedding for workflow %s: %s", workflow_id, e)
            return None

        counter("learning.embedding_learned")
        return embedding_id

    def seed_embeddings(self, company_id: str | None = None) -> SeedResult:
        """
        Embed and store the seed descriptions, skipping ones already stored.

        company_id None seeds the global anchors every tenant searches.
        """
        result = SeedResult()
        seen_types: list[str] = []

        for metric_key, description, language in iter_seeds():
            if metric_key.value not in seen_types:
                seen_types.append(metric_key.value)

            if self.embeddings.exists(description, company_id):
                result.total_skipped += 1
                continue

            try:
                vector = self.embedder.embed(description)
            except Exception as e:
                counter("learning.seed_failed")
                logger.error("Embedding failed for seed %r: %s", description[:50], e)
                result.total_failed += 1
                continue

            self.embeddings.add(
                OutcomeEmbeddingEntry(
                    company_id=company_id,
                    description=description,
                    embedding=vector,
                    metric_key=metric_key,
                    language=language,
                    source="system",
                )
            )
            result.total_seeded += 1

        result.outcome_types = seen_types
        log_event(
            "learning.seeded",
            seeded=result.total_seeded,
            skipped=result.total_skipped,
            failed=result.total_failed,
        )
        return result


_learner: OutcomeLearner | None = None


def get_learner() -> OutcomeLearner:
    """Get or create singleton OutcomeLearner instance."""
    global _learner
    if _learner is None:
        _learner = OutcomeLearner()
    return _learner
