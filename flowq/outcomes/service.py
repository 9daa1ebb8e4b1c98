"""
Outcome pipeline: coordinates guard -> claim -> classify -> route -> act.

Per execution:
1. idempotency guard (any durable trace means skip, before any network call)
2. atomic claim so concurrent workers never double process
3. raw run stored for audit and later backfill
4. successful runs are classified and routed:
   - confident: materialize business records, audit row
   - otherwise: review notification, then audit row
5. claim completed (or released on failure so a retry can re-run it)

Batches run on a bounded thread pool with a per-execution timeout; one
failure never blocks the others.
"""

from __future__ import annotations

import concurrent.futures
from collections.abc import Callable, Iterable

from flowq.config import PIPELINE_EXECUTION_TIMEOUT_SECONDS, PIPELINE_MAX_WORKERS
from flowq.infrastructure.idempotency import IdempotencyGuard
from flowq.observability.logging import get_logger
from flowq.observability.telemetry import counter, log_event, time_block
from flowq.outcomes.classifier import OutcomeClassifier
from flowq.outcomes.materializer import OutcomeMaterializer
from flowq.outcomes.models import (
    BatchResult,
    ExecutionRecord,
    ExecutionStatus,
    ProcessOutcome,
    ProcessResult,
    WorkflowDefinition,
)
from flowq.outcomes.notifier import ReviewNotifier
from flowq.outcomes.router import route
from flowq.storage.audit import OutcomeAuditRepository
from flowq.storage.runs import WorkflowRunRepository
from flowq.storage.workflows import IntegrationRepository, TenantIntegration, WorkflowRepository
from flowq.upstream.client import PartialFetchError, UpstreamFetchError, WorkflowEngineClient

logger = get_logger(__name__)

ClientFactory = Callable[[TenantIntegration], WorkflowEngineClient]


class PipelineError(Exception):
    """Base exception for sync requests that cannot start."""

    pass


class IntegrationNotConfiguredError(PipelineError):
    pass


class WorkflowNotFoundError(PipelineError):
    pass


def default_client_factory(integration: TenantIntegration) -> WorkflowEngineClient:
    return WorkflowEngineClient(integration.base_url, integration.api_key)


class OutcomePipeline:
    def __init__(
        self,
        classifier: OutcomeClassifier | None = None,
        materializer: OutcomeMaterializer | None = None,
        notifier: ReviewNotifier | None = None,
        guard: IdempotencyGuard | None = None,
        client_factory: ClientFactory = default_client_factory,
        runs=WorkflowRunRepository,
        audit=OutcomeAuditRepository,
        workflows=WorkflowRepository,
        integrations=IntegrationRepository,
        max_workers: int = PIPELINE_MAX_WORKERS,
        execution_timeout: float = PIPELINE_EXECUTION_TIMEOUT_SECONDS,
    ):
        self.classifier = classifier if classifier is not None else OutcomeClassifier()
        self.materializer = materializer if materializer is not None else OutcomeMaterializer()
        self.notifier = notifier if notifier is not None else ReviewNotifier()
        self.guard = guard if guard is not None else IdempotencyGuard()
        self.client_factory = client_factory
        self.runs = runs
        self.audit = audit
        self.workflows = workflows
        self.integrations = integrations
        self.max_workers = max_workers
        self.execution_timeout = execution_timeout

    # ------------------------------------------------------------------
    # Single execution
    # ------------------------------------------------------------------

    def process_execution(
        self,
        execution: ExecutionRecord,
        workflow: WorkflowDefinition,
        company_id: str,
    ) -> ProcessResult:
        execution_id = execution.execution_id

        reason = self.guard.already_processed(company_id, execution_id)
        if reason is not None:
            return ProcessResult(
                execution_id=execution_id, outcome=ProcessOutcome.SKIPPED, reason=reason
            )
        if not self.guard.claim(company_id, execution_id):
            return ProcessResult(
                execution_id=execution_id, outcome=ProcessOutcome.SKIPPED, reason="claim_lost"
            )

        try:
            with time_block("pipeline.execution"):
                result = self._process_claimed(execution, workflow, company_id)
        except Exception as e:
            counter("pipeline.execution_failed")
            logger.error("Processing execution %s failed: %s", execution_id, e)
            self.guard.release(company_id, execution_id)
            return ProcessResult(
                execution_id=execution_id, outcome=ProcessOutcome.FAILED, reason=str(e)
            )

        if execution.status == ExecutionStatus.RUNNING:
            # may still finish successfully; leave it claimable
            self.guard.release(company_id, execution_id)
        else:
            self.guard.complete(company_id, execution_id)
        return result

    def _process_claimed(
        self,
        execution: ExecutionRecord,
        workflow: WorkflowDefinition,
        company_id: str,
    ) -> ProcessResult:
        execution_id = execution.execution_id
        self.runs.upsert(company_id, execution)

        if execution.status != ExecutionStatus.SUCCESS:
            counter("pipeline.not_successful")
            return ProcessResult(
                execution_id=execution_id,
                outcome=ProcessOutcome.SKIPPED,
                reason=f"execution_{execution.status.value}",
            )

        classification = self.classifier.classify(execution, workflow, company_id)
        decision = route(classification.confidence)

        materialization = None
        notification_id = None
        if decision.materialize:
            materialization = self.materializer.materialize(classification, execution, company_id)
            self.audit.record(
                company_id,
                workflow.workflow_id,
                execution_id,
                classification,
                decision.status,
                entity_refs=materialization.created,
            )
        else:
            # the audit row is a guard trace; it must not exist without its review
            notification_id = self.notifier.notify(
                classification, company_id, workflow.workflow_id, execution_id
            )
            self.audit.record(
                company_id, workflow.workflow_id, execution_id, classification, decision.status
            )

        counter(f"pipeline.routed.{decision.action.value}")
        log_event(
            "pipeline.processed",
            execution_id=execution_id,
            metric_key=classification.metric_key.value,
            action=decision.action.value,
            confidence=round(classification.confidence, 3),
        )
        return ProcessResult(
            execution_id=execution_id,
            outcome=ProcessOutcome.PROCESSED,
            classification=classification,
            routing=decision,
            materialization=materialization,
            notification_id=notification_id,
        )

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def process_batch(
        self,
        executions: Iterable[ExecutionRecord],
        workflow: WorkflowDefinition,
        company_id: str,
    ) -> BatchResult:
        """
        Process executions concurrently; results are tallied in input order.

        An execution exceeding the timeout is reported as failed. Its worker
        thread is not interrupted; it finishes or releases its own claim.
        """
        batch = BatchResult()
        execution_list = list(executions)
        if not execution_list:
            return batch

        executor = concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers)
        try:
            futures = [
                (execution, executor.submit(self.process_execution, execution, workflow, company_id))
                for execution in execution_list
            ]
            for execution, future in futures:
                try:
                    result = future.result(timeout=self.execution_timeout)
                except concurrent.futures.TimeoutError:
                    counter("pipeline.execution_timeout")
                    logger.error(
                        "Execution %s exceeded %.0fs", execution.execution_id, self.execution_timeout
                    )
                    result = ProcessResult(
                        execution_id=execution.execution_id,
                        outcome=ProcessOutcome.FAILED,
                        reason="timeout",
                    )
                except Exception as e:
                    result = ProcessResult(
                        execution_id=execution.execution_id,
                        outcome=ProcessOutcome.FAILED,
                        reason=str(e),
                    )
                batch.add(result)
        finally:
            executor.shutdown(wait=False)

        return batch

    # ------------------------------------------------------------------
    # Sync entry points
    # ------------------------------------------------------------------

    def _client_for(self, company_id: str) -> WorkflowEngineClient:
        integration = self.integrations.get_active(company_id)
        if integration is None:
            raise IntegrationNotConfiguredError(
                f"No active workflow engine integration for company {company_id}"
            )
        return self.client_factory(integration)

    def _fetch(
        self, client: WorkflowEngineClient, workflow_id: str
    ) -> tuple[list[ExecutionRecord], str | None]:
        """Executions to process, plus the error of a fetch that stopped part way."""
        try:
            return client.fetch_executions(workflow_id), None
        except PartialFetchError as e:
            counter("pipeline.partial_fetch")
            logger.warning("Fetch for workflow %s stopped early: %s", workflow_id, e)
            return e.records, f"{workflow_id}: {e}"

    def sync_executions(self, company_id: str) -> BatchResult:
        """
        Fetch and process recent successful executions of every active workflow.

        A workflow whose fetch fails is logged and skipped. When only a later
        page fails, the executions already fetched are still processed and the
        error is reported alongside them.

        Raises:
            IntegrationNotConfiguredError: tenant has no active integration
            UpstreamFetchError: every workflow fetch failed
        """
        client = self._client_for(company_id)
        workflows = self.workflows.list_active(company_id)

        total = BatchResult()
        fetched = 0
        for workflow in workflows:
            try:
                executions, partial_error = self._fetch(client, workflow.workflow_id)
            except UpstreamFetchError as e:
                logger.error("Fetching executions for workflow %s failed: %s", workflow.workflow_id, e)
                total.errors.append(f"{workflow.workflow_id}: {e}")
                continue
            fetched += 1
            if partial_error:
                total.errors.append(partial_error)
            total.merge(self.process_batch(executions, workflow, company_id))

        if workflows and fetched == 0:
            raise UpstreamFetchError(
                f"Could not fetch executions for any of {len(workflows)} workflows"
            )

        total.message = (
            f"Processed {total.processed} executions from {len(workflows)} active workflows"
        )
        log_event(
            "pipeline.sync_completed",
            company_id=company_id,
            workflows=len(workflows),
            processed=total.processed,
            skipped=total.skipped,
            failed=total.failed,
        )
        return total

    def sync_executions_for_workflow(self, company_id: str, workflow_id: str) -> BatchResult:
        """
        Targeted sync of one workflow.

        Raises:
            WorkflowNotFoundError: workflow unknown for this tenant
            IntegrationNotConfiguredError: tenant has no active integration
            UpstreamFetchError: the first page could not be fetched
        """
        workflow = self.workflows.get(company_id, workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(f"Workflow not found: {workflow_id}")

        client = self._client_for(company_id)
        executions, partial_error = self._fetch(client, workflow_id)
        result = self.process_batch(executions, workflow, company_id)
        if partial_error:
            result.errors.insert(0, partial_error)
        result.message = (
            f"Processed {result.processed} executions for workflow {workflow.name or workflow_id}"
        )
        return result


_pipeline: OutcomePipeline | None = None


def get_pipeline() -> OutcomePipeline:
    """Get or create singleton OutcomePipeline instance."""
    global _pipeline
    if _pipeline is None:
        _pipeline = OutcomePipeline()
    return _pipeline
