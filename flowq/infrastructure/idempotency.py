"""
Provides idempotency detection for execution processing.

An execution counts as processed once it has left a durable trace: a
meeting, a task, a review notification or an audit row referencing its
execution id. The guard runs before classification so duplicates never
reach the embedding or LLM services.

Key: already_processed() answers "skip?", claim() makes the check atomic
across concurrent workers.
"""

from __future__ import annotations

from collections.abc import Callable

from flowq.config import GUARD_FAIL_OPEN
from flowq.observability.logging import get_logger
from flowq.observability.telemetry import counter, log_event
from flowq.storage.audit import OutcomeAuditRepository
from flowq.storage.business import MeetingRepository, TaskRepository
from flowq.storage.notifications import NotificationRepository
from flowq.storage.runs import ExecutionClaimRepository

logger = get_logger(__name__)

# Checked in this order; the first hit names the skip reason
_TRACE_CHECKS: list[tuple[str, Callable[[str, str], bool]]] = [
    ("meeting_exists", MeetingRepository.exists_for_execution),
    ("task_exists", TaskRepository.exists_for_execution),
    ("notification_exists", NotificationRepository.exists_for_execution),
    ("outcome_recorded", OutcomeAuditRepository.exists_for_execution),
]


class IdempotencyGuard:
    def __init__(
        self,
        fail_open: bool = GUARD_FAIL_OPEN,
        checks: list[tuple[str, Callable[[str, str], bool]]] | None = None,
        claims: type[ExecutionClaimRepository] = ExecutionClaimRepository,
    ):
        self.fail_open = fail_open
        self.checks = checks if checks is not None else _TRACE_CHECKS
        self.claims = claims

    def already_processed(self, company_id: str, execution_id: str) -> str | None:
        """
        Reason string if the execution already produced a side effect, else None.

        A failed lookup is logged, then treated as "not processed" when
        fail_open, or as processed ("guard_unavailable") otherwise.
        """
        for reason, check in self.checks:
            try:
                if check(company_id, execution_id):
                    counter("idempotency_drops")
                    log_event("idempotency.duplicate", execution_id=execution_id, reason=reason)
                    return reason
            except Exception as e:
                counter("idempotency.lookup_failed")
                logger.error(
                    "Idempotency lookup %s failed for execution %s: %s", reason, execution_id, e
                )
                if self.fail_open:
                    continue
                return "guard_unavailable"
        return None

    def claim(self, company_id: str, execution_id: str) -> bool:
        """True if this caller now owns the execution."""
        try:
            won = self.claims.claim(company_id, execution_id)
        except Exception as e:
            counter("idempotency.claim_failed")
            logger.error("Claim failed for execution %s: %s", execution_id, e)
            return self.fail_open

        if not won:
            counter("idempotency.claim_lost")
            log_event("idempotency.claim_lost", execution_id=execution_id)
        return won

    def complete(self, company_id: str, execution_id: str) -> None:
        self.claims.complete(company_id, execution_id)

    def release(self, company_id: str, execution_id: str) -> None:
        try:
            self.claims.release(company_id, execution_id)
        except Exception as e:
            logger.error("Could not release claim for execution %s: %s", execution_id, e)
