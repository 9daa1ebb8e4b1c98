"""Falls back to a below-acceptance vector match when the heuristics found nothing."""

from __future__ import annotations

from flowq.observability.logging import get_logger
from flowq.outcomes.layers.base import ClassificationContext
from flowq.outcomes.models import ClassificationResult

logger = get_logger(__name__)


class HeldCandidateLayer:
    name = "held_candidate"

    def attempt(self, context: ClassificationContext) -> ClassificationResult | None:
        if context.held_candidate is None:
            return None
        logger.info(
            "Using held vector candidate %s (%.2f)",
            context.held_candidate.metric_key.value,
            context.held_candidate.confidence,
        )
        return context.held_candidate
