"""Confirmed workflow overrides take absolute priority over the evidence."""

from __future__ import annotations

from flowq.observability.confidence import USER_CONFIRMED_CONFIDENCE
from flowq.observability.logging import get_logger
from flowq.outcomes.layers.base import ClassificationContext
from flowq.outcomes.models import ClassificationResult, DetectionLayer
from flowq.storage.mappings import MappingRepository

logger = get_logger(__name__)


class UserConfirmedLayer:
    name = "user_confirmed"

    def __init__(self, mappings: type[MappingRepository] | MappingRepository = MappingRepository):
        self.mappings = mappings

    def attempt(self, context: ClassificationContext) -> ClassificationResult | None:
        mapping = self.mappings.get(context.company_id, context.workflow.workflow_id)
        if mapping is None:
            return None

        logger.info(
            "Confirmed mapping for workflow %s: %s",
            context.workflow.workflow_id,
            mapping.override_metric_key.value,
        )
        return ClassificationResult(
            metric_key=mapping.override_metric_key,
            confidence=USER_CONFIRMED_CONFIDENCE,
            detection_layer=DetectionLayer.USER_CONFIRMED,
            metadata=context.base_metadata(),
        )
