"""
AI fallback layer: Gemini classifies the execution through a forced
function call, so the answer is structured and never free text.

Any transport, timeout, or parse failure means "no result"; the layer never
raises to the orchestrator on its own.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from flowq.config import PIPELINE_AI_SAMPLE_CHARS, PIPELINE_AI_SAMPLE_NODES, USE_LLM
from flowq.observability.confidence import AI_UNKNOWN_BELOW
from flowq.observability.logging import get_logger
from flowq.observability.telemetry import counter, time_block
from flowq.outcomes.layers.base import ClassificationContext
from flowq.outcomes.models import ClassificationResult, DetectionLayer, MetricKey

logger = get_logger(__name__)

FUNCTION_NAME = "classify_workflow_outcome"

CLASSIFY_FUNCTION: dict[str, Any] = {
    "name": FUNCTION_NAME,
    "description": "Classify the business outcome of one workflow execution",
    "parameters": {
        "type": "object",
        "properties": {
            "metric_key": {"type": "string", "enum": [key.value for key in MetricKey]},
            "confidence": {"type": "number", "description": "0.0 to 1.0"},
            "reasoning": {"type": "string", "description": "One sentence"},
            "extracted_data": {
                "type": "object",
                "properties": {
                    "scheduled_time": {"type": "string"},
                    "contact_email": {"type": "string"},
                    "contact_name": {"type": "string"},
                    "contact_phone": {"type": "string"},
                    "first_name": {"type": "string"},
                    "last_name": {"type": "string"},
                    "ticket_id": {"type": "string"},
                    "status": {"type": "string"},
                },
            },
        },
        "required": ["metric_key", "confidence", "reasoning"],
    },
}

SYSTEM_INSTRUCTION = f"""You analyze executions of business automation workflows and decide which business outcome each one produced.

## PRINCIPLES
1. Evidence-based: classify only from concrete data in the node outputs
2. Relevance: last nodes > API calls > database writes
3. Uncertainty: return "unknown" if your confidence would be below {AI_UNKNOWN_BELOW}
4. Extract contact details, timestamps and ids when present

## OUTCOMES
meeting_booked: requires a timestamp field (scheduled_at, start_time, event_date, 預約時間, 會議時間) and contact info. Signals: calendar or booking nodes.
lead_created: requires an email address and a name or phone. Signals: CRM nodes, database inserts, form submissions.
ticket_created: requires a ticket id and a status field. Signals: ticketing nodes (Zendesk, Jira).
ticket_resolved: requires a ticket id and a status of "closed" or "resolved".
email_sent: requires an email-service node, a recipient and a sent status.
deal_won: requires a deal status of "won" or "closed" and a deal value.
unknown: evidence is missing or ambiguous.

## FIELD NAMES (English + Traditional Chinese)
Email: email, contact_email, user_email, 電郵, 電子郵件
Phone: phone, mobile, telephone, 電話, 手機
Name: name, full_name, contact_name, 姓名, 名字
Time: scheduled_at, start_time, event_date, 預約時間, 會議時間
Status: status, state, 狀態

Always answer by calling {FUNCTION_NAME}."""


class ExtractedData(BaseModel):
    scheduled_time: str | None = None
    contact_email: str | None = None
    contact_name: str | None = None
    contact_phone: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    ticket_id: str | None = None
    status: str | None = None


class AIClassification(BaseModel):
    metric_key: MetricKey
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = ""
    extracted_data: ExtractedData = Field(default_factory=ExtractedData)


def build_prompt(context: ClassificationContext) -> str:
    evidence = context.evidence
    node_names = evidence.node_names

    samples = []
    for node_name in node_names[:PIPELINE_AI_SAMPLE_NODES]:
        item = evidence.first_item(node_name)
        if item is None:
            continue
        samples.append(
            {
                "node": node_name,
                "sample": json.dumps(item, ensure_ascii=False, default=str)[:PIPELINE_AI_SAMPLE_CHARS],
            }
        )

    last_node = node_names[-1] if node_names else ""
    last_output = evidence.first_item(last_node) if last_node else None

    return "\n".join(
        [
            "Analyze this workflow execution:",
            "",
            f"**Workflow:** {context.workflow.name}",
            f"**All Nodes:** {', '.join(node_names)}",
            f"**Node Outputs (first {PIPELINE_AI_SAMPLE_NODES}):**",
            json.dumps(samples, ensure_ascii=False, indent=2),
            "",
            f"**Last Node ({last_node}) Full Output:**",
            json.dumps(last_output, ensure_ascii=False, indent=2, default=str),
            "",
            f"**Execution Status:** {context.execution.status.value}",
        ]
    )


def _default_llm_call(prompt: str) -> dict[str, Any]:
    from flowq.llm.retry import call_llm_function

    return call_llm_function(
        prompt,
        CLASSIFY_FUNCTION,
        system_instruction=SYSTEM_INSTRUCTION,
        counter_prefix="classification.ai",
    )


class AIFallbackLayer:
    name = "ai"

    def __init__(
        self,
        llm_call: Callable[[str], dict[str, Any]] | None = None,
        enabled: bool = USE_LLM,
    ):
        self.llm_call = llm_call or _default_llm_call
        self.enabled = enabled

    def attempt(self, context: ClassificationContext) -> ClassificationResult | None:
        if not self.enabled or context.evidence.is_empty:
            return None

        prompt = build_prompt(context)
        try:
            with time_block("classification.ai.latency"):
                args = self.llm_call(prompt)
            parsed = AIClassification.model_validate(args)
        except ValidationError as e:
            counter("classification.ai.parse_failed")
            logger.warning("AI classification response rejected: %s", e)
            return None
        except Exception as e:
            counter("classification.ai.failed")
            logger.warning("AI classification failed for %s: %s", context.execution.execution_id, e)
            return None

        extracted = parsed.extracted_data
        return ClassificationResult(
            metric_key=parsed.metric_key,
            confidence=parsed.confidence,
            detection_layer=DetectionLayer.AI,
            metadata=context.base_metadata(
                reasoning=parsed.reasoning,
                scheduled_time=extracted.scheduled_time,
                contact_email=extracted.contact_email,
                contact_name=extracted.contact_name,
                contact_phone=extracted.contact_phone,
                first_name=extracted.first_name,
                last_name=extracted.last_name,
                ticket_id=extracted.ticket_id,
                status=extracted.status,
            ),
        )
