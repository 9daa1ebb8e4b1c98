from __future__ import annotations

import pytest

from flowq.outcomes.layers import AIFallbackLayer, ClassificationContext
from flowq.outcomes.layers.ai import CLASSIFY_FUNCTION, build_prompt
from flowq.outcomes.models import DetectionLayer, MetricKey


@pytest.fixture
def context(make_execution, workflow):
    nodes = {f"Node {i}": [{"index": i}] for i in range(12)}
    nodes["Final"] = [{"email": "ada@example.com", "result": "ok"}]
    return ClassificationContext(
        execution=make_execution("e1", nodes), workflow=workflow, company_id="company-1"
    )


def test_prompt_samples_first_nodes_and_last_output(context):
    prompt = build_prompt(context)
    assert "**Workflow:** Client Intake" in prompt
    assert '"node": "Node 9"' in prompt
    assert '"node": "Node 10"' not in prompt
    assert "**Last Node (Final) Full Output:**" in prompt
    assert "ada@example.com" in prompt
    assert "**Execution Status:** success" in prompt


def test_function_schema_enumerates_metric_keys():
    enum = CLASSIFY_FUNCTION["parameters"]["properties"]["metric_key"]["enum"]
    assert set(enum) == {key.value for key in MetricKey}


def test_structured_answer_becomes_result(context):
    def llm_call(prompt):
        return {
            "metric_key": "lead_created",
            "confidence": 0.66,
            "reasoning": "A contact email was captured",
            "extracted_data": {"contact_email": "ada@example.com"},
        }

    result = AIFallbackLayer(llm_call=llm_call, enabled=True).attempt(context)

    assert result.metric_key == MetricKey.LEAD_CREATED
    assert result.detection_layer == DetectionLayer.AI
    assert result.confidence == pytest.approx(0.66)
    assert result.metadata.reasoning == "A contact email was captured"
    assert result.metadata.contact_email == "ada@example.com"


@pytest.mark.parametrize(
    "answer",
    [
        {"metric_key": "refund_issued", "confidence": 0.9, "reasoning": "?"},
        {"metric_key": "lead_created", "confidence": 3, "reasoning": "?"},
        {"confidence": 0.9},
    ],
)
def test_invalid_answer_is_no_result(context, answer):
    assert AIFallbackLayer(llm_call=lambda _: answer, enabled=True).attempt(context) is None


def test_transport_error_is_no_result(context):
    def llm_call(prompt):
        raise TimeoutError("gemini timed out")

    assert AIFallbackLayer(llm_call=llm_call, enabled=True).attempt(context) is None


def test_disabled_layer_never_calls_the_model(context):
    calls = []
    layer = AIFallbackLayer(llm_call=lambda prompt: calls.append(prompt), enabled=False)
    assert layer.attempt(context) is None
    assert calls == []
