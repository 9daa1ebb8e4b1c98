from __future__ import annotations

import pytest
from pydantic import ValidationError

from flowq.outcomes.models import (
    BatchResult,
    ClassificationResult,
    DetectionLayer,
    ExecutionRecord,
    ExecutionStatus,
    MaterializationResult,
    MetricKey,
    ProcessOutcome,
    ProcessResult,
)


def test_from_api_flattens_all_output_branches():
    payload = {
        "id": 42,
        "workflowId": "wf-9",
        "status": "success",
        "data": {
            "resultData": {
                "runData": {
                    "IF": [
                        {
                            "data": {
                                "main": [
                                    [{"json": {"branch": "true"}}],
                                    [{"json": {"branch": "false"}}, {"no_json": 1}],
                                ]
                            }
                        }
                    ]
                }
            }
        },
    }
    record = ExecutionRecord.from_api(payload)

    assert record.execution_id == "42"
    assert record.workflow_id == "wf-9"
    assert [item["branch"] for item in record.node_outputs["IF"][0].items] == ["true", "false"]


def test_from_api_tolerates_missing_levels():
    record = ExecutionRecord.from_api({"id": "e1", "status": "success"}, workflow_id="wf-1")
    assert record.node_outputs == {}
    assert record.workflow_id == "wf-1"

    record = ExecutionRecord.from_api(
        {"id": "e2", "data": {"resultData": {"runData": {"Node": "garbage"}}}}, workflow_id="wf-1"
    )
    assert record.node_outputs == {"Node": []}


def test_from_api_requires_identity():
    with pytest.raises(ValidationError):
        ExecutionRecord.from_api({"status": "success"}, workflow_id="wf-1")


@pytest.mark.parametrize(
    ("status", "finished", "expected"),
    [
        ("success", None, ExecutionStatus.SUCCESS),
        (None, True, ExecutionStatus.SUCCESS),
        ("error", None, ExecutionStatus.ERROR),
        ("crashed", None, ExecutionStatus.ERROR),
        ("running", False, ExecutionStatus.RUNNING),
        ("waiting", None, ExecutionStatus.RUNNING),
    ],
)
def test_upstream_status_mapping(status, finished, expected):
    assert ExecutionStatus.from_upstream(status, finished) == expected


def test_storage_round_trip_keeps_error_markers(make_execution):
    record = make_execution("e1", {"Send Email": [{"to": "a@x.com"}]})
    restored = ExecutionRecord.from_storage(
        execution_id=record.execution_id,
        workflow_id=record.workflow_id,
        status=record.status.value,
        node_outputs=record.to_storage(),
    )
    run = restored.node_outputs["Send Email"][0]
    assert run.has_error_field is True
    assert run.error is None
    assert run.items == [{"to": "a@x.com"}]


def test_confidence_is_clamped_and_capped():
    result = ClassificationResult(
        metric_key=MetricKey.LEAD_CREATED, confidence=1.7, detection_layer=DetectionLayer.AI
    )
    assert result.confidence == 1.0
    assert result.capped(0.95).confidence == 0.95

    low = ClassificationResult(
        metric_key=MetricKey.UNKNOWN, confidence=-3, detection_layer=DetectionLayer.NONE
    )
    assert low.confidence == 0.0


def test_batch_result_tallies():
    batch = BatchResult()
    batch.add(
        ProcessResult(
            execution_id="e1",
            outcome=ProcessOutcome.PROCESSED,
            materialization=MaterializationResult(created={"meeting": "m1"}),
        )
    )
    batch.add(ProcessResult(execution_id="e2", outcome=ProcessOutcome.SKIPPED, reason="dup"))
    batch.add(ProcessResult(execution_id="e3", outcome=ProcessOutcome.FAILED, reason="boom"))
    batch.add(ProcessResult(execution_id="e4", outcome=ProcessOutcome.PROCESSED, notification_id=7))

    assert (batch.processed, batch.skipped, batch.failed) == (2, 1, 1)
    assert batch.materialized == 1
    assert batch.notified == 1
    assert batch.errors == ["e3: boom"]


def test_metric_labels():
    assert MetricKey.MEETING_BOOKED.label == "Meeting Booked"
    assert MetricKey.UNKNOWN.label == "Unknown Activity"
