"""
Shared types for classification layers.

A layer is any object with a ``name`` and an ``attempt(context)`` method that
returns a ClassificationResult or None ("no opinion, try the next layer").
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from flowq.outcomes.evidence import ExecutionEvidence
from flowq.outcomes.models import (
    ClassificationResult,
    ExecutionRecord,
    OutcomeMetadata,
    WorkflowDefinition,
)


@dataclass
class ClassificationContext:
    """Everything a layer may look at for one execution."""

    execution: ExecutionRecord
    workflow: WorkflowDefinition
    company_id: str
    evidence: ExecutionEvidence = field(init=False)
    # Vector match in [floor, accept) kept for the held-candidate layer
    held_candidate: ClassificationResult | None = None

    def __post_init__(self) -> None:
        self.evidence = ExecutionEvidence(self.execution)

    def base_metadata(self, **fields) -> OutcomeMetadata:
        return OutcomeMetadata(
            workflow_id=self.workflow.workflow_id,
            workflow_name=self.workflow.name,
            execution_id=self.execution.execution_id,
            node_names=self.evidence.node_names,
            **fields,
        )


@runtime_checkable
class DetectionStrategy(Protocol):
    name: str

    def attempt(self, context: ClassificationContext) -> ClassificationResult | None: ...
