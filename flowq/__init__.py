"""flowq - classify workflow executions into business outcomes"""

from __future__ import annotations

__version__ = "1.0.0"


# Lazy imports keep `import flowq` free of the storage and LLM stacks
def __getattr__(name: str):
    if name in ("ClassificationResult", "ExecutionRecord", "MetricKey"):
        from flowq.outcomes import models

        return getattr(models, name)

    if name == "OutcomePipeline":
        from flowq.outcomes.service import OutcomePipeline

        return OutcomePipeline

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)


__all__ = [
    "ClassificationResult",
    "ExecutionRecord",
    "MetricKey",
    "OutcomePipeline",
]
