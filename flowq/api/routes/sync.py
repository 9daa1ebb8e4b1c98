"""
Sync endpoint: fetch recent executions from the tenant's workflow engine and
run them through the outcome pipeline.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from flowq.observability.logging import get_logger
from flowq.outcomes.models import BatchResult
from flowq.outcomes.service import (
    IntegrationNotConfiguredError,
    OutcomePipeline,
    WorkflowNotFoundError,
    get_pipeline,
)
from flowq.upstream.client import UpstreamFetchError

router = APIRouter(prefix="/api", tags=["sync"])
logger = get_logger(__name__)


class SyncRequest(BaseModel):
    company_id: str = Field(..., min_length=1)
    workflow_id: str | None = None


@router.post("/sync", response_model=BatchResult)
def sync_executions(
    request: SyncRequest,
    pipeline: OutcomePipeline = Depends(get_pipeline),
) -> BatchResult:
    """
    Sync all active workflows of a tenant, or just one when workflow_id is given.
    """
    try:
        if request.workflow_id:
            return pipeline.sync_executions_for_workflow(request.company_id, request.workflow_id)
        return pipeline.sync_executions(request.company_id)

    except WorkflowNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
    except IntegrationNotConfiguredError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    except UpstreamFetchError as e:
        logger.error("Upstream fetch failed for company %s: %s", request.company_id, e)
        raise HTTPException(status_code=502, detail="Workflow engine unavailable") from None
    except Exception as e:
        logger.error("Sync failed for company %s: %s", request.company_id, e)
        raise HTTPException(status_code=500, detail="Sync failed") from None
