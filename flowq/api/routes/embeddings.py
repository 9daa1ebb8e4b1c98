"""Seeds the multilingual semantic anchors used by vector matching."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from flowq.observability.logging import get_logger
from flowq.outcomes.learning import OutcomeLearner, SeedResult, get_learner

router = APIRouter(prefix="/api/embeddings", tags=["embeddings"])
logger = get_logger(__name__)


class SeedRequest(BaseModel):
    # None seeds the global anchors shared by every tenant
    company_id: str | None = None


@router.post("/seed", response_model=SeedResult)
def seed_embeddings(
    request: SeedRequest | None = None,
    learner: OutcomeLearner = Depends(get_learner),
) -> SeedResult:
    company_id = request.company_id if request else None
    try:
        return learner.seed_embeddings(company_id)
    except Exception as e:
        logger.error("Seeding embeddings failed: %s", e)
        raise HTTPException(status_code=500, detail="Seeding failed") from None
