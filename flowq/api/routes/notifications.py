"""
Review notification endpoints: list, approve (confirm or correct) and dismiss.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from flowq.config import API_LIST_LIMIT_DEFAULT, API_LIST_LIMIT_MAX
from flowq.observability.logging import get_logger
from flowq.outcomes.learning import (
    ApprovalResult,
    NotificationNotFoundError,
    NotificationStateError,
    OutcomeLearner,
    get_learner,
)
from flowq.outcomes.models import MetricKey, NotificationStatus, ReviewNotification
from flowq.storage.notifications import NotificationRepository

router = APIRouter(prefix="/api/notifications", tags=["notifications"])
logger = get_logger(__name__)


class ApproveRequest(BaseModel):
    company_id: str = Field(..., min_length=1)
    confirmed_metric_key: MetricKey
    custom_description: str | None = Field(default=None, max_length=2000)


class DismissRequest(BaseModel):
    company_id: str = Field(..., min_length=1)


class NotificationListResponse(BaseModel):
    notifications: list[ReviewNotification]
    count: int


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    company_id: str = Query(..., min_length=1),
    status: NotificationStatus | None = Query(NotificationStatus.PENDING),
    limit: int = Query(API_LIST_LIMIT_DEFAULT, ge=1, le=API_LIST_LIMIT_MAX),
) -> NotificationListResponse:
    notifications = NotificationRepository.list_for_company(company_id, status=status, limit=limit)
    return NotificationListResponse(notifications=notifications, count=len(notifications))


@router.post("/{notification_id}/approve", response_model=ApprovalResult)
def approve_notification(
    notification_id: int,
    request: ApproveRequest,
    learner: OutcomeLearner = Depends(get_learner),
) -> ApprovalResult:
    """
    Confirm the suggested outcome, or correct it with another metric key.

    Future executions of the workflow are classified from the confirmed mapping.
    """
    try:
        return learner.approve(
            notification_id,
            request.company_id,
            request.confirmed_metric_key,
            custom_description=request.custom_description,
        )
    except NotificationNotFoundError:
        raise HTTPException(status_code=404, detail="Notification not found") from None
    except NotificationStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    except Exception as e:
        logger.error("Approving notification %s failed: %s", notification_id, e)
        raise HTTPException(status_code=500, detail="Approval failed") from None


@router.post("/{notification_id}/dismiss")
def dismiss_notification(
    notification_id: int,
    request: DismissRequest,
    learner: OutcomeLearner = Depends(get_learner),
) -> dict[str, str | int]:
    try:
        learner.dismiss(notification_id, request.company_id)
    except NotificationNotFoundError:
        raise HTTPException(status_code=404, detail="Notification not found") from None
    except NotificationStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    return {"id": notification_id, "status": NotificationStatus.DISMISSED.value}
