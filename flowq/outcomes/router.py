"""Confidence router: maps a classification's confidence to a pipeline action."""

from __future__ import annotations

from flowq.observability.confidence import AUTO_MATERIALIZE_MIN, SILENT_LEARN_MIN
from flowq.outcomes.models import OutcomeStatus, RoutingAction, RoutingDecision


def route(
    confidence: float,
    auto_materialize_min: float = AUTO_MATERIALIZE_MIN,
    silent_learn_min: float = SILENT_LEARN_MIN,
) -> RoutingDecision:
    """
    >= auto_materialize_min  -> materialize, status confirmed
    >= silent_learn_min      -> materialize, status learning
    otherwise                -> notify, status pending_review

    Lower bounds are inclusive.
    """
    if confidence >= auto_materialize_min:
        return RoutingDecision(
            action=RoutingAction.AUTO_MATERIALIZE,
            status=OutcomeStatus.CONFIRMED,
            materialize=True,
            notify=False,
        )
    if confidence >= silent_learn_min:
        return RoutingDecision(
            action=RoutingAction.SILENT_LEARN,
            status=OutcomeStatus.LEARNING,
            materialize=True,
            notify=False,
        )
    return RoutingDecision(
        action=RoutingAction.REVIEW,
        status=OutcomeStatus.PENDING_REVIEW,
        materialize=False,
        notify=True,
    )
