from __future__ import annotations

import pytest

from flowq.observability.confidence import AUTO_MATERIALIZE_MIN, SILENT_LEARN_MIN
from flowq.outcomes.models import OutcomeStatus, RoutingAction
from flowq.outcomes.router import route


def test_auto_materialize_bound_is_inclusive():
    decision = route(AUTO_MATERIALIZE_MIN)
    assert decision.action == RoutingAction.AUTO_MATERIALIZE
    assert decision.status == OutcomeStatus.CONFIRMED
    assert decision.materialize is True
    assert decision.notify is False


def test_silent_learn_bound_is_inclusive():
    decision = route(SILENT_LEARN_MIN)
    assert decision.action == RoutingAction.SILENT_LEARN
    assert decision.status == OutcomeStatus.LEARNING
    assert decision.materialize is True
    assert decision.notify is False


def test_just_below_silent_learn_goes_to_review():
    decision = route(SILENT_LEARN_MIN - 0.0001)
    assert decision.action == RoutingAction.REVIEW
    assert decision.status == OutcomeStatus.PENDING_REVIEW
    assert decision.materialize is False
    assert decision.notify is True


@pytest.mark.parametrize(
    ("confidence", "action"),
    [
        (1.0, RoutingAction.AUTO_MATERIALIZE),
        (0.95, RoutingAction.AUTO_MATERIALIZE),
        (0.8999, RoutingAction.SILENT_LEARN),
        (0.75, RoutingAction.SILENT_LEARN),
        (0.6, RoutingAction.REVIEW),
        (0.0, RoutingAction.REVIEW),
    ],
)
def test_routing_tiers(confidence, action):
    assert route(confidence).action == action


def test_higher_confidence_never_routes_lower():
    order = [RoutingAction.REVIEW, RoutingAction.SILENT_LEARN, RoutingAction.AUTO_MATERIALIZE]
    ranks = [order.index(route(step / 100).action) for step in range(101)]
    assert ranks == sorted(ranks)


def test_custom_thresholds():
    assert route(0.5, auto_materialize_min=0.8, silent_learn_min=0.5).action == (
        RoutingAction.SILENT_LEARN
    )
