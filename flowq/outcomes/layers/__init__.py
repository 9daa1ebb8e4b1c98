"""Classification layers, tried in order until one returns a result."""

from __future__ import annotations

from flowq.outcomes.layers.ai import AIFallbackLayer
from flowq.outcomes.layers.base import ClassificationContext, DetectionStrategy
from flowq.outcomes.layers.deterministic import DeterministicLayer
from flowq.outcomes.layers.held_candidate import HeldCandidateLayer
from flowq.outcomes.layers.heuristic import HeuristicLayer
from flowq.outcomes.layers.user_confirmed import UserConfirmedLayer
from flowq.outcomes.layers.vector_semantic import VectorSemanticLayer

__all__ = [
    "AIFallbackLayer",
    "ClassificationContext",
    "DetectionStrategy",
    "DeterministicLayer",
    "HeldCandidateLayer",
    "HeuristicLayer",
    "UserConfirmedLayer",
    "VectorSemanticLayer",
]
