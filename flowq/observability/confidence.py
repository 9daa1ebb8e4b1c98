"""
Centralized Confidence Thresholds Configuration

All confidence-related thresholds for workflow outcome classification and
routing.

IMPORTANT: All thresholds are loaded from config/flowq_policy.yaml.
The constants below carry the defaults used when a key is absent.

Tiers:
- auto-materialize (confirmed): highest confidence, no human involved
- silent learn (learning): still materialized, tagged lower-confidence for audit
- review (pending_review): nothing written downstream, a human is asked
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from flowq.observability.logging import get_logger

logger = get_logger(__name__)


def _load_policy_config() -> dict[str, Any]:
    """
    Load configuration from flowq_policy.yaml.

    Side Effects:
        - Reads config/flowq_policy.yaml file from filesystem
    """
    possible_paths = [
        Path(__file__).parent.parent.parent / "config" / "flowq_policy.yaml",
        Path(__file__).parent.parent / "config" / "flowq_policy.yaml",
        Path("config/flowq_policy.yaml"),
    ]

    for config_path in possible_paths:
        if config_path.exists():
            with open(config_path) as f:
                config = yaml.safe_load(f) or {}
                logger.debug("Loaded confidence config from %s", config_path)
                return config

    logger.warning("flowq_policy.yaml not found, using hardcoded defaults")
    return {}


_POLICY_CONFIG = _load_policy_config()
_ROUTING_CONFIG = _POLICY_CONFIG.get("routing", {})
_LAYER_CONFIG = _POLICY_CONFIG.get("layers", {})
_DETERMINISTIC_CONFIG = _LAYER_CONFIG.get("deterministic", {})
_VECTOR_CONFIG = _LAYER_CONFIG.get("vector_semantic", {})
_HEURISTIC_CONFIG = _LAYER_CONFIG.get("heuristic", {})
_AI_CONFIG = _LAYER_CONFIG.get("ai", {})
_NOTIFICATION_CONFIG = _POLICY_CONFIG.get("notifications", {})

# ============================================================================
# ROUTING TIERS (inclusive lower bounds)
# ============================================================================

AUTO_MATERIALIZE_MIN = _ROUTING_CONFIG.get("auto_materialize_min", 0.90)
SILENT_LEARN_MIN = _ROUTING_CONFIG.get("silent_learn_min", 0.70)

# ============================================================================
# LAYER CONFIDENCES AND CEILINGS
# ============================================================================

USER_CONFIRMED_CONFIDENCE = _LAYER_CONFIG.get("user_confirmed", 1.0)

DETERMINISTIC_CEILING = _DETERMINISTIC_CONFIG.get("ceiling", 0.95)
DETERMINISTIC_CONFIDENCE = {
    "meeting_booked": _DETERMINISTIC_CONFIG.get("meeting_booked", 0.95),
    "lead_created": _DETERMINISTIC_CONFIG.get("lead_created", 0.90),
    "ticket": _DETERMINISTIC_CONFIG.get("ticket", 0.90),
    "email_sent": _DETERMINISTIC_CONFIG.get("email_sent", 0.85),
}

# Vector search: candidates below the floor are never returned
VECTOR_SIMILARITY_FLOOR = _VECTOR_CONFIG.get("similarity_floor", 0.70)
# Matches at or above this are accepted outright; [floor, accept) are held
VECTOR_ACCEPT_MIN = _VECTOR_CONFIG.get("accept_min", 0.75)

HEURISTIC_CEILING = _HEURISTIC_CONFIG.get("ceiling", 0.75)
HEURISTIC_ACCEPT_MIN = _HEURISTIC_CONFIG.get("accept_min", 0.60)
HEURISTIC_SCORE_DIVISOR = float(_HEURISTIC_CONFIG.get("score_divisor", 7.0))

# The LLM is told to answer "unknown" below this confidence
AI_UNKNOWN_BELOW = _AI_CONFIG.get("unknown_below", 0.60)

# ============================================================================
# NOTIFICATIONS
# ============================================================================

NOTIFICATION_HIGH_PRIORITY_BELOW = _NOTIFICATION_CONFIG.get("high_priority_below", 0.30)


def get_all_thresholds() -> dict[str, Any]:
    """
    Get all thresholds as a dictionary (for API exposure)
    """
    return {
        "routing": {
            "auto_materialize_min": AUTO_MATERIALIZE_MIN,
            "silent_learn_min": SILENT_LEARN_MIN,
        },
        "layers": {
            "user_confirmed": USER_CONFIRMED_CONFIDENCE,
            "deterministic": {"ceiling": DETERMINISTIC_CEILING, **DETERMINISTIC_CONFIDENCE},
            "vector_semantic": {
                "similarity_floor": VECTOR_SIMILARITY_FLOOR,
                "accept_min": VECTOR_ACCEPT_MIN,
            },
            "heuristic": {
                "ceiling": HEURISTIC_CEILING,
                "accept_min": HEURISTIC_ACCEPT_MIN,
                "score_divisor": HEURISTIC_SCORE_DIVISOR,
            },
            "ai": {"unknown_below": AI_UNKNOWN_BELOW},
        },
        "notifications": {"high_priority_below": NOTIFICATION_HIGH_PRIORITY_BELOW},
    }


def validate_thresholds() -> bool:
    """
    Validate that all thresholds are consistent and within valid ranges

    Raises:
        ValueError: If thresholds are inconsistent
    """
    errors = []

    all_values = [
        AUTO_MATERIALIZE_MIN,
        SILENT_LEARN_MIN,
        USER_CONFIRMED_CONFIDENCE,
        DETERMINISTIC_CEILING,
        *DETERMINISTIC_CONFIDENCE.values(),
        VECTOR_SIMILARITY_FLOOR,
        VECTOR_ACCEPT_MIN,
        HEURISTIC_CEILING,
        HEURISTIC_ACCEPT_MIN,
        AI_UNKNOWN_BELOW,
        NOTIFICATION_HIGH_PRIORITY_BELOW,
    ]

    for val in all_values:
        if not (0.0 <= val <= 1.0):
            errors.append(f"Threshold {val} is outside valid range [0.0, 1.0]")

    if SILENT_LEARN_MIN >= AUTO_MATERIALIZE_MIN:
        errors.append(
            f"SILENT_LEARN_MIN ({SILENT_LEARN_MIN}) "
            f"must be < AUTO_MATERIALIZE_MIN ({AUTO_MATERIALIZE_MIN})"
        )

    if VECTOR_SIMILARITY_FLOOR > VECTOR_ACCEPT_MIN:
        errors.append(
            f"VECTOR_SIMILARITY_FLOOR ({VECTOR_SIMILARITY_FLOOR}) "
            f"must be <= VECTOR_ACCEPT_MIN ({VECTOR_ACCEPT_MIN})"
        )

    for key, value in DETERMINISTIC_CONFIDENCE.items():
        if value > DETERMINISTIC_CEILING:
            errors.append(f"Deterministic {key} ({value}) exceeds ceiling {DETERMINISTIC_CEILING}")

    if HEURISTIC_ACCEPT_MIN > HEURISTIC_CEILING:
        errors.append(
            f"HEURISTIC_ACCEPT_MIN ({HEURISTIC_ACCEPT_MIN}) "
            f"must be <= HEURISTIC_CEILING ({HEURISTIC_CEILING})"
        )

    if HEURISTIC_SCORE_DIVISOR <= 0:
        errors.append(f"HEURISTIC_SCORE_DIVISOR ({HEURISTIC_SCORE_DIVISOR}) must be positive")

    if errors:
        raise ValueError("Threshold validation failed:\n" + "\n".join(errors))

    return True


# Validate on import
try:
    validate_thresholds()
    logger.info("Confidence thresholds validated successfully")
except ValueError as e:
    logger.warning("Confidence threshold validation warning: %s", e)
