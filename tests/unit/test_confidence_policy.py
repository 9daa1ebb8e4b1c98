from __future__ import annotations

from flowq.observability import confidence


def test_policy_loaded_from_yaml():
    assert confidence.AUTO_MATERIALIZE_MIN == 0.90
    assert confidence.SILENT_LEARN_MIN == 0.70
    assert confidence.VECTOR_SIMILARITY_FLOOR == 0.70
    assert confidence.VECTOR_ACCEPT_MIN == 0.75
    assert confidence.HEURISTIC_ACCEPT_MIN == 0.60
    assert confidence.HEURISTIC_CEILING == 0.75


def test_deterministic_confidences_respect_ceiling():
    for value in confidence.DETERMINISTIC_CONFIDENCE.values():
        assert 0.0 <= value <= confidence.DETERMINISTIC_CEILING


def test_thresholds_validate():
    assert confidence.validate_thresholds() is True


def test_all_thresholds_sections():
    thresholds = confidence.get_all_thresholds()
    assert set(thresholds) >= {"routing", "layers", "notifications"}
