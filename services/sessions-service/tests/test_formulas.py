import pytest

from sessions_service.services.formulas import (
    calculate_rank_points,
    estimate_one_rep_max,
    round_half_up,
    set_succeeded,
    set_volume,
    strength_to_weight_ratio,
)


def test_single_rep_is_its_own_one_rep_max():
    assert estimate_one_rep_max(100, 1) == 100


def test_epley_estimate():
    assert estimate_one_rep_max(100, 10) == pytest.approx(133.333, rel=1e-4)
    assert estimate_one_rep_max(100, 5) == pytest.approx(116.667, rel=1e-4)


@pytest.mark.parametrize("weight,reps", [(None, 5), (100, None), (100, 0), (-5, 5)])
def test_one_rep_max_is_null_for_invalid_input(weight, reps):
    assert estimate_one_rep_max(weight, reps) is None


def test_strength_to_weight_ratio():
    assert strength_to_weight_ratio(150, 75) == 2.0
    assert strength_to_weight_ratio(150, None) is None
    assert strength_to_weight_ratio(150, 0) is None
    assert strength_to_weight_ratio(None, 75) is None


def test_set_volume_by_exercise_type():
    assert set_volume("free_weights", 100, 5, 80) == 500
    assert set_volume("calisthenics", None, 10, 80) == 800
    assert set_volume("assisted_body_weight", 20, 5, 80) == 300
    assert set_volume("assisted_body_weight", 100, 5, 80) == 0
    assert set_volume("weighted_body_weight", 20, 5, 80) == 500
    assert set_volume("free_weights", 100, 0, 80) == 0
    assert set_volume("calisthenics", None, 10, None) == 0


def test_set_success_requires_reps_and_weight():
    assert set_succeeded("free_weights", 5, 100, 5, 100) is True
    assert set_succeeded("free_weights", 4, 100, 5, 100) is False
    assert set_succeeded("free_weights", 5, 97.5, 5, 100) is False
    assert set_succeeded("free_weights", 5, None, None, None) is True


def test_set_success_for_bodyweight_types():
    assert set_succeeded("calisthenics", 10, None, 10, 20) is True
    assert set_succeeded("calisthenics", 9, None, 10, None) is False
    assert set_succeeded("assisted_body_weight", 8, 15, 8, 20) is True
    assert set_succeeded("assisted_body_weight", 8, 25, 8, 20) is False


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(1666.666) == 1667
    assert round_half_up(-0.5) == 0


def test_rank_points():
    assert calculate_rank_points(0.1, 2.0, 2.0) == 5000
    assert calculate_rank_points(0.1, 2.0, 4.0) == 5000
    assert calculate_rank_points(0.1, 2.0, 1.0) == 2560
    assert calculate_rank_points(0.1, 2.0, 0) == 0
    assert calculate_rank_points(0.1, 0, 1.0) == 0


def test_rank_points_increase_with_ratio():
    scores = [calculate_rank_points(0.1, 1.5, ratio / 10) for ratio in range(1, 30)]
    assert scores == sorted(scores)
