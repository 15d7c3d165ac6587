"""Strength formulas shared by every pipeline step.

Scores round with ``round_half_up``, not Python's banker's rounding.
"""

import math
from typing import Optional

CALISTHENICS = "calisthenics"
BODY_WEIGHT = "body_weight"
ASSISTED_BODY_WEIGHT = "assisted_body_weight"
WEIGHTED_BODY_WEIGHT = "weighted_body_weight"
CARDIO = "cardio"

# Exercises scored on reps rather than load.
REP_BASED_TYPES = frozenset({CALISTHENICS, BODY_WEIGHT})


def is_rep_based(exercise_type: Optional[str]) -> bool:
    return exercise_type in REP_BASED_TYPES


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def estimate_one_rep_max(weight: Optional[float], reps: Optional[int]) -> Optional[float]:
    """Epley estimate. A single rep is its own 1RM."""
    if weight is None or reps is None or weight < 0 or reps <= 0:
        return None
    if reps == 1:
        return float(weight)
    return weight * (1 + reps / 30.0)


def strength_to_weight_ratio(one_rep_max: Optional[float], bodyweight: Optional[float]) -> Optional[float]:
    if one_rep_max is None or bodyweight is None or bodyweight <= 0:
        return None
    return one_rep_max / bodyweight


def effective_load(
    exercise_type: Optional[str], weight: Optional[float], bodyweight: Optional[float]
) -> Optional[float]:
    """Load actually moved, accounting for bodyweight in bodyweight-class exercises."""
    if exercise_type == WEIGHTED_BODY_WEIGHT:
        if bodyweight is None:
            return None
        return bodyweight + (weight or 0.0)
    if exercise_type == ASSISTED_BODY_WEIGHT:
        if bodyweight is None:
            return None
        return max(0.0, bodyweight - (weight or 0.0))
    if exercise_type in REP_BASED_TYPES:
        return bodyweight
    return weight


def set_volume(
    exercise_type: Optional[str],
    weight: Optional[float],
    reps: Optional[int],
    bodyweight: Optional[float],
) -> float:
    if not reps or reps <= 0:
        return 0.0
    if exercise_type in REP_BASED_TYPES or exercise_type in (ASSISTED_BODY_WEIGHT, WEIGHTED_BODY_WEIGHT):
        load = effective_load(exercise_type, weight, bodyweight)
    else:
        load = weight
    if load is None:
        return 0.0
    return load * reps


def set_succeeded(
    exercise_type: Optional[str],
    actual_reps: Optional[int],
    actual_weight: Optional[float],
    planned_max_reps: Optional[int],
    planned_weight: Optional[float],
) -> bool:
    """Whether a set met its plan target.

    Missing planned values do not constrain the set. Rep-based exercises are
    judged on reps alone; assisted exercises succeed with equal or *less*
    assistance than planned.
    """
    reps_ok = planned_max_reps is None or (actual_reps is not None and actual_reps >= planned_max_reps)
    if exercise_type in REP_BASED_TYPES:
        return reps_ok

    if planned_weight is None:
        weight_ok = True
    elif actual_weight is None:
        weight_ok = False
    elif exercise_type == ASSISTED_BODY_WEIGHT:
        weight_ok = actual_weight <= planned_weight
    else:
        weight_ok = actual_weight >= planned_weight
    return reps_ok and weight_ok


def calculate_rank_points(
    alpha: float,
    elite_ratio: float,
    user_ratio: float,
    max_score: int = 5000,
) -> int:
    """Log-scaled points for a performance relative to an elite benchmark.

    Callers must treat a non-positive ``elite_ratio`` as a missing benchmark;
    it yields 0 here.
    """
    if user_ratio <= 0 or elite_ratio <= 0:
        return 0
    numerator = math.log(1 + alpha * (user_ratio / elite_ratio))
    denominator = math.log(1 + alpha)
    score = round_half_up(max_score * (numerator / denominator))
    return min(score, max_score)
