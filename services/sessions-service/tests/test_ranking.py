from datetime import datetime

import pytest

from conftest import USER_ID, make_request
from sessions_service.models import MuscleGroupRank, UserProfile
from sessions_service.services.context import Benchmark
from sessions_service.services.ranking import (
    RankingEngine,
    assign_rank,
    benchmarks_for_entity,
    benchmarks_for_gender,
    build_rank_progression,
    resolve_benchmark_gender,
)

LADDER = [
    Benchmark(rank_id=1, min_threshold=0, gender="male"),
    Benchmark(rank_id=2, min_threshold=500, gender="male"),
    Benchmark(rank_id=3, min_threshold=1500, gender="male"),
    Benchmark(rank_id=4, min_threshold=3000, gender="male"),
]
RANK_NAMES = {1: "D", 2: "C", 3: "B", 4: "A"}


@pytest.mark.parametrize(
    "score,expected",
    [(0, 1), (499, 1), (500, 2), (1667, 3), (2999.9, 3), (3000, 4), (10_000, 4)],
)
def test_assign_rank_picks_highest_reached_threshold(score, expected):
    assert assign_rank(score, LADDER).rank_id == expected


def test_assign_rank_is_monotonic():
    thresholds = [assign_rank(score, LADDER).min_threshold for score in range(0, 4000, 50)]
    assert thresholds == sorted(thresholds)


def test_assign_rank_falls_back_to_lowest_rank():
    ladder = [Benchmark(rank_id=2, min_threshold=100, gender="male"), Benchmark(3, 200, "male")]
    assert assign_rank(50, ladder).rank_id == 2


def test_assign_rank_without_benchmarks():
    assert assign_rank(1000, []) is None


@pytest.mark.parametrize(
    "gender,fallback,expected",
    [("male", "male", "male"), ("Female", "male", "female"), ("other", "male", "male"), (None, "female", "female")],
)
def test_benchmark_gender_policy(gender, fallback, expected):
    assert resolve_benchmark_gender(gender, fallback) == expected


def test_benchmarks_for_gender_filters_partition():
    rows = LADDER + [Benchmark(rank_id=1, min_threshold=0, gender="female")]
    assert benchmarks_for_gender(rows, "other", "male") == LADDER
    assert len(benchmarks_for_gender(rows, "female", "male")) == 1


def test_entity_specific_benchmarks_override_defaults():
    specific = Benchmark(rank_id=4, min_threshold=10, gender="male", entity_id="bench")
    rows = LADDER + [specific]
    assert benchmarks_for_entity(rows, "bench") == [specific]
    assert benchmarks_for_entity(rows, "squat") == LADDER


def test_progression_between_ranks():
    details = build_rank_progression(600, 1000, 2, LADDER, RANK_NAMES)
    assert details.initial_rank.rank_name == "C"
    assert details.current_rank.rank_name == "C"
    assert details.next_rank.rank_name == "B"
    assert details.percent_to_next_rank == 0.5


def test_progression_at_top_rank():
    details = build_rank_progression(2900, 3500, 3, LADDER, RANK_NAMES)
    assert details.current_rank.rank_name == "A"
    assert details.next_rank is None
    assert details.percent_to_next_rank == 1.0


async def test_calisthenics_session_promotes_muscle_group(store, settings, seed, profile, group_ladder, prepare_session):
    await seed(MuscleGroupRank(user_id=USER_ID, muscle_group_id="back", strength_score=600, rank_id=2))
    request = make_request([{"exercise_id": "pullup", "sets": [{"order_index": 1, "actual_reps": 20}]}])
    context, persisted = await prepare_session(request)

    result = await RankingEngine(store, settings).update(context, persisted)

    assert len(result.rank_changes) == 1
    change = result.rank_changes[0]
    assert change.level == "muscle_group"
    assert change.entity_id == "back"
    assert (change.old_rank_name, change.new_rank_name) == ("C", "B")
    assert change.new_strength_score == 1667
    assert result.counts.muscle_group == 1
    assert result.counts.muscle == 0
    assert result.counts.overall == 0

    progression = result.muscle_group_progressions[0].progression_details
    assert progression.initial_strength_score == 600
    assert progression.current_rank.rank_name == "B"
    assert progression.percent_to_next_rank == 0.11

    stored = await store.fetch_one(MuscleGroupRank, MuscleGroupRank.user_id == USER_ID)
    assert stored.strength_score == 1667
    assert stored.rank_id == 3


async def test_ranking_skipped_without_bodyweight(store, settings, seed, catalog, prepare_session):
    await seed(UserProfile(id="user-2", gender="female"))
    request = make_request([{"exercise_id": "bench", "sets": [{"order_index": 1, "actual_reps": 5, "actual_weight_kg": 60}]}])
    context, persisted = await prepare_session(request, user_id="user-2")

    result = await RankingEngine(store, settings).update(context, persisted)

    assert result.rank_changes == []
    assert result.overall_progression is None


async def test_rerunning_same_session_keeps_ranks(store, settings, seed, profile, group_ladder, prepare_session):
    request = make_request(
        [{"exercise_id": "pullup", "sets": [{"order_index": 1, "actual_reps": 20}]}],
        ended_at=datetime(2025, 1, 6, 18, 0),
    )
    engine = RankingEngine(store, settings)
    first = await engine.update(*await prepare_session(request))
    second = await engine.update(*await prepare_session(request))

    assert first.counts.muscle_group == 1
    assert second.rank_changes == []


async def test_losing_benchmarks_is_not_a_rank_up(store, settings, seed, profile, prepare_session):
    await seed(MuscleGroupRank(user_id=USER_ID, muscle_group_id="back", strength_score=600, rank_id=2))
    request = make_request([{"exercise_id": "pullup", "sets": [{"order_index": 1, "actual_reps": 20}]}])
    context, persisted = await prepare_session(request)

    result = await RankingEngine(store, settings).update(context, persisted)

    assert result.rank_changes == []
    assert result.counts.muscle_group == 0
    stored = await store.fetch_one(MuscleGroupRank, MuscleGroupRank.user_id == USER_ID)
    assert stored.rank_id is None
