from datetime import UTC, datetime

import pytest

from conftest import USER_ID, make_request
from sessions_service.exceptions import (
    ProfileNotFoundException,
    SessionNotFoundException,
    SessionPersistenceException,
)
from sessions_service.models import (
    ActiveWorkoutPlan,
    PersonalRecord,
    UserMuscleLastWorked,
    UserProfile,
    WorkoutPlan,
    WorkoutPlanDay,
    WorkoutSession,
    WorkoutSessionSet,
)
from sessions_service.repositories import RelationalStore
from sessions_service.services.ancillary import AncillaryUpdater, next_utc_midnight
from sessions_service.services.completion_service import SessionCompletionService
from sessions_service.services.context import PreparedSet

BENCH = {
    "exercise_id": "bench",
    "sets": [
        {"order_index": 1, "actual_reps": 10, "actual_weight_kg": 40, "is_warmup": True},
        {"order_index": 2, "planned_min_reps": 5, "planned_max_reps": 5, "planned_weight_kg": 100, "actual_reps": 5, "actual_weight_kg": 100},
        {"order_index": 3, "planned_min_reps": 5, "planned_max_reps": 5, "planned_weight_kg": 100, "actual_reps": 3, "actual_weight_kg": 100},
    ],
}


def fixed_clock():
    return datetime(2025, 1, 5, 18, 30, tzinfo=UTC)


@pytest.fixture
def service(store, settings):
    return SessionCompletionService(store, settings=settings, ancillary=AncillaryUpdater(store, clock=fixed_clock))


async def test_finish_stores_session_and_summarizes(store, profile, service):
    summary = await service.finish(USER_ID, make_request([BENCH], notes="felt strong"))

    session = await store.fetch_one(WorkoutSession, WorkoutSession.id == summary.session_id)
    assert session.status == "completed"
    assert session.total_sets == 3
    assert session.total_reps == 18
    assert session.total_volume_kg == pytest.approx(400 + 500 + 300)
    assert session.duration_seconds == 3600
    assert session.exercises_performed_summary == "Bench Press"

    sets = await store.fetch(WorkoutSessionSet, WorkoutSessionSet.workout_session_id == summary.session_id)
    assert len(sets) == 3
    assert [s.is_success for s in sorted(sets, key=lambda s: s.set_order)][1:] == [True, False]

    assert summary.total_sets == 3
    assert summary.sets_delta is None
    assert [m.id for m in summary.muscles_worked_summary] == ["pecs", "triceps"]
    assert summary.muscles_worked_summary[0].muscle_group_name == "Chest"
    assert len(summary.logged_set_overview) == 1
    failed = summary.logged_set_overview[0].failed_set_info
    assert [(f.set_number, f.reps_achieved, f.target_reps) for f in failed] == [(3, 3, 5)]
    assert {record.pr_type for record in summary.personal_records} == {"one_rep_max", "max_reps", "max_swr"}


async def test_xp_award_levels_up(store, profile, service):
    summary = await service.finish(USER_ID, make_request([BENCH]))

    assert summary.xp_awarded == 50
    assert summary.total_xp == 50
    assert summary.leveled_up is True
    assert summary.new_level_number == 2
    assert summary.remaining_xp_for_next_level == 100

    profile_row = await store.fetch_one(UserProfile, UserProfile.id == USER_ID)
    assert profile_row.experience_points == 50
    assert profile_row.current_level_number == 2


async def test_duration_override_and_deltas_against_previous_plan_day_session(store, profile, service, seed):
    await seed(
        WorkoutPlan(id=1, user_id=USER_ID, name="Plan"),
        WorkoutPlanDay(id=10, workout_plan_id=1, day_order=1),
    )
    first = make_request([BENCH], workout_plan_id=1, workout_plan_day_id=10, duration_seconds=3000)
    await service.finish(USER_ID, first)

    second = make_request(
        [{"exercise_id": "bench", "sets": [{"order_index": 1, "actual_reps": 5, "actual_weight_kg": 100}]}],
        workout_plan_id=1,
        workout_plan_day_id=10,
    )
    summary = await service.finish(USER_ID, second)

    assert summary.duration_seconds == 3600
    assert summary.sets_delta == -2
    assert summary.reps_delta == 5 - 18
    assert summary.volume_delta == pytest.approx(500 - 1200)
    assert summary.duration_delta == 600


async def test_missing_profile_is_fatal(store, catalog, service):
    with pytest.raises(ProfileNotFoundException):
        await service.finish("nobody", make_request([BENCH]))

    assert await store.fetch(WorkoutSession) == []


async def test_existing_session_of_another_user_is_rejected(store, profile, service, seed):
    await seed(WorkoutSession(id=77, user_id="someone-else", status="started", started_at=datetime(2025, 1, 5)))

    with pytest.raises(SessionNotFoundException):
        await service.finish(USER_ID, make_request([BENCH], existing_session_id=77))

    assert await store.fetch(WorkoutSessionSet) == []


async def test_existing_session_is_completed_in_place(store, profile, service, seed):
    await seed(WorkoutSession(id=78, user_id=USER_ID, status="started", started_at=datetime(2025, 1, 5)))

    summary = await service.finish(USER_ID, make_request([BENCH], existing_session_id=78))

    assert summary.session_id == 78
    sessions = await store.fetch(WorkoutSession)
    assert [(s.id, s.status) for s in sessions] == [(78, "completed")]


async def test_failing_step_degrades_summary(store, profile, service):
    async def broken_ranking(context, persisted):
        raise RuntimeError("benchmark store unavailable")

    service.ranking.update = broken_ranking

    summary = await service.finish(USER_ID, make_request([BENCH]))

    assert summary.rank_changes == []
    assert summary.overall_user_rank_progression is None
    assert summary.xp_awarded == 50
    assert len(summary.personal_records) == 3
    session = await store.fetch_one(WorkoutSession, WorkoutSession.id == summary.session_id)
    assert (session.muscle_rank_ups, session.muscle_group_rank_ups, session.overall_rank_ups) == (0, 0, 0)


async def test_rank_up_counts_written_to_session(store, profile, group_ladder, service):
    pullups = {"exercise_id": "pullup", "sets": [{"order_index": 1, "actual_reps": 20}]}

    summary = await service.finish(USER_ID, make_request([pullups]))

    assert summary.rank_up_counts.muscle_group == 1
    session = await store.fetch_one(WorkoutSession, WorkoutSession.id == summary.session_id)
    assert session.muscle_group_rank_ups == 1


async def test_ancillary_updates_last_worked_and_rolls_cycle(store, profile, service, seed):
    cycle_start = datetime(2025, 1, 1)
    await seed(
        WorkoutPlan(id=1, user_id=USER_ID, name="Plan"),
        WorkoutPlanDay(id=10, workout_plan_id=1, day_order=1),
        ActiveWorkoutPlan(id=5, user_id=USER_ID, active_workout_plan_id=1, cur_cycle_start_date=cycle_start),
    )

    await service.finish(USER_ID, make_request([BENCH], workout_plan_id=1, workout_plan_day_id=10))

    worked = await store.fetch(UserMuscleLastWorked, UserMuscleLastWorked.user_id == USER_ID)
    assert sorted(row.muscle_id for row in worked) == ["pecs", "triceps"]

    active = await store.fetch_one(ActiveWorkoutPlan, ActiveWorkoutPlan.id == 5)
    assert active.last_completed_day_id == 10
    assert active.prev_cycle_start_date == cycle_start
    assert active.cur_cycle_start_date == datetime(2025, 1, 6)


async def test_cycle_stays_open_until_every_day_is_done(store, profile, service, seed):
    await seed(
        WorkoutPlan(id=1, user_id=USER_ID, name="Plan"),
        WorkoutPlanDay(id=10, workout_plan_id=1, day_order=1),
        WorkoutPlanDay(id=11, workout_plan_id=1, day_order=2),
        ActiveWorkoutPlan(id=5, user_id=USER_ID, active_workout_plan_id=1, cur_cycle_start_date=datetime(2025, 1, 1)),
    )

    await service.finish(USER_ID, make_request([BENCH], workout_plan_id=1, workout_plan_day_id=10))

    active = await store.fetch_one(ActiveWorkoutPlan, ActiveWorkoutPlan.id == 5)
    assert active.last_completed_day_id == 10
    assert active.prev_cycle_start_date is None
    assert active.cur_cycle_start_date == datetime(2025, 1, 1)


def test_next_utc_midnight_normalizes_timezones():
    assert next_utc_midnight(datetime(2025, 1, 5, 23, 59)) == datetime(2025, 1, 6)
    assert next_utc_midnight(datetime(2025, 1, 5, 1, 0, tzinfo=UTC)) == datetime(2025, 1, 6)


def unordered_set_rows(monkeypatch):
    """Make every set row violate the NOT NULL set_order column."""
    original = PreparedSet.to_row

    def to_row(self):
        return {**original(self), "set_order": None}

    monkeypatch.setattr(PreparedSet, "to_row", to_row)


async def test_failed_set_insert_leaves_no_session(store, profile, service, monkeypatch):
    unordered_set_rows(monkeypatch)

    with pytest.raises(SessionPersistenceException):
        await service.finish(USER_ID, make_request([BENCH]))

    assert await store.fetch(WorkoutSession) == []
    assert await store.fetch(WorkoutSessionSet) == []


async def test_failed_set_insert_keeps_existing_session_untouched(store, profile, service, seed, monkeypatch):
    await seed(WorkoutSession(id=79, user_id=USER_ID, status="started", started_at=datetime(2025, 1, 5)))
    unordered_set_rows(monkeypatch)

    with pytest.raises(SessionPersistenceException):
        await service.finish(USER_ID, make_request([BENCH], existing_session_id=79))

    session = await store.fetch_one(WorkoutSession, WorkoutSession.id == 79)
    assert session.status == "started"
    assert session.total_sets == 0
    assert await store.fetch(WorkoutSessionSet) == []


class ProfileWriteFailingStore(RelationalStore):
    async def update(self, model, key, values, *owner_filters):
        if model is UserProfile:
            raise ConnectionError("profile table locked")
        return await super().update(model, key, values, *owner_filters)


async def test_xp_write_failure_reports_attempted_award(store, profile, service, session_factory):
    service.xp.store = ProfileWriteFailingStore(session_factory)

    summary = await service.finish(USER_ID, make_request([BENCH]))

    assert summary.xp_awarded == 50
    assert summary.total_xp == 0 + 50
    assert summary.leveled_up is False
    profile_row = await store.fetch_one(UserProfile, UserProfile.id == USER_ID)
    assert profile_row.experience_points == 0


async def test_failed_optional_reads_fall_back_to_defaults(store, profile, service, seed):
    await seed(
        PersonalRecord(
            user_id=USER_ID, exercise_key="bench", exercise_id="bench", pr_type="one_rep_max", estimated_1rm=500.0
        )
    )

    async def unavailable(*args, **kwargs):
        raise ConnectionError("replica unavailable")

    service.aggregator._load_bodyweight = unavailable
    service.aggregator._load_existing_records = unavailable

    summary = await service.finish(USER_ID, make_request([BENCH]))

    sets = await store.fetch(WorkoutSessionSet, WorkoutSessionSet.workout_session_id == summary.session_id)
    assert len(sets) == 3
    assert all(s.calculated_swr is None for s in sets)
    assert all(s.calculated_1rm is not None for s in sets)
    assert "one_rep_max" in {record.pr_type for record in summary.personal_records}
    assert summary.rank_changes == []
