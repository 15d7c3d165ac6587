import pytest

from conftest import USER_ID, make_request
from sessions_service.models import PersonalRecord
from sessions_service.services.personal_records import PersonalRecordEngine


def bench_set(reps=5, weight=100.0, **extra):
    return {"order_index": extra.pop("order_index", 1), "actual_reps": reps, "actual_weight_kg": weight, **extra}


async def stored_records(store):
    rows = await store.fetch(PersonalRecord, PersonalRecord.user_id == USER_ID)
    return {(row.exercise_key, row.pr_type): row for row in rows}


async def test_new_swr_record_beats_previous(store, seed, profile, prepare_session):
    await seed(
        PersonalRecord(user_id=USER_ID, exercise_key="bench", exercise_id="bench", pr_type="max_swr", swr=1.40),
        PersonalRecord(
            user_id=USER_ID, exercise_key="bench", exercise_id="bench", pr_type="one_rep_max", estimated_1rm=120.0
        ),
        PersonalRecord(user_id=USER_ID, exercise_key="bench", exercise_id="bench", pr_type="max_reps", reps=5),
    )
    context, persisted = await prepare_session(make_request([{"exercise_id": "bench", "sets": [bench_set()]}]))

    records = await PersonalRecordEngine(store).update(context, persisted)

    assert [record.pr_type for record in records] == ["max_swr"]
    assert records[0].value == pytest.approx(1.4583, rel=1e-3)
    assert records[0].previous_value == 1.40
    assert records[0].exercise_name == "Bench Press"
    assert records[0].estimated_1rm == pytest.approx(116.667, rel=1e-4)

    stored = await stored_records(store)
    assert stored[("bench", "max_swr")].swr == pytest.approx(1.4583, rel=1e-3)
    assert stored[("bench", "max_swr")].source_set_id == persisted.sets[0].id
    assert stored[("bench", "one_rep_max")].estimated_1rm == 120.0


async def test_first_session_sets_every_record_type(store, profile, prepare_session):
    sets = [bench_set(reps=8, weight=60, order_index=1), bench_set(reps=3, weight=90, order_index=2)]
    context, persisted = await prepare_session(make_request([{"exercise_id": "bench", "sets": sets}]))

    records = {record.pr_type: record for record in await PersonalRecordEngine(store).update(context, persisted)}

    assert set(records) == {"one_rep_max", "max_reps", "max_swr"}
    assert records["max_reps"].value == 8
    assert records["one_rep_max"].value == pytest.approx(99.0)
    assert records["one_rep_max"].previous_value is None


async def test_replaying_session_sets_no_new_records(store, profile, prepare_session):
    request = make_request([{"exercise_id": "bench", "sets": [bench_set()]}])
    engine = PersonalRecordEngine(store)

    first = await engine.update(*await prepare_session(request))
    second = await engine.update(*await prepare_session(request))

    assert len(first) == 3
    assert second == []
    assert len(await stored_records(store)) == 3


async def test_warmup_sets_are_ignored(store, profile, prepare_session):
    request = make_request([{"exercise_id": "bench", "sets": [bench_set(reps=10, weight=40, is_warmup=True)]}])

    assert await PersonalRecordEngine(store).update(*await prepare_session(request)) == []


async def test_calisthenics_only_tracks_reps(store, profile, prepare_session):
    request = make_request([{"exercise_id": "pullup", "sets": [{"order_index": 1, "actual_reps": 12}]}])

    records = await PersonalRecordEngine(store).update(*await prepare_session(request))

    assert [(record.pr_type, record.value) for record in records] == [("max_reps", 12)]
