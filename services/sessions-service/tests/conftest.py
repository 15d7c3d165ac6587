import os
import sys
from datetime import datetime
from pathlib import Path

import pytest

SERVICE_ROOT = Path(__file__).resolve().parents[1]
BACKEND_COMMON_ROOT = SERVICE_ROOT.parents[1] / "libs" / "backend-common"
for path in (SERVICE_ROOT, BACKEND_COMMON_ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("SESSIONS_REDIS_ENABLED", "false")

from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from sessions_service.config import Settings  # noqa: E402
from sessions_service.database import Base  # noqa: E402
from sessions_service.models import (  # noqa: E402
    BodyMeasurement,
    Exercise,
    ExerciseMuscle,
    LevelDefinition,
    Muscle,
    MuscleGroup,
    MuscleGroupRankBenchmark,
    Rank,
    UserProfile,
)
from sessions_service.repositories import RelationalStore  # noqa: E402
from sessions_service.schemas import FinishSessionRequest  # noqa: E402
from sessions_service.services.aggregator import ContextAggregator  # noqa: E402
from sessions_service.services.persistence import SessionPersistence  # noqa: E402
from sessions_service.services.reference_data import ReferenceData  # noqa: E402

USER_ID = "user-1"
STARTED_AT = datetime(2025, 1, 5, 17, 0, 0)
ENDED_AT = datetime(2025, 1, 5, 18, 0, 0)


@pytest.fixture
async def session_factory(tmp_path):
    """File-backed SQLite so every store call can open its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sessions.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.fixture
def store(session_factory) -> RelationalStore:
    return RelationalStore(session_factory)


@pytest.fixture
def settings() -> Settings:
    return Settings(SESSIONS_REDIS_ENABLED=False)


@pytest.fixture
def seed(session_factory):
    async def _seed(*objects):
        async with session_factory() as session:
            session.add_all(objects)
            await session.commit()

    return _seed


@pytest.fixture
async def catalog(seed):
    """A small reference world: a barbell lift, a calisthenics move and an assisted move."""
    await seed(
        Rank(id=1, rank_name="D"),
        Rank(id=2, rank_name="C"),
        Rank(id=3, rank_name="B"),
        Rank(id=4, rank_name="A"),
        MuscleGroup(id="chest", name="Chest", overall_weight=0.5),
        MuscleGroup(id="back", name="Back", overall_weight=1.0),
        MuscleGroup(id="arms", name="Arms", overall_weight=0.0),
        Muscle(id="pecs", name="Pectorals", muscle_group_id="chest", muscle_group_weight=1.0),
        Muscle(id="lats", name="Latissimus", muscle_group_id="back", muscle_group_weight=1.0),
        Muscle(id="triceps", name="Triceps", muscle_group_id="arms", muscle_group_weight=1.0),
        Exercise(
            id="bench",
            name="Bench Press",
            exercise_type="free_weights",
            elite_swr_male=2.0,
            elite_swr_female=1.3,
        ),
        Exercise(
            id="pullup",
            name="Pull Up",
            exercise_type="calisthenics",
            elite_reps_male=20,
            elite_reps_female=12,
        ),
        Exercise(id="assisted_dip", name="Assisted Dip", exercise_type="assisted_body_weight", elite_swr_male=1.0),
        ExerciseMuscle(exercise_id="bench", muscle_id="pecs", muscle_intensity="primary", exercise_muscle_weight=1.0),
        ExerciseMuscle(
            exercise_id="bench", muscle_id="triceps", muscle_intensity="secondary", exercise_muscle_weight=0.5
        ),
        ExerciseMuscle(exercise_id="pullup", muscle_id="lats", muscle_intensity="primary", exercise_muscle_weight=1.0),
        LevelDefinition(level_number=1, xp_required=0),
        LevelDefinition(level_number=2, xp_required=50),
        LevelDefinition(level_number=3, xp_required=150),
    )


@pytest.fixture
async def profile(seed, catalog):
    await seed(
        UserProfile(id=USER_ID, username="lifter", gender="male", experience_points=0, current_level_number=1),
        BodyMeasurement(user_id=USER_ID, body_weight=80.0, measured_at=datetime(2025, 1, 1)),
    )


@pytest.fixture
async def group_ladder(seed, catalog):
    await seed(
        *[
            MuscleGroupRankBenchmark(gender="male", min_threshold=threshold, rank_id=rank_id)
            for rank_id, threshold in ((1, 0), (2, 500), (3, 1500), (4, 3000))
        ]
    )


def make_request(exercises, **overrides) -> FinishSessionRequest:
    payload = {"started_at": STARTED_AT, "ended_at": ENDED_AT, "exercises": exercises}
    payload.update(overrides)
    return FinishSessionRequest.model_validate(payload)


@pytest.fixture
def prepare_session(store, settings):
    """Aggregate and persist a request, returning what the downstream engines consume."""

    async def _prepare(request: FinishSessionRequest, user_id: str = USER_ID):
        reference = ReferenceData(store, settings)
        context = await ContextAggregator(store, reference, settings).build(user_id, request)
        persisted = await SessionPersistence(store).persist(context)
        return context, persisted

    return _prepare


@pytest.fixture
async def client(store):
    from sessions_service.dependencies import get_store
    from sessions_service.main import app

    app.dependency_overrides[get_store] = lambda: store
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
