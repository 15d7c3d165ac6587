from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Optional

import structlog

from ..models import ActiveWorkoutPlan, UserMuscleLastWorked, WorkoutPlanDay, WorkoutSession
from ..repositories import RelationalStore
from .concurrency import collect_all
from .context import ActivePlanInfo, PersistedSession, SessionContext, to_naive_utc

logger = structlog.get_logger(__name__)

LAST_WORKED_INTENSITIES = ("primary", "secondary")


def next_utc_midnight(now: datetime) -> datetime:
    now = to_naive_utc(now)
    return datetime(now.year, now.month, now.day) + timedelta(days=1)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class AncillaryUpdater:
    """Best-effort bookkeeping after a session lands: muscle recency, plan position and plan cycles."""

    def __init__(self, store: RelationalStore, clock: Callable[[], datetime] = _utc_now):
        self.store = store
        self.clock = clock

    async def run(self, context: SessionContext, persisted: PersistedSession) -> dict[str, bool]:
        steps = {"last_worked": self.update_last_worked(context, persisted)}
        active_plan = self._active_plan(context)
        if active_plan is not None and context.plan_day_id is not None:
            steps["active_plan"] = self.update_active_plan(context, active_plan)
            steps["plan_cycle"] = self.check_plan_cycle(context, active_plan)

        results, errors = await collect_all(steps)
        for step, error in errors.items():
            logger.error("ancillary_step_failed", step=step, user_id=context.user_id, error=str(error))
        return {step: bool(results.get(step, False)) for step in steps}

    async def update_last_worked(self, context: SessionContext, persisted: PersistedSession) -> bool:
        worked = {s.exercise_id for s in persisted.sets if s.exercise_id and s.actual_reps and s.actual_reps > 0}
        muscle_ids = sorted(
            {m.muscle_id for m in context.mappings if m.exercise_id in worked and m.muscle_intensity in LAST_WORKED_INTENSITIES}
        )
        if not muscle_ids:
            return False

        now = to_naive_utc(self.clock())
        rows = [
            {
                "user_id": context.user_id,
                "muscle_id": muscle_id,
                "last_worked_date": context.ended_at,
                "workout_session_id": persisted.session_id,
                "updated_at": now,
            }
            for muscle_id in muscle_ids
        ]
        await self.store.upsert(UserMuscleLastWorked, rows, ("user_id", "muscle_id"))
        logger.info("muscles_last_worked_updated", user_id=context.user_id, muscles=len(rows))
        return True

    async def update_active_plan(self, context: SessionContext, active_plan: ActivePlanInfo) -> bool:
        updated = await self.store.update(
            ActiveWorkoutPlan,
            active_plan.id,
            {"last_completed_day_id": context.plan_day_id, "updated_at": to_naive_utc(self.clock())},
            ActiveWorkoutPlan.user_id == context.user_id,
        )
        return updated is not None

    async def check_plan_cycle(self, context: SessionContext, active_plan: ActivePlanInfo) -> bool:
        """Roll the cycle forward once every day of the plan has a completed session in it."""
        days = await self.store.fetch(WorkoutPlanDay, WorkoutPlanDay.workout_plan_id == active_plan.active_workout_plan_id)
        day_ids = {day.id for day in days}
        if not day_ids:
            return False

        filters = [
            WorkoutSession.user_id == context.user_id,
            WorkoutSession.status == "completed",
            WorkoutSession.workout_plan_day_id.in_(sorted(day_ids)),
        ]
        if active_plan.cur_cycle_start_date is not None:
            filters.append(WorkoutSession.completed_at >= active_plan.cur_cycle_start_date)
        sessions = await self.store.fetch(WorkoutSession, *filters)
        completed_days = {s.workout_plan_day_id for s in sessions}

        missing = day_ids - completed_days
        if missing:
            logger.debug("plan_cycle_incomplete", plan_id=active_plan.active_workout_plan_id, missing_days=len(missing))
            return False

        now = self.clock()
        await self.store.update(
            ActiveWorkoutPlan,
            active_plan.id,
            {
                "prev_cycle_start_date": active_plan.cur_cycle_start_date,
                "cur_cycle_start_date": next_utc_midnight(now),
                "updated_at": to_naive_utc(now),
            },
            ActiveWorkoutPlan.user_id == context.user_id,
        )
        logger.info("plan_cycle_completed", user_id=context.user_id, plan_id=active_plan.active_workout_plan_id)
        return True

    @staticmethod
    def _active_plan(context: SessionContext) -> Optional[ActivePlanInfo]:
        if context.plan_id is None:
            return None
        return next((p for p in context.active_plans if p.active_workout_plan_id == context.plan_id), None)
