from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import or_, select

from ..config import Settings
from ..exceptions import ContextLoadException, ProfileNotFoundException
from ..models import (
    ActiveWorkoutPlan,
    BodyMeasurement,
    CustomExercise,
    Exercise,
    ExerciseMuscle,
    ExerciseRank,
    MuscleGroupRank,
    MuscleRank,
    PersonalRecord,
    UserProfile,
    UserRank,
    WorkoutPlanDayExercise,
    WorkoutPlanDayExerciseSet,
    WorkoutSession,
)
from ..repositories import RelationalStore
from ..schemas import FinishSessionRequest, MuscleWorkedSummaryItem, SessionSetInput
from .concurrency import collect_all, first_error_wins
from .context import (
    INTENSITY_ORDER,
    UNKNOWN_EXERCISE,
    ActivePlanInfo,
    BenchmarkTables,
    CurrentRanks,
    ExerciseInfo,
    ExistingRecord,
    MuscleMapping,
    PlanDayExerciseInfo,
    PlanSetTemplate,
    PreparedSet,
    PreviousSessionTotals,
    ProfileInfo,
    ProgressionInput,
    RankRow,
    SessionContext,
    SessionTotals,
    to_naive_utc,
)
from .formulas import (
    estimate_one_rep_max,
    is_rep_based,
    round_half_up,
    set_succeeded,
    set_volume,
    strength_to_weight_ratio,
)
from .reference_data import ReferenceData

logger = structlog.get_logger(__name__)


class ContextAggregator:
    """Reads everything a completion needs and derives the per-set values.

    The profile read is fatal. Every other read degrades to an empty value
    and a warning so the session can still be stored.
    """

    def __init__(self, store: RelationalStore, reference: ReferenceData, settings: Settings):
        self.store = store
        self.reference = reference
        self.settings = settings

    async def build(self, user_id: str, request: FinishSessionRequest) -> SessionContext:
        started_at = to_naive_utc(request.started_at)
        ended_at = to_naive_utc(request.ended_at)

        profile, reads = await first_error_wins(
            self._load_profile(user_id),
            self._load_optional_reads(user_id, request, ended_at),
        )

        bodyweight = reads["bodyweight"]
        if bodyweight is None:
            logger.warning("session_bodyweight_missing", user_id=user_id, ended_at=ended_at.isoformat())

        exercises = {**reads["exercises"], **reads["custom_exercises"]}
        context = SessionContext(
            user_id=user_id,
            request=request,
            profile=profile,
            bodyweight=bodyweight,
            started_at=started_at,
            ended_at=ended_at,
            session_payload={},
            sets=[],
            progression_inputs=[],
            totals=SessionTotals(),
            exercises=exercises,
            mappings=reads["mappings"],
            muscles=reads["muscles"],
            muscle_groups=reads["muscle_groups"],
            ranks=reads["ranks"],
            benchmarks=reads["benchmarks"],
            current_ranks=CurrentRanks(
                exercise=reads["exercise_ranks"],
                muscle=reads["muscle_ranks"],
                muscle_group=reads["muscle_group_ranks"],
                overall=reads["user_rank"],
            ),
            existing_records=reads["existing_records"],
            level_definitions=reads["level_definitions"],
            plan_day_exercises=reads["plan_day_exercises"],
            active_plans=reads["active_plans"],
            previous_session=reads["previous_session"],
        )
        self._prepare_sets(context)
        context.muscles_worked_summary = self._muscles_worked(context)
        context.session_payload = self._session_payload(context)

        logger.info(
            "session_context_prepared",
            user_id=user_id,
            total_sets=context.totals.total_sets,
            total_reps=context.totals.total_reps,
            total_volume_kg=context.totals.total_volume_kg,
            duration_seconds=context.totals.duration_seconds,
            best_set_exercise=context.best_set.exercise_key if context.best_set else None,
        )
        return context

    # --- reads -------------------------------------------------------------

    async def _load_profile(self, user_id: str) -> ProfileInfo:
        try:
            row = await self.store.fetch_one(UserProfile, UserProfile.id == user_id)
        except Exception as exc:
            logger.error("session_profile_load_failed", user_id=user_id, error=str(exc))
            raise ContextLoadException(user_id) from exc
        if row is None:
            logger.error("session_profile_missing", user_id=user_id)
            raise ProfileNotFoundException(user_id)
        return ProfileInfo(
            user_id=row.id,
            gender=row.gender,
            experience_points=row.experience_points or 0,
            current_level_number=row.current_level_number,
        )

    async def _load_optional_reads(self, user_id: str, request: FinishSessionRequest, ended_at: datetime) -> dict:
        exercise_ids = sorted({ex.exercise_id for ex in request.exercises if ex.exercise_id})
        custom_ids = sorted({ex.custom_exercise_id for ex in request.exercises if ex.custom_exercise_id})

        defaults = {
            "bodyweight": None,
            "exercises": {},
            "custom_exercises": {},
            "mappings": [],
            "muscles": {},
            "muscle_groups": {},
            "ranks": {},
            "benchmarks": BenchmarkTables(),
            "existing_records": {},
            "exercise_ranks": {},
            "muscle_ranks": {},
            "muscle_group_ranks": {},
            "user_rank": None,
            "level_definitions": [],
            "plan_day_exercises": [],
            "active_plans": [],
            "previous_session": None,
        }
        results, errors = await collect_all(
            {
                "bodyweight": self._load_bodyweight(user_id, ended_at),
                "exercises": self._load_exercises(exercise_ids),
                "custom_exercises": self._load_custom_exercises(user_id, custom_ids),
                "mappings": self._load_mappings(user_id, exercise_ids),
                "muscles": self.reference.muscles(),
                "muscle_groups": self.reference.muscle_groups(),
                "ranks": self.reference.ranks(),
                "benchmarks": self.reference.benchmarks(),
                "existing_records": self._load_existing_records(user_id, exercise_ids + custom_ids),
                "exercise_ranks": self._load_rank_rows(ExerciseRank, "exercise_id", user_id),
                "muscle_ranks": self._load_rank_rows(MuscleRank, "muscle_id", user_id),
                "muscle_group_ranks": self._load_rank_rows(MuscleGroupRank, "muscle_group_id", user_id),
                "user_rank": self._load_user_rank(user_id),
                "level_definitions": self.reference.level_definitions(),
                "plan_day_exercises": self._load_plan_day(request.workout_plan_day_id),
                "active_plans": self._load_active_plans(user_id),
                "previous_session": self._load_previous_session(user_id, request),
            }
        )
        for name, error in errors.items():
            logger.warning("session_context_read_failed", user_id=user_id, read=name, error=str(error))
            results[name] = defaults[name]
        return results

    async def _load_bodyweight(self, user_id: str, ended_at: datetime) -> Optional[float]:
        row = await self.store.fetch_one(
            BodyMeasurement,
            BodyMeasurement.user_id == user_id,
            BodyMeasurement.measured_at <= ended_at,
            BodyMeasurement.body_weight.is_not(None),
            order_by=[BodyMeasurement.measured_at.desc()],
        )
        return row.body_weight if row else None

    async def _load_exercises(self, exercise_ids: list[str]) -> dict[str, ExerciseInfo]:
        if not exercise_ids:
            return {}
        rows = await self.store.fetch(Exercise, Exercise.id.in_(exercise_ids))
        return {
            e.id: ExerciseInfo(
                key=e.id,
                name=e.name,
                exercise_type=e.exercise_type,
                elite_swr_male=e.elite_swr_male,
                elite_swr_female=e.elite_swr_female,
                elite_reps_male=e.elite_reps_male,
                elite_reps_female=e.elite_reps_female,
                alpha_value=e.alpha_value,
            )
            for e in rows
        }

    async def _load_custom_exercises(self, user_id: str, custom_ids: list[str]) -> dict[str, ExerciseInfo]:
        if not custom_ids:
            return {}
        rows = await self.store.fetch(
            CustomExercise, CustomExercise.id.in_(custom_ids), CustomExercise.user_id == user_id
        )
        return {
            e.id: ExerciseInfo(key=e.id, name=e.name, exercise_type=e.exercise_type, is_custom=True) for e in rows
        }

    async def _load_mappings(self, user_id: str, exercise_ids: list[str]) -> list[MuscleMapping]:
        ranked_exercises = select(ExerciseRank.exercise_id).where(ExerciseRank.user_id == user_id)
        rows = await self.store.fetch(
            ExerciseMuscle,
            or_(ExerciseMuscle.exercise_id.in_(exercise_ids), ExerciseMuscle.exercise_id.in_(ranked_exercises)),
        )
        return [
            MuscleMapping(
                exercise_id=m.exercise_id,
                muscle_id=m.muscle_id,
                muscle_intensity=m.muscle_intensity,
                exercise_muscle_weight=m.exercise_muscle_weight if m.exercise_muscle_weight is not None else 1.0,
            )
            for m in rows
        ]

    async def _load_existing_records(self, user_id: str, keys: list[str]) -> dict[str, dict[str, ExistingRecord]]:
        if not keys:
            return {}
        rows = await self.store.fetch(
            PersonalRecord, PersonalRecord.user_id == user_id, PersonalRecord.exercise_key.in_(keys)
        )
        records: dict[str, dict[str, ExistingRecord]] = {}
        for r in rows:
            records.setdefault(r.exercise_key, {})[r.pr_type] = ExistingRecord(
                exercise_key=r.exercise_key,
                pr_type=r.pr_type,
                estimated_1rm=r.estimated_1rm,
                reps=r.reps,
                swr=r.swr,
                weight_kg=r.weight_kg,
                bodyweight_kg=r.bodyweight_kg,
            )
        return records

    async def _load_rank_rows(self, model, entity_column: str, user_id: str) -> dict[str, RankRow]:
        rows = await self.store.fetch(model, model.user_id == user_id)
        return {
            getattr(r, entity_column): RankRow(
                entity_id=getattr(r, entity_column),
                strength_score=r.strength_score or 0.0,
                rank_id=r.rank_id,
            )
            for r in rows
        }

    async def _load_user_rank(self, user_id: str) -> Optional[RankRow]:
        row = await self.store.fetch_one(UserRank, UserRank.user_id == user_id)
        if row is None:
            return None
        return RankRow(entity_id=None, strength_score=row.strength_score or 0.0, rank_id=row.rank_id)

    async def _load_plan_day(self, plan_day_id: Optional[int]) -> list[PlanDayExerciseInfo]:
        if plan_day_id is None:
            return []
        plan_exercises = await self.store.fetch(
            WorkoutPlanDayExercise,
            WorkoutPlanDayExercise.workout_plan_day_id == plan_day_id,
            order_by=[WorkoutPlanDayExercise.order_index, WorkoutPlanDayExercise.id],
        )
        if not plan_exercises:
            return []
        templates = await self.store.fetch(
            WorkoutPlanDayExerciseSet,
            WorkoutPlanDayExerciseSet.workout_plan_day_exercise_id.in_([pe.id for pe in plan_exercises]),
            order_by=[WorkoutPlanDayExerciseSet.set_order, WorkoutPlanDayExerciseSet.id],
        )
        by_exercise: dict[int, list[PlanSetTemplate]] = {}
        for t in templates:
            by_exercise.setdefault(t.workout_plan_day_exercise_id, []).append(
                PlanSetTemplate(
                    id=t.id,
                    plan_day_exercise_id=t.workout_plan_day_exercise_id,
                    target_weight=t.target_weight,
                    min_reps=t.min_reps,
                    max_reps=t.max_reps,
                    target_weight_increase=t.target_weight_increase,
                    target_rep_increase=t.target_rep_increase,
                )
            )
        return [
            PlanDayExerciseInfo(
                id=pe.id,
                exercise_id=pe.exercise_id,
                auto_progression_enabled=bool(pe.auto_progression_enabled),
                sets=by_exercise.get(pe.id, []),
            )
            for pe in plan_exercises
        ]

    async def _load_active_plans(self, user_id: str) -> list[ActivePlanInfo]:
        rows = await self.store.fetch(ActiveWorkoutPlan, ActiveWorkoutPlan.user_id == user_id)
        return [
            ActivePlanInfo(
                id=r.id,
                active_workout_plan_id=r.active_workout_plan_id,
                last_completed_day_id=r.last_completed_day_id,
                cur_cycle_start_date=r.cur_cycle_start_date,
                prev_cycle_start_date=r.prev_cycle_start_date,
            )
            for r in rows
        ]

    async def _load_previous_session(
        self, user_id: str, request: FinishSessionRequest
    ) -> Optional[PreviousSessionTotals]:
        if request.workout_plan_day_id is None:
            return None
        filters = [
            WorkoutSession.user_id == user_id,
            WorkoutSession.workout_plan_day_id == request.workout_plan_day_id,
            WorkoutSession.status == "completed",
        ]
        if request.existing_session_id is not None:
            filters.append(WorkoutSession.id != request.existing_session_id)
        row = await self.store.fetch_one(
            WorkoutSession,
            *filters,
            order_by=[WorkoutSession.completed_at.desc(), WorkoutSession.id.desc()],
        )
        if row is None:
            return None
        return PreviousSessionTotals(
            id=row.id,
            total_sets=row.total_sets or 0,
            total_reps=row.total_reps or 0,
            total_volume_kg=row.total_volume_kg or 0.0,
            duration_seconds=row.duration_seconds,
        )

    # --- derivation ----------------------------------------------------------

    def _prepare_sets(self, context: SessionContext) -> None:
        totals = context.totals
        performed_names: list[str] = []

        for exercise in context.request.exercises:
            info = context.exercises.get(exercise.exercise_key)
            name = info.name if info else UNKNOWN_EXERCISE
            exercise_type = info.exercise_type if info else None
            if exercise.sets and info and name not in performed_names:
                performed_names.append(name)

            for set_input in exercise.sets:
                prepared = self._prepare_set(context, exercise, set_input, name, exercise_type)
                context.sets.append(prepared)
                context.progression_inputs.append(
                    ProgressionInput(
                        exercise_id=exercise.exercise_id,
                        exercise_name=name,
                        exercise_type=exercise_type,
                        workout_plan_day_exercise_id=exercise.workout_plan_day_exercise_id,
                        workout_plan_day_exercise_sets_id=set_input.workout_plan_day_exercise_sets_id,
                        set_order=set_input.order_index,
                        planned_weight_kg=set_input.planned_weight_kg,
                        planned_weight_increase_kg=set_input.planned_weight_increase_kg,
                        is_success=prepared.is_success,
                    )
                )
                totals.total_sets += 1
                totals.total_reps += set_input.actual_reps or 0
                totals.total_volume_kg += prepared.volume_kg

        totals.duration_seconds = self._duration_seconds(context)
        context.best_set = self._best_set(context.sets)
        context.session_payload["exercises_performed_summary"] = ", ".join(performed_names)

    def _prepare_set(self, context, exercise, set_input: SessionSetInput, name: str, exercise_type) -> PreparedSet:
        one_rm = estimate_one_rep_max(set_input.actual_weight_kg, set_input.actual_reps)
        has_targets = set_input.planned_max_reps is not None or set_input.planned_weight_kg is not None
        if has_targets:
            is_success = set_succeeded(
                exercise_type,
                set_input.actual_reps,
                set_input.actual_weight_kg,
                set_input.planned_max_reps,
                set_input.planned_weight_kg,
            )
        elif set_input.is_success is not None:
            is_success = set_input.is_success
        else:
            is_success = set_input.is_completed

        return PreparedSet(
            exercise_key=exercise.exercise_key,
            exercise_id=exercise.exercise_id,
            custom_exercise_id=exercise.custom_exercise_id,
            exercise_name=name,
            exercise_type=exercise_type,
            set_order=set_input.order_index,
            planned_min_reps=set_input.planned_min_reps,
            planned_max_reps=set_input.planned_max_reps,
            planned_weight_kg=set_input.planned_weight_kg,
            actual_reps=set_input.actual_reps,
            actual_weight_kg=set_input.actual_weight_kg,
            is_warmup=set_input.is_warmup,
            is_success=is_success,
            rest_seconds_taken=set_input.rest_time_seconds,
            notes=set_input.user_notes or exercise.user_notes,
            performed_at=context.ended_at,
            calculated_1rm=one_rm,
            calculated_swr=strength_to_weight_ratio(one_rm, context.bodyweight),
            volume_kg=set_volume(
                exercise_type, set_input.actual_weight_kg, set_input.actual_reps, context.bodyweight
            ),
            workout_plan_day_exercise_id=exercise.workout_plan_day_exercise_id,
            workout_plan_day_exercise_sets_id=set_input.workout_plan_day_exercise_sets_id,
        )

    @staticmethod
    def _best_set(sets: list[PreparedSet]) -> Optional[PreparedSet]:
        working = [s for s in sets if not s.is_warmup]
        by_swr = [s for s in working if not is_rep_based(s.exercise_type) and s.calculated_swr is not None]
        if by_swr:
            return max(by_swr, key=lambda s: s.calculated_swr)
        by_reps = [s for s in working if is_rep_based(s.exercise_type) and s.actual_reps]
        if by_reps:
            return max(by_reps, key=lambda s: s.actual_reps)
        return None

    @staticmethod
    def _duration_seconds(context: SessionContext) -> int:
        if context.request.duration_seconds is not None:
            return context.request.duration_seconds
        if context.ended_at > context.started_at:
            return round_half_up((context.ended_at - context.started_at).total_seconds())
        return 0

    @staticmethod
    def _muscles_worked(context: SessionContext) -> list[MuscleWorkedSummaryItem]:
        performed = {ex.exercise_id for ex in context.request.exercises if ex.exercise_id and ex.sets}
        mappings = sorted(
            (m for m in context.mappings if m.exercise_id in performed),
            key=lambda m: INTENSITY_ORDER.get(m.muscle_intensity, len(INTENSITY_ORDER)),
        )
        summary: dict[str, MuscleWorkedSummaryItem] = {}
        for mapping in mappings:
            muscle = context.muscles.get(mapping.muscle_id)
            if muscle is None or mapping.muscle_id in summary:
                continue
            group = context.muscle_groups.get(muscle.muscle_group_id) if muscle.muscle_group_id else None
            summary[mapping.muscle_id] = MuscleWorkedSummaryItem(
                id=muscle.id,
                name=muscle.name,
                muscle_intensity=mapping.muscle_intensity,
                muscle_group_id=muscle.muscle_group_id,
                muscle_group_name=group.name if group else None,
            )
        return list(summary.values())

    @staticmethod
    def _session_payload(context: SessionContext) -> dict:
        request = context.request
        return {
            "user_id": context.user_id,
            "workout_plan_id": request.workout_plan_id,
            "workout_plan_day_id": request.workout_plan_day_id,
            "started_at": context.started_at,
            "completed_at": context.ended_at,
            "status": "completed",
            "notes": request.notes,
            "overall_feeling": request.overall_feeling,
            "duration_seconds": context.totals.duration_seconds,
            "total_sets": context.totals.total_sets,
            "total_reps": context.totals.total_reps,
            "total_volume_kg": context.totals.total_volume_kg,
            "exercises_performed_summary": context.session_payload.get("exercises_performed_summary", ""),
        }
