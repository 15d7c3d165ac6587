from typing import Optional

import structlog

from ..metrics import PLAN_PROGRESSIONS_TOTAL
from ..models import WorkoutPlanDayExerciseSet
from ..repositories import RelationalStore
from ..schemas import PlanProgressionItem
from .concurrency import collect_all
from .context import PersistedSession, PlanDayExerciseInfo, PlanSetTemplate, ProgressionInput, SessionContext
from .formulas import ASSISTED_BODY_WEIGHT, is_rep_based

logger = structlog.get_logger(__name__)


def progress_template(
    exercise_type: Optional[str],
    template: PlanSetTemplate,
    weight_increase_hint: Optional[float],
) -> Optional[dict]:
    """New target values for one plan set row, or None when the row does not progress."""
    if is_rep_based(exercise_type):
        increment = template.target_rep_increase
        if not increment or increment <= 0:
            return None
        values = {}
        if template.min_reps is not None:
            values["min_reps"] = template.min_reps + increment
        if template.max_reps is not None:
            values["max_reps"] = template.max_reps + increment
        return values or None

    increment = weight_increase_hint if weight_increase_hint is not None else template.target_weight_increase
    if not increment or increment <= 0:
        return None
    old_weight = template.target_weight or 0.0
    if exercise_type == ASSISTED_BODY_WEIGHT:
        return {"target_weight": max(0.0, old_weight - increment)}
    return {"target_weight": old_weight + increment}


class ProgressionEngine:
    def __init__(self, store: RelationalStore):
        self.store = store

    async def apply(self, context: SessionContext, persisted: PersistedSession) -> list[PlanProgressionItem]:
        if context.plan_day_id is None:
            return []

        summary: list[PlanProgressionItem] = []
        for plan_exercise in context.plan_day_exercises:
            item = await self._progress_exercise(context, plan_exercise)
            if item is not None:
                summary.append(item)

        logger.info(
            "plan_progression_applied",
            user_id=context.user_id,
            session_id=persisted.session_id,
            plan_day_id=context.plan_day_id,
            progressed=len(summary),
        )
        return summary

    async def _progress_exercise(
        self, context: SessionContext, plan_exercise: PlanDayExerciseInfo
    ) -> Optional[PlanProgressionItem]:
        log = logger.bind(plan_day_exercise_id=plan_exercise.id, exercise_id=plan_exercise.exercise_id)
        if not plan_exercise.auto_progression_enabled:
            log.debug("plan_progression_disabled")
            return None

        templates = {t.id: t for t in plan_exercise.sets}
        inputs: list[ProgressionInput] = [
            pi for pi in context.progression_inputs if pi.workout_plan_day_exercise_sets_id in templates
        ]
        if not inputs:
            log.debug("plan_progression_no_linked_sets")
            return None
        if not all(pi.is_success for pi in inputs):
            log.info("plan_progression_blocked_by_failed_set")
            return None

        exercise = context.exercises.get(plan_exercise.exercise_id)
        exercise_type = exercise.exercise_type if exercise else inputs[0].exercise_type
        exercise_name = exercise.name if exercise else inputs[0].exercise_name

        changes: list[tuple[PlanSetTemplate, dict]] = []
        seen: set[int] = set()
        for pi in inputs:
            template = templates[pi.workout_plan_day_exercise_sets_id]
            if template.id in seen:
                continue
            seen.add(template.id)
            values = progress_template(exercise_type, template, pi.planned_weight_increase_kg)
            if values is not None:
                changes.append((template, values))

        if not changes:
            log.info("plan_progression_no_increment")
            return None

        _, errors = await collect_all(
            {
                str(template.id): self.store.update(WorkoutPlanDayExerciseSet, template.id, values)
                for template, values in changes
            }
        )
        for template_id, error in errors.items():
            log.error("plan_set_progression_failed", plan_set_id=template_id, error=str(error))
        if len(errors) == len(changes):
            return None

        first, values = changes[0]
        kind = "reps" if is_rep_based(exercise_type) else "weight"
        PLAN_PROGRESSIONS_TOTAL.labels(kind=kind).inc()
        log.info("plan_exercise_progressed", kind=kind, rows=len(changes) - len(errors))
        if kind == "reps":
            return PlanProgressionItem(
                plan_day_exercise_id=plan_exercise.id,
                exercise_name=exercise_name,
                progression_type="reps",
                old_min_reps=first.min_reps,
                new_min_reps=values.get("min_reps", first.min_reps),
                old_max_reps=first.max_reps,
                new_max_reps=values.get("max_reps", first.max_reps),
            )
        return PlanProgressionItem(
            plan_day_exercise_id=plan_exercise.id,
            exercise_name=exercise_name,
            progression_type="weight",
            old_target_weight=first.target_weight,
            new_target_weight=values["target_weight"],
        )
