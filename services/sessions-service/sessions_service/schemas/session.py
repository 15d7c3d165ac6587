from datetime import datetime

from pydantic import BaseModel, Field, model_validator


class SessionSetInput(BaseModel):
    order_index: int
    planned_min_reps: int | None = None
    planned_max_reps: int | None = None
    planned_weight_kg: float | None = None
    actual_reps: int | None = None
    actual_weight_kg: float | None = None
    is_completed: bool = True
    is_success: bool | None = None
    is_warmup: bool = False
    rest_time_seconds: int | None = None
    user_notes: str | None = None
    # progression hint; overrides the plan template's configured increment
    planned_weight_increase_kg: float | None = None
    workout_plan_day_exercise_sets_id: int | None = None


class SessionExerciseInput(BaseModel):
    exercise_id: str | None = None
    custom_exercise_id: str | None = None
    workout_plan_day_exercise_id: int | None = None
    order_index: int = 0
    user_notes: str | None = None
    sets: list[SessionSetInput] = Field(default_factory=list)

    @model_validator(mode="after")
    def _one_exercise_reference(self):
        if bool(self.exercise_id) == bool(self.custom_exercise_id):
            raise ValueError("exactly one of exercise_id or custom_exercise_id is required")
        return self

    @property
    def exercise_key(self) -> str:
        return self.exercise_id or self.custom_exercise_id


class FinishSessionRequest(BaseModel):
    existing_session_id: int | None = None
    workout_plan_id: int | None = None
    workout_plan_day_id: int | None = None
    started_at: datetime
    ended_at: datetime
    duration_seconds: int | None = None
    notes: str | None = None
    overall_feeling: str | None = None
    exercises: list[SessionExerciseInput] = Field(default_factory=list)
