"""Typed records passed between the session completion steps."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Optional

from ..schemas import FinishSessionRequest, MuscleWorkedSummaryItem
from .formulas import is_rep_based

UNKNOWN_EXERCISE = "Unknown Exercise"

INTENSITY_ORDER = {"primary": 0, "secondary": 1, "accessory": 2}


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


@dataclass
class ProfileInfo:
    user_id: str
    gender: Optional[str]
    experience_points: int = 0
    current_level_number: Optional[int] = None


@dataclass
class ExerciseInfo:
    key: str
    name: str
    exercise_type: Optional[str]
    is_custom: bool = False
    elite_swr_male: Optional[float] = None
    elite_swr_female: Optional[float] = None
    elite_reps_male: Optional[float] = None
    elite_reps_female: Optional[float] = None
    alpha_value: Optional[float] = None

    @property
    def rep_based(self) -> bool:
        return is_rep_based(self.exercise_type)

    def elite_ratio(self, gender: str) -> Optional[float]:
        if self.rep_based:
            return self.elite_reps_female if gender == "female" else self.elite_reps_male
        return self.elite_swr_female if gender == "female" else self.elite_swr_male


@dataclass
class MuscleMapping:
    exercise_id: str
    muscle_id: str
    muscle_intensity: str
    exercise_muscle_weight: float = 1.0


@dataclass
class MuscleInfo:
    id: str
    name: str
    muscle_group_id: Optional[str]
    muscle_group_weight: float = 0.0


@dataclass
class MuscleGroupInfo:
    id: str
    name: str
    overall_weight: float = 0.0


@dataclass
class Benchmark:
    rank_id: int
    min_threshold: float
    gender: str
    entity_id: Optional[str] = None


@dataclass
class BenchmarkTables:
    exercise: list[Benchmark] = field(default_factory=list)
    muscle: list[Benchmark] = field(default_factory=list)
    muscle_group: list[Benchmark] = field(default_factory=list)
    overall: list[Benchmark] = field(default_factory=list)


@dataclass
class RankRow:
    entity_id: Optional[str]
    strength_score: float
    rank_id: Optional[int]


@dataclass
class CurrentRanks:
    exercise: dict[str, RankRow] = field(default_factory=dict)
    muscle: dict[str, RankRow] = field(default_factory=dict)
    muscle_group: dict[str, RankRow] = field(default_factory=dict)
    overall: Optional[RankRow] = None


@dataclass
class ExistingRecord:
    exercise_key: str
    pr_type: str
    estimated_1rm: Optional[float] = None
    reps: Optional[int] = None
    swr: Optional[float] = None
    weight_kg: Optional[float] = None
    bodyweight_kg: Optional[float] = None


@dataclass
class LevelInfo:
    level_number: int
    xp_required: int


@dataclass
class PlanSetTemplate:
    id: int
    plan_day_exercise_id: int
    target_weight: Optional[float]
    min_reps: Optional[int]
    max_reps: Optional[int]
    target_weight_increase: Optional[float] = None
    target_rep_increase: Optional[int] = None


@dataclass
class PlanDayExerciseInfo:
    id: int
    exercise_id: str
    auto_progression_enabled: bool
    sets: list[PlanSetTemplate] = field(default_factory=list)


@dataclass
class ActivePlanInfo:
    id: int
    active_workout_plan_id: int
    last_completed_day_id: Optional[int]
    cur_cycle_start_date: Optional[datetime]
    prev_cycle_start_date: Optional[datetime]


@dataclass
class SessionTotals:
    total_sets: int = 0
    total_reps: int = 0
    total_volume_kg: float = 0.0
    duration_seconds: int = 0


@dataclass
class PreparedSet:
    exercise_key: str
    exercise_id: Optional[str]
    custom_exercise_id: Optional[str]
    exercise_name: str
    exercise_type: Optional[str]
    set_order: int
    planned_min_reps: Optional[int]
    planned_max_reps: Optional[int]
    planned_weight_kg: Optional[float]
    actual_reps: Optional[int]
    actual_weight_kg: Optional[float]
    is_warmup: bool
    is_success: bool
    rest_seconds_taken: Optional[int]
    notes: Optional[str]
    performed_at: datetime
    calculated_1rm: Optional[float]
    calculated_swr: Optional[float]
    volume_kg: float
    workout_plan_day_exercise_id: Optional[int] = None
    workout_plan_day_exercise_sets_id: Optional[int] = None
    id: Optional[int] = None

    def to_row(self) -> dict[str, Any]:
        return {
            "exercise_id": self.exercise_id,
            "custom_exercise_id": self.custom_exercise_id,
            "workout_plan_day_exercise_id": self.workout_plan_day_exercise_id,
            "workout_plan_day_exercise_sets_id": self.workout_plan_day_exercise_sets_id,
            "set_order": self.set_order,
            "planned_min_reps": self.planned_min_reps,
            "planned_max_reps": self.planned_max_reps,
            "planned_weight_kg": self.planned_weight_kg,
            "actual_reps": self.actual_reps,
            "actual_weight_kg": self.actual_weight_kg,
            "is_warmup": self.is_warmup,
            "is_success": self.is_success,
            "rest_seconds_taken": self.rest_seconds_taken,
            "notes": self.notes,
            "performed_at": self.performed_at,
            "calculated_1rm": self.calculated_1rm,
            "calculated_swr": self.calculated_swr,
            "volume_kg": self.volume_kg,
        }


@dataclass
class ProgressionInput:
    exercise_id: Optional[str]
    exercise_name: str
    exercise_type: Optional[str]
    workout_plan_day_exercise_id: Optional[int]
    workout_plan_day_exercise_sets_id: Optional[int]
    set_order: int
    planned_weight_kg: Optional[float]
    planned_weight_increase_kg: Optional[float]
    is_success: bool


@dataclass
class PreviousSessionTotals:
    id: int
    total_sets: int
    total_reps: int
    total_volume_kg: float
    duration_seconds: Optional[int]


@dataclass
class SessionContext:
    user_id: str
    request: FinishSessionRequest
    profile: ProfileInfo
    bodyweight: Optional[float]
    started_at: datetime
    ended_at: datetime
    session_payload: dict[str, Any]
    sets: list[PreparedSet]
    progression_inputs: list[ProgressionInput]
    totals: SessionTotals
    best_set: Optional[PreparedSet] = None
    exercises: dict[str, ExerciseInfo] = field(default_factory=dict)
    mappings: list[MuscleMapping] = field(default_factory=list)
    muscles: dict[str, MuscleInfo] = field(default_factory=dict)
    muscle_groups: dict[str, MuscleGroupInfo] = field(default_factory=dict)
    ranks: dict[int, str] = field(default_factory=dict)
    benchmarks: BenchmarkTables = field(default_factory=BenchmarkTables)
    current_ranks: CurrentRanks = field(default_factory=CurrentRanks)
    existing_records: dict[str, dict[str, ExistingRecord]] = field(default_factory=dict)
    level_definitions: list[LevelInfo] = field(default_factory=list)
    plan_day_exercises: list[PlanDayExerciseInfo] = field(default_factory=list)
    active_plans: list[ActivePlanInfo] = field(default_factory=list)
    previous_session: Optional[PreviousSessionTotals] = None
    muscles_worked_summary: list[MuscleWorkedSummaryItem] = field(default_factory=list)

    @property
    def plan_day_id(self) -> Optional[int]:
        return self.request.workout_plan_day_id

    @property
    def plan_id(self) -> Optional[int]:
        return self.request.workout_plan_id


@dataclass
class PersistedSession:
    session_id: int
    sets: list[PreparedSet]
    created: bool = True
