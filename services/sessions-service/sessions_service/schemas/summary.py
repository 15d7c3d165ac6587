from typing import Literal

from pydantic import BaseModel, Field

MuscleIntensity = Literal["primary", "secondary", "accessory"]
RankLevel = Literal["exercise", "muscle", "muscle_group", "overall"]


class MuscleWorkedSummaryItem(BaseModel):
    id: str
    name: str
    muscle_intensity: MuscleIntensity
    muscle_group_id: str | None = None
    muscle_group_name: str | None = None


class RankInfo(BaseModel):
    rank_id: int | None = None
    rank_name: str | None = None
    min_strength_score: float | None = None


class RankProgressionDetails(BaseModel):
    initial_strength_score: float
    final_strength_score: float
    percent_to_next_rank: float
    initial_rank: RankInfo | None = None
    current_rank: RankInfo | None = None
    next_rank: RankInfo | None = None


class MuscleGroupProgression(BaseModel):
    muscle_group_id: str
    muscle_group_name: str
    progression_details: RankProgressionDetails


class RankChange(BaseModel):
    level: RankLevel
    entity_id: str | None = None
    entity_name: str | None = None
    old_strength_score: float | None = None
    new_strength_score: float
    old_rank_id: int | None = None
    old_rank_name: str | None = None
    new_rank_id: int | None = None
    new_rank_name: str | None = None


class RankUpCounts(BaseModel):
    muscle: int = 0
    muscle_group: int = 0
    overall: int = 0


class FailedSetDetail(BaseModel):
    set_number: int
    reps_achieved: int | None = None
    target_reps: int | None = None
    achieved_weight: float | None = None


class LoggedSetOverviewItem(BaseModel):
    exercise_name: str
    failed_set_info: list[FailedSetDetail] = Field(default_factory=list)


class PlanProgressionItem(BaseModel):
    plan_day_exercise_id: int
    exercise_name: str
    progression_type: Literal["weight", "reps"]
    old_target_weight: float | None = None
    new_target_weight: float | None = None
    old_min_reps: int | None = None
    new_min_reps: int | None = None
    old_max_reps: int | None = None
    new_max_reps: int | None = None


class PersonalRecordItem(BaseModel):
    exercise_key: str
    exercise_name: str
    pr_type: Literal["one_rep_max", "max_reps", "max_swr"]
    value: float
    previous_value: float | None = None
    estimated_1rm: float | None = None
    reps: int | None = None
    swr: float | None = None
    weight_kg: float | None = None
    source_set_id: int | None = None


class SessionCompletionSummary(BaseModel):
    session_id: int

    xp_awarded: int
    total_xp: int
    leveled_up: bool = False
    new_level_number: int | None = None
    remaining_xp_for_next_level: int | None = None

    duration_seconds: int
    total_sets: int
    total_reps: int
    total_volume_kg: float
    sets_delta: int | None = None
    reps_delta: int | None = None
    volume_delta: float | None = None
    duration_delta: int | None = None
    exercises_performed_summary: str = ""

    muscles_worked_summary: list[MuscleWorkedSummaryItem] = Field(default_factory=list)
    overall_user_rank_progression: RankProgressionDetails | None = None
    muscle_group_progressions: list[MuscleGroupProgression] = Field(default_factory=list)
    rank_changes: list[RankChange] = Field(default_factory=list)
    rank_up_counts: RankUpCounts = Field(default_factory=RankUpCounts)

    logged_set_overview: list[LoggedSetOverviewItem] = Field(default_factory=list)
    plan_progression: list[PlanProgressionItem] = Field(default_factory=list)
    personal_records: list[PersonalRecordItem] = Field(default_factory=list)
