from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declared_attr

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


# --- Users -----------------------------------------------------------------


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id = Column(String(255), primary_key=True)
    username = Column(String(255), nullable=True)
    # male | female | other | NULL
    gender = Column(String(16), nullable=True)
    experience_points = Column(Integer, nullable=False, default=0)
    current_level_number = Column(Integer, nullable=True)
    updated_at = Column(DateTime, nullable=True, default=_utcnow, onupdate=_utcnow)


class BodyMeasurement(Base):
    __tablename__ = "body_measurements"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    body_weight = Column(Float, nullable=True)
    measured_at = Column(DateTime, nullable=False, default=_utcnow)


# --- Exercise catalog ------------------------------------------------------


class Exercise(Base):
    __tablename__ = "exercises"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    # free_weights | machine | calisthenics | body_weight | assisted_body_weight | weighted_body_weight | cardio
    exercise_type = Column(String(64), nullable=True)
    elite_swr_male = Column(Float, nullable=True)
    elite_swr_female = Column(Float, nullable=True)
    elite_reps_male = Column(Float, nullable=True)
    elite_reps_female = Column(Float, nullable=True)
    alpha_value = Column(Float, nullable=True)


class CustomExercise(Base):
    __tablename__ = "custom_exercises"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    exercise_type = Column(String(64), nullable=True)


class MuscleGroup(Base):
    __tablename__ = "muscle_groups"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    overall_weight = Column(Float, nullable=False, default=0.0)


class Muscle(Base):
    __tablename__ = "muscles"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    muscle_group_id = Column(String(64), ForeignKey("muscle_groups.id"), nullable=True, index=True)
    muscle_group_weight = Column(Float, nullable=False, default=0.0)


class ExerciseMuscle(Base):
    __tablename__ = "exercise_muscles"
    __table_args__ = (UniqueConstraint("exercise_id", "muscle_id", name="uq_exercise_muscles_exercise_muscle"),)

    id = Column(Integer, primary_key=True, index=True)
    exercise_id = Column(String(64), ForeignKey("exercises.id", ondelete="CASCADE"), nullable=False, index=True)
    muscle_id = Column(String(64), ForeignKey("muscles.id", ondelete="CASCADE"), nullable=False)
    # primary | secondary | accessory
    muscle_intensity = Column(String(16), nullable=False)
    exercise_muscle_weight = Column(Float, nullable=False, default=1.0)


# --- Ranks -----------------------------------------------------------------


class Rank(Base):
    __tablename__ = "ranks"

    id = Column(Integer, primary_key=True)
    rank_name = Column(String(64), nullable=False)


class RankBenchmarkMixin:
    id = Column(Integer, primary_key=True, index=True)
    gender = Column(String(16), nullable=False)
    min_threshold = Column(Float, nullable=False)

    @declared_attr
    def rank_id(cls):
        return Column(Integer, ForeignKey("ranks.id"), nullable=False)


class ExerciseRankBenchmark(RankBenchmarkMixin, Base):
    __tablename__ = "exercise_rank_benchmarks"

    # NULL rows are the default table for every exercise
    exercise_id = Column(String(64), nullable=True, index=True)


class MuscleRankBenchmark(RankBenchmarkMixin, Base):
    __tablename__ = "muscle_rank_benchmarks"

    muscle_id = Column(String(64), nullable=True, index=True)


class MuscleGroupRankBenchmark(RankBenchmarkMixin, Base):
    __tablename__ = "muscle_group_rank_benchmarks"

    muscle_group_id = Column(String(64), nullable=True, index=True)


class OverallRankBenchmark(RankBenchmarkMixin, Base):
    __tablename__ = "overall_rank_benchmarks"


class RankRecordMixin:
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    strength_score = Column(Float, nullable=False, default=0.0)
    last_calculated_at = Column(DateTime, nullable=True)

    @declared_attr
    def rank_id(cls):
        return Column(Integer, ForeignKey("ranks.id"), nullable=True)


class ExerciseRank(RankRecordMixin, Base):
    __tablename__ = "exercise_ranks"
    __table_args__ = (UniqueConstraint("user_id", "exercise_id", name="uq_exercise_ranks_user_exercise"),)

    exercise_id = Column(String(64), nullable=False)
    session_set_id = Column(Integer, nullable=True)


class MuscleRank(RankRecordMixin, Base):
    __tablename__ = "muscle_ranks"
    __table_args__ = (UniqueConstraint("user_id", "muscle_id", name="uq_muscle_ranks_user_muscle"),)

    muscle_id = Column(String(64), nullable=False)


class MuscleGroupRank(RankRecordMixin, Base):
    __tablename__ = "muscle_group_ranks"
    __table_args__ = (UniqueConstraint("user_id", "muscle_group_id", name="uq_muscle_group_ranks_user_group"),)

    muscle_group_id = Column(String(64), nullable=False)


class UserRank(RankRecordMixin, Base):
    __tablename__ = "user_ranks"
    __table_args__ = (UniqueConstraint("user_id", name="uq_user_ranks_user"),)


# --- Personal records ------------------------------------------------------


class PersonalRecord(Base):
    __tablename__ = "personal_records"
    __table_args__ = (
        UniqueConstraint("user_id", "exercise_key", "pr_type", name="uq_personal_records_user_exercise_type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    # standard exercise id or custom exercise id
    exercise_key = Column(String(64), nullable=False)
    exercise_id = Column(String(64), nullable=True)
    custom_exercise_id = Column(String(64), nullable=True)
    # one_rep_max | max_reps | max_swr
    pr_type = Column(String(32), nullable=False)
    estimated_1rm = Column(Float, nullable=True)
    reps = Column(Integer, nullable=True)
    swr = Column(Float, nullable=True)
    weight_kg = Column(Float, nullable=True)
    bodyweight_kg = Column(Float, nullable=True)
    source_set_id = Column(Integer, nullable=True)
    achieved_at = Column(DateTime, nullable=True)


# --- Sessions --------------------------------------------------------------


class WorkoutSession(Base):
    __tablename__ = "workout_sessions"
    __table_args__ = (Index("ix_workout_sessions_user_plan_day", "user_id", "workout_plan_day_id"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    workout_plan_id = Column(Integer, nullable=True)
    workout_plan_day_id = Column(Integer, nullable=True)
    started_at = Column(DateTime, nullable=False, default=_utcnow)
    completed_at = Column(DateTime, nullable=True)
    # started | completed
    status = Column(String(32), nullable=False, default="started")
    notes = Column(Text, nullable=True)
    overall_feeling = Column(String(32), nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    total_sets = Column(Integer, nullable=False, default=0)
    total_reps = Column(Integer, nullable=False, default=0)
    total_volume_kg = Column(Float, nullable=False, default=0.0)
    muscle_rank_ups = Column(Integer, nullable=False, default=0)
    muscle_group_rank_ups = Column(Integer, nullable=False, default=0)
    overall_rank_ups = Column(Integer, nullable=False, default=0)
    exercises_performed_summary = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)

    def __repr__(self):
        return "<WorkoutSession(id=%s, user_id=%s, status=%s)>" % (self.id, self.user_id, self.status)


class WorkoutSessionSet(Base):
    __tablename__ = "workout_session_sets"

    id = Column(Integer, primary_key=True, index=True)
    workout_session_id = Column(
        Integer, ForeignKey("workout_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    exercise_id = Column(String(64), nullable=True)
    custom_exercise_id = Column(String(64), nullable=True)
    workout_plan_day_exercise_id = Column(Integer, nullable=True)
    workout_plan_day_exercise_sets_id = Column(Integer, nullable=True)
    set_order = Column(Integer, nullable=False)
    planned_min_reps = Column(Integer, nullable=True)
    planned_max_reps = Column(Integer, nullable=True)
    planned_weight_kg = Column(Float, nullable=True)
    actual_reps = Column(Integer, nullable=True)
    actual_weight_kg = Column(Float, nullable=True)
    is_warmup = Column(Boolean, nullable=False, default=False)
    is_success = Column(Boolean, nullable=True)
    rest_seconds_taken = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    performed_at = Column(DateTime, nullable=True)
    calculated_1rm = Column(Float, nullable=True)
    calculated_swr = Column(Float, nullable=True)
    volume_kg = Column(Float, nullable=True)


# --- Plans -----------------------------------------------------------------


class WorkoutPlan(Base):
    __tablename__ = "workout_plans"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)


class WorkoutPlanDay(Base):
    __tablename__ = "workout_plan_days"

    id = Column(Integer, primary_key=True, index=True)
    workout_plan_id = Column(Integer, ForeignKey("workout_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    day_order = Column(Integer, nullable=False, default=0)
    name = Column(String(255), nullable=True)


class WorkoutPlanDayExercise(Base):
    __tablename__ = "workout_plan_day_exercises"

    id = Column(Integer, primary_key=True, index=True)
    workout_plan_day_id = Column(
        Integer, ForeignKey("workout_plan_days.id", ondelete="CASCADE"), nullable=False, index=True
    )
    exercise_id = Column(String(64), nullable=False)
    order_index = Column(Integer, nullable=False, default=0)
    auto_progression_enabled = Column(Boolean, nullable=False, default=False)


class WorkoutPlanDayExerciseSet(Base):
    __tablename__ = "workout_plan_day_exercise_sets"

    id = Column(Integer, primary_key=True, index=True)
    workout_plan_day_exercise_id = Column(
        Integer, ForeignKey("workout_plan_day_exercises.id", ondelete="CASCADE"), nullable=False, index=True
    )
    set_order = Column(Integer, nullable=False, default=0)
    target_weight = Column(Float, nullable=True)
    min_reps = Column(Integer, nullable=True)
    max_reps = Column(Integer, nullable=True)
    target_weight_increase = Column(Float, nullable=True)
    target_rep_increase = Column(Integer, nullable=True)


class ActiveWorkoutPlan(Base):
    __tablename__ = "active_workout_plans"
    __table_args__ = (UniqueConstraint("user_id", "active_workout_plan_id", name="uq_active_workout_plans_user_plan"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    active_workout_plan_id = Column(Integer, ForeignKey("workout_plans.id", ondelete="CASCADE"), nullable=False)
    last_completed_day_id = Column(Integer, nullable=True)
    cur_cycle_start_date = Column(DateTime, nullable=True)
    prev_cycle_start_date = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=True)


# --- Freshness / levels ----------------------------------------------------


class UserMuscleLastWorked(Base):
    __tablename__ = "user_muscle_last_worked"
    __table_args__ = (UniqueConstraint("user_id", "muscle_id", name="uq_user_muscle_last_worked_user_muscle"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    muscle_id = Column(String(64), nullable=False)
    last_worked_date = Column(DateTime, nullable=False)
    workout_session_id = Column(Integer, nullable=True)
    updated_at = Column(DateTime, nullable=True)


class LevelDefinition(Base):
    __tablename__ = "level_definitions"

    id = Column(Integer, primary_key=True, index=True)
    level_number = Column(Integer, nullable=False, unique=True)
    xp_required = Column(Integer, nullable=False)
    title = Column(String(64), nullable=True)
