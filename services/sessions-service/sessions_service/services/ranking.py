"""Strength scores and ranks at the exercise, muscle, muscle group and overall levels.

Scores roll up bottom-up: the best-ever exercise ratio becomes rank points,
primary muscles average their top three weighted exercise scores, groups and
the overall score are weighted sums of the level below. Every level is then
matched against the gender-specific benchmark ladder.
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from ..config import Settings
from ..metrics import RANK_CHANGES_TOTAL
from ..models import ExerciseRank, MuscleGroupRank, MuscleRank, UserRank
from ..repositories import RelationalStore, UpsertOperation
from ..schemas import (
    MuscleGroupProgression,
    RankChange,
    RankInfo,
    RankProgressionDetails,
    RankUpCounts,
)
from .context import Benchmark, ExerciseInfo, ExistingRecord, PersistedSession, PreparedSet, RankRow, SessionContext
from .formulas import (
    ASSISTED_BODY_WEIGHT,
    WEIGHTED_BODY_WEIGHT,
    calculate_rank_points,
    effective_load,
    estimate_one_rep_max,
    round_half_up,
)

logger = structlog.get_logger(__name__)

BENCHMARK_GENDERS = ("male", "female")
TOP_EXERCISES_PER_MUSCLE = 3


@dataclass
class RankingResult:
    rank_changes: list[RankChange] = field(default_factory=list)
    counts: RankUpCounts = field(default_factory=RankUpCounts)
    overall_progression: Optional[RankProgressionDetails] = None
    muscle_group_progressions: list[MuscleGroupProgression] = field(default_factory=list)


def resolve_benchmark_gender(gender: Optional[str], fallback: str) -> str:
    """Benchmarks exist for male and female only; anything else uses the configured fallback."""
    normalized = (gender or "").strip().lower()
    if normalized in BENCHMARK_GENDERS:
        return normalized
    return fallback


def benchmarks_for_gender(rows: list[Benchmark], gender: Optional[str], fallback: str) -> list[Benchmark]:
    resolved = resolve_benchmark_gender(gender, fallback)
    return [row for row in rows if (row.gender or "").lower() == resolved]


def benchmarks_for_entity(rows: list[Benchmark], entity_id: Optional[str]) -> list[Benchmark]:
    """Entity-specific rows win; rows without an entity are the shared default ladder."""
    specific = [row for row in rows if entity_id is not None and row.entity_id == entity_id]
    if specific:
        return specific
    return [row for row in rows if row.entity_id is None]


def assign_rank(score: float, benchmarks: list[Benchmark]) -> Optional[Benchmark]:
    if not benchmarks:
        return None
    ordered = sorted(benchmarks, key=lambda b: b.min_threshold, reverse=True)
    for benchmark in ordered:
        if benchmark.min_threshold <= score:
            return benchmark
    return ordered[-1]


def _rank_info(benchmark: Optional[Benchmark], rank_names: dict[int, str]) -> Optional[RankInfo]:
    if benchmark is None:
        return None
    return RankInfo(
        rank_id=benchmark.rank_id,
        rank_name=rank_names.get(benchmark.rank_id),
        min_strength_score=benchmark.min_threshold,
    )


def build_rank_progression(
    initial_score: float,
    final_score: float,
    initial_rank_id: Optional[int],
    benchmarks: list[Benchmark],
    rank_names: dict[int, str],
) -> RankProgressionDetails:
    ascending = sorted(benchmarks, key=lambda b: b.min_threshold)
    current = assign_rank(final_score, ascending)
    initial = next((b for b in ascending if b.rank_id == initial_rank_id), None)

    if current is None:
        upcoming = ascending[0] if ascending else None
    else:
        upcoming = next((b for b in ascending if b.min_threshold > current.min_threshold), None)

    if upcoming is None:
        percent = 1.0
    else:
        floor = current.min_threshold if current else 0.0
        span = upcoming.min_threshold - floor
        percent = 1.0 if span <= 0 else (final_score - floor) / span
        percent = round(min(max(percent, 0.0), 1.0), 2)

    return RankProgressionDetails(
        initial_strength_score=initial_score,
        final_strength_score=final_score,
        percent_to_next_rank=percent,
        initial_rank=_rank_info(initial, rank_names),
        current_rank=_rank_info(current, rank_names),
        next_rank=_rank_info(upcoming, rank_names),
    )


def record_ratio(exercise: ExerciseInfo, record: Optional[ExistingRecord]) -> Optional[float]:
    """Ratio held by a stored record, recomputed on effective load for bodyweight-class exercises."""
    if record is None:
        return None
    if exercise.rep_based:
        return float(record.reps) if record.reps else None
    if exercise.exercise_type in (WEIGHTED_BODY_WEIGHT, ASSISTED_BODY_WEIGHT):
        if not record.bodyweight_kg or record.bodyweight_kg <= 0:
            return None
        one_rm = estimate_one_rep_max(
            effective_load(exercise.exercise_type, record.weight_kg, record.bodyweight_kg), record.reps
        )
        return one_rm / record.bodyweight_kg if one_rm is not None else None
    return record.swr


def set_ratio(exercise: ExerciseInfo, prepared: PreparedSet, bodyweight: float) -> Optional[float]:
    if exercise.rep_based:
        return float(prepared.actual_reps) if prepared.actual_reps and prepared.actual_reps > 0 else None
    one_rm = estimate_one_rep_max(
        effective_load(exercise.exercise_type, prepared.actual_weight_kg, bodyweight), prepared.actual_reps
    )
    return one_rm / bodyweight if one_rm is not None else None


@dataclass
class _LevelScore:
    level: str
    entity_id: Optional[str]
    entity_name: Optional[str]
    score: float
    stored: Optional[RankRow]
    rank: Optional[Benchmark]
    source_set_id: Optional[int] = None

    @property
    def changed(self) -> bool:
        old_rank_id = self.stored.rank_id if self.stored else None
        new_rank_id = self.rank.rank_id if self.rank else None
        return old_rank_id != new_rank_id


class RankingEngine:
    def __init__(self, store: RelationalStore, settings: Settings):
        self.store = store
        self.settings = settings

    async def update(self, context: SessionContext, persisted: PersistedSession) -> RankingResult:
        bodyweight = context.bodyweight
        if bodyweight is None or bodyweight <= 0:
            logger.warning("ranking_skipped_no_bodyweight", user_id=context.user_id, session_id=persisted.session_id)
            return RankingResult()

        gender = context.profile.gender
        fallback = self.settings.BENCHMARK_GENDER_FALLBACK
        tables = context.benchmarks
        exercise_ladder = benchmarks_for_gender(tables.exercise, gender, fallback)
        muscle_ladder = benchmarks_for_gender(tables.muscle, gender, fallback)
        group_ladder = benchmarks_for_gender(tables.muscle_group, gender, fallback)
        overall_ladder = benchmarks_for_entity(benchmarks_for_gender(tables.overall, gender, fallback), None)
        current = context.current_ranks

        exercise_levels = self._score_exercises(context, bodyweight, resolve_benchmark_gender(gender, fallback))
        for level in exercise_levels:
            level.rank = self._rank_or_warn(level, benchmarks_for_entity(exercise_ladder, level.entity_id))

        exercise_scores = {eid: row.strength_score for eid, row in current.exercise.items()}
        exercise_scores.update({level.entity_id: level.score for level in exercise_levels})
        touched = {level.entity_id for level in exercise_levels}

        primary = [m for m in context.mappings if m.muscle_intensity == "primary"]
        affected_muscles = sorted({m.muscle_id for m in primary if m.exercise_id in touched})
        muscle_levels = []
        for muscle_id in affected_muscles:
            contributions = sorted(
                (
                    exercise_scores[m.exercise_id] * m.exercise_muscle_weight
                    for m in primary
                    if m.muscle_id == muscle_id and m.exercise_id in exercise_scores
                ),
                reverse=True,
            )[:TOP_EXERCISES_PER_MUSCLE]
            contributions += [0.0] * (TOP_EXERCISES_PER_MUSCLE - len(contributions))
            muscle = context.muscles.get(muscle_id)
            level = _LevelScore(
                level="muscle",
                entity_id=muscle_id,
                entity_name=muscle.name if muscle else None,
                score=round_half_up(sum(contributions) / TOP_EXERCISES_PER_MUSCLE),
                stored=current.muscle.get(muscle_id),
                rank=None,
            )
            level.rank = self._rank_or_warn(level, benchmarks_for_entity(muscle_ladder, muscle_id))
            muscle_levels.append(level)

        muscle_scores = {mid: row.strength_score for mid, row in current.muscle.items()}
        muscle_scores.update({level.entity_id: level.score for level in muscle_levels})

        affected_groups = sorted(
            {
                context.muscles[mid].muscle_group_id
                for mid in affected_muscles
                if mid in context.muscles and context.muscles[mid].muscle_group_id
            }
        )
        group_levels = []
        for group_id in affected_groups:
            total = sum(
                muscle_scores.get(muscle.id, 0.0) * muscle.muscle_group_weight
                for muscle in context.muscles.values()
                if muscle.muscle_group_id == group_id
            )
            group = context.muscle_groups.get(group_id)
            level = _LevelScore(
                level="muscle_group",
                entity_id=group_id,
                entity_name=group.name if group else None,
                score=round_half_up(total),
                stored=current.muscle_group.get(group_id),
                rank=None,
            )
            level.rank = self._rank_or_warn(level, benchmarks_for_entity(group_ladder, group_id))
            group_levels.append(level)

        group_scores = {gid: row.strength_score for gid, row in current.muscle_group.items()}
        group_scores.update({level.entity_id: level.score for level in group_levels})

        overall = _LevelScore(
            level="overall",
            entity_id=None,
            entity_name=None,
            score=round_half_up(
                sum(group_scores.get(g.id, 0.0) * g.overall_weight for g in context.muscle_groups.values())
            ),
            stored=current.overall,
            rank=None,
        )
        overall.rank = self._rank_or_warn(overall, overall_ladder)

        await self._store_scores(context, exercise_levels, muscle_levels, group_levels, overall)

        result = RankingResult()
        for level in [*exercise_levels, *muscle_levels, *group_levels, overall]:
            if not level.changed or level.rank is None:
                continue
            result.rank_changes.append(self._rank_change(level, context.ranks))
            RANK_CHANGES_TOTAL.labels(level=level.level).inc()
            if level.level != "exercise":
                setattr(result.counts, level.level, getattr(result.counts, level.level) + 1)

        result.overall_progression = build_rank_progression(
            overall.stored.strength_score if overall.stored else 0.0,
            overall.score,
            overall.stored.rank_id if overall.stored else None,
            overall_ladder,
            context.ranks,
        )
        for level in group_levels:
            result.muscle_group_progressions.append(
                MuscleGroupProgression(
                    muscle_group_id=level.entity_id,
                    muscle_group_name=level.entity_name or "",
                    progression_details=build_rank_progression(
                        level.stored.strength_score if level.stored else 0.0,
                        level.score,
                        level.stored.rank_id if level.stored else None,
                        benchmarks_for_entity(group_ladder, level.entity_id),
                        context.ranks,
                    ),
                )
            )

        logger.info(
            "ranks_updated",
            user_id=context.user_id,
            session_id=persisted.session_id,
            exercises=len(exercise_levels),
            muscles=len(muscle_levels),
            muscle_groups=len(group_levels),
            overall_score=overall.score,
            rank_changes=len(result.rank_changes),
        )
        return result

    def _score_exercises(self, context: SessionContext, bodyweight: float, gender: str) -> list[_LevelScore]:
        by_exercise: dict[str, list[PreparedSet]] = {}
        for prepared in context.sets:
            if prepared.is_warmup or not prepared.exercise_id:
                continue
            by_exercise.setdefault(prepared.exercise_id, []).append(prepared)

        levels = []
        for exercise_id, sets in by_exercise.items():
            exercise = context.exercises.get(exercise_id)
            if exercise is None or exercise.is_custom:
                continue

            best_ratio, source_set_id = None, None
            for prepared in sets:
                ratio = set_ratio(exercise, prepared, bodyweight)
                if ratio is not None and (best_ratio is None or ratio > best_ratio):
                    best_ratio, source_set_id = ratio, prepared.id

            records = context.existing_records.get(exercise_id, {})
            stored_ratio = record_ratio(exercise, records.get("max_reps" if exercise.rep_based else "max_swr"))
            stored_row = context.current_ranks.exercise.get(exercise_id)
            if stored_ratio is not None and (best_ratio is None or stored_ratio > best_ratio):
                best_ratio = stored_ratio
                source_set_id = None

            elite = exercise.elite_ratio(gender)
            if elite is None or elite <= 0:
                logger.error("exercise_elite_benchmark_missing", exercise_id=exercise_id, gender=gender)
                score = 0
            else:
                alpha = exercise.alpha_value or self.settings.RANK_DEFAULT_ALPHA
                score = calculate_rank_points(alpha, elite, best_ratio or 0.0, self.settings.RANK_MAX_SCORE)

            levels.append(
                _LevelScore(
                    level="exercise",
                    entity_id=exercise_id,
                    entity_name=exercise.name,
                    score=score,
                    stored=stored_row,
                    rank=None,
                    source_set_id=source_set_id,
                )
            )
        return levels

    @staticmethod
    def _rank_or_warn(level: _LevelScore, ladder: list[Benchmark]) -> Optional[Benchmark]:
        if not ladder:
            logger.warning("rank_benchmarks_missing", level=level.level, entity_id=level.entity_id)
            return None
        return assign_rank(level.score, ladder)

    @staticmethod
    def _rank_change(level: _LevelScore, rank_names: dict[int, str]) -> RankChange:
        old_rank_id = level.stored.rank_id if level.stored else None
        new_rank_id = level.rank.rank_id if level.rank else None
        return RankChange(
            level=level.level,
            entity_id=level.entity_id,
            entity_name=level.entity_name,
            old_strength_score=level.stored.strength_score if level.stored else None,
            new_strength_score=level.score,
            old_rank_id=old_rank_id,
            old_rank_name=rank_names.get(old_rank_id) if old_rank_id is not None else None,
            new_rank_id=new_rank_id,
            new_rank_name=rank_names.get(new_rank_id) if new_rank_id is not None else None,
        )

    async def _store_scores(
        self,
        context: SessionContext,
        exercise_levels: list[_LevelScore],
        muscle_levels: list[_LevelScore],
        group_levels: list[_LevelScore],
        overall: _LevelScore,
    ) -> None:
        now = context.ended_at

        def row(level: _LevelScore, entity_column: Optional[str]) -> dict:
            values = {
                "user_id": context.user_id,
                "strength_score": level.score,
                "rank_id": level.rank.rank_id if level.rank else None,
                "last_calculated_at": now,
            }
            if entity_column:
                values[entity_column] = level.entity_id
            return values

        exercise_rows = []
        for level in exercise_levels:
            values = row(level, "exercise_id")
            values["session_set_id"] = level.source_set_id
            exercise_rows.append(values)

        await self.store.upsert_batch(
            [
                UpsertOperation(ExerciseRank, exercise_rows, ("user_id", "exercise_id")),
                UpsertOperation(MuscleRank, [row(level, "muscle_id") for level in muscle_levels], ("user_id", "muscle_id")),
                UpsertOperation(
                    MuscleGroupRank,
                    [row(level, "muscle_group_id") for level in group_levels],
                    ("user_id", "muscle_group_id"),
                ),
                UpsertOperation(UserRank, [row(overall, None)], ("user_id",)),
            ]
        )
