from typing import Optional

from ..schemas import (
    FailedSetDetail,
    LoggedSetOverviewItem,
    PersonalRecordItem,
    PlanProgressionItem,
    SessionCompletionSummary,
)
from .context import PersistedSession, PreparedSet, SessionContext
from .ranking import RankingResult
from .xp import XpAward


def logged_set_overview(sets: list[PreparedSet]) -> list[LoggedSetOverviewItem]:
    """Failed working sets grouped per exercise, in the order the exercises were logged."""
    failed: dict[str, LoggedSetOverviewItem] = {}
    for prepared in sets:
        if prepared.is_warmup or prepared.is_success:
            continue
        item = failed.setdefault(prepared.exercise_key, LoggedSetOverviewItem(exercise_name=prepared.exercise_name))
        item.failed_set_info.append(
            FailedSetDetail(
                set_number=prepared.set_order,
                reps_achieved=prepared.actual_reps,
                target_reps=prepared.planned_min_reps,
                achieved_weight=prepared.actual_weight_kg,
            )
        )
    return list(failed.values())


class ResponseComposer:
    def compose(
        self,
        context: SessionContext,
        persisted: PersistedSession,
        xp: XpAward,
        ranking: Optional[RankingResult] = None,
        plan_progression: Optional[list[PlanProgressionItem]] = None,
        personal_records: Optional[list[PersonalRecordItem]] = None,
    ) -> SessionCompletionSummary:
        ranking = ranking or RankingResult()
        totals = context.totals
        previous = context.previous_session

        sets_delta = reps_delta = volume_delta = duration_delta = None
        if previous is not None:
            sets_delta = totals.total_sets - previous.total_sets
            reps_delta = totals.total_reps - previous.total_reps
            volume_delta = totals.total_volume_kg - previous.total_volume_kg
            if previous.duration_seconds is not None:
                duration_delta = totals.duration_seconds - previous.duration_seconds

        return SessionCompletionSummary(
            session_id=persisted.session_id,
            xp_awarded=xp.xp_awarded,
            total_xp=xp.total_xp,
            leveled_up=xp.leveled_up,
            new_level_number=xp.new_level_number,
            remaining_xp_for_next_level=xp.remaining_xp_for_next_level,
            duration_seconds=totals.duration_seconds,
            total_sets=totals.total_sets,
            total_reps=totals.total_reps,
            total_volume_kg=totals.total_volume_kg,
            sets_delta=sets_delta,
            reps_delta=reps_delta,
            volume_delta=volume_delta,
            duration_delta=duration_delta,
            exercises_performed_summary=context.session_payload.get("exercises_performed_summary") or "",
            muscles_worked_summary=context.muscles_worked_summary,
            overall_user_rank_progression=ranking.overall_progression,
            muscle_group_progressions=ranking.muscle_group_progressions,
            rank_changes=ranking.rank_changes,
            rank_up_counts=ranking.counts,
            logged_set_overview=logged_set_overview(persisted.sets),
            plan_progression=plan_progression or [],
            personal_records=personal_records or [],
        )
