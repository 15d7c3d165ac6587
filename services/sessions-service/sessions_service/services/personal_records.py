from typing import Callable, Optional

import structlog

from ..metrics import PERSONAL_RECORDS_SET_TOTAL
from ..models import PersonalRecord
from ..repositories import RelationalStore
from ..schemas import PersonalRecordItem
from .context import ExistingRecord, PersistedSession, PreparedSet, SessionContext
from .formulas import is_rep_based

logger = structlog.get_logger(__name__)

ONE_REP_MAX = "one_rep_max"
MAX_REPS = "max_reps"
MAX_SWR = "max_swr"

PR_CONFLICT_KEYS = ("user_id", "exercise_key", "pr_type")

# pr_type -> (value of a set, value of a stored record)
_PR_METRICS: dict[str, tuple[Callable[[PreparedSet], Optional[float]], Callable[[ExistingRecord], Optional[float]]]] = {
    ONE_REP_MAX: (lambda s: s.calculated_1rm, lambda r: r.estimated_1rm),
    MAX_REPS: (lambda s: s.actual_reps if s.actual_reps and s.actual_reps > 0 else None, lambda r: r.reps),
    MAX_SWR: (lambda s: s.calculated_swr, lambda r: r.swr),
}


def pr_types_for(exercise_type: Optional[str]) -> tuple[str, ...]:
    if is_rep_based(exercise_type):
        return (MAX_REPS,)
    return (ONE_REP_MAX, MAX_REPS, MAX_SWR)


class PersonalRecordEngine:
    def __init__(self, store: RelationalStore):
        self.store = store

    async def update(self, context: SessionContext, persisted: PersistedSession) -> list[PersonalRecordItem]:
        grouped: dict[str, list[PreparedSet]] = {}
        for prepared in persisted.sets:
            if prepared.is_warmup:
                continue
            grouped.setdefault(prepared.exercise_key, []).append(prepared)

        rows: list[dict] = []
        items: list[PersonalRecordItem] = []
        for exercise_key, sets in grouped.items():
            stored = context.existing_records.get(exercise_key, {})
            for pr_type in pr_types_for(sets[0].exercise_type):
                set_value, record_value = _PR_METRICS[pr_type]
                candidates = [s for s in sets if set_value(s) is not None]
                if not candidates:
                    continue
                best = max(candidates, key=set_value)
                value = set_value(best)
                existing = stored.get(pr_type)
                previous = record_value(existing) if existing else None
                if previous is not None and value <= previous:
                    continue

                rows.append(
                    {
                        "user_id": context.user_id,
                        "exercise_key": exercise_key,
                        "exercise_id": best.exercise_id,
                        "custom_exercise_id": best.custom_exercise_id,
                        "pr_type": pr_type,
                        "estimated_1rm": best.calculated_1rm,
                        "reps": best.actual_reps,
                        "swr": best.calculated_swr,
                        "weight_kg": best.actual_weight_kg,
                        "bodyweight_kg": context.bodyweight,
                        "source_set_id": best.id,
                        "achieved_at": context.ended_at,
                    }
                )
                items.append(
                    PersonalRecordItem(
                        exercise_key=exercise_key,
                        exercise_name=best.exercise_name,
                        pr_type=pr_type,
                        value=value,
                        previous_value=previous,
                        estimated_1rm=best.calculated_1rm,
                        reps=best.actual_reps,
                        swr=best.calculated_swr,
                        weight_kg=best.actual_weight_kg,
                        source_set_id=best.id,
                    )
                )

        if not rows:
            logger.info("personal_records_unchanged", user_id=context.user_id, session_id=persisted.session_id)
            return []

        await self.store.upsert(PersonalRecord, rows, PR_CONFLICT_KEYS)
        for item in items:
            PERSONAL_RECORDS_SET_TOTAL.labels(pr_type=item.pr_type).inc()
        logger.info(
            "personal_records_updated",
            user_id=context.user_id,
            session_id=persisted.session_id,
            count=len(items),
        )
        return items
