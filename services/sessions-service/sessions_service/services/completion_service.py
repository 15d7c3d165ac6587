from typing import Any, Optional

import structlog
from backend_common.logging import bound_log_context

from ..config import Settings, get_settings
from ..metrics import PIPELINE_STEP_FAILURES_TOTAL, WORKOUT_SESSIONS_COMPLETED_TOTAL
from ..models import WorkoutSession
from ..repositories import RelationalStore
from ..schemas import FinishSessionRequest, SessionCompletionSummary
from .aggregator import ContextAggregator
from .ancillary import AncillaryUpdater
from .composer import ResponseComposer
from .concurrency import collect_all
from .context import PersistedSession
from .persistence import SessionPersistence
from .personal_records import PersonalRecordEngine
from .progression import ProgressionEngine
from .ranking import RankingEngine, RankingResult
from .reference_data import ReferenceData
from .xp import XpAward, XpEngine

logger = structlog.get_logger(__name__)


class SessionCompletionService:
    """Finishes a workout session end to end.

    Aggregation and persistence are fatal; once the session is stored, the
    remaining steps run concurrently and a failing step only drops its part of
    the summary.
    """

    def __init__(
        self,
        store: RelationalStore,
        settings: Optional[Settings] = None,
        reference: Optional[ReferenceData] = None,
        ancillary: Optional[AncillaryUpdater] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.reference = reference or ReferenceData(store, self.settings)
        self.aggregator = ContextAggregator(store, self.reference, self.settings)
        self.persistence = SessionPersistence(store)
        self.personal_records = PersonalRecordEngine(store)
        self.ranking = RankingEngine(store, self.settings)
        self.progression = ProgressionEngine(store)
        self.xp = XpEngine(store, self.settings)
        self.ancillary = ancillary or AncillaryUpdater(store)
        self.composer = ResponseComposer()

    async def finish(self, user_id: str, request: FinishSessionRequest) -> SessionCompletionSummary:
        with bound_log_context(user_id=user_id, existing_session_id=request.existing_session_id):
            context = await self.aggregator.build(user_id, request)
            persisted = await self.persistence.persist(context)

            with bound_log_context(session_id=persisted.session_id):
                results, errors = await collect_all(
                    {
                        "personal_records": self.personal_records.update(context, persisted),
                        "ranking": self.ranking.update(context, persisted),
                        "progression": self.progression.apply(context, persisted),
                        "xp": self.xp.award(context),
                        "ancillary": self.ancillary.run(context, persisted),
                    }
                )
                for step, error in errors.items():
                    PIPELINE_STEP_FAILURES_TOTAL.labels(step=step).inc()
                    logger.error("session_pipeline_step_failed", step=step, error=str(error), exc_info=error)

                ranking: RankingResult = results.get("ranking") or RankingResult()
                await self._store_rank_up_counts(persisted, ranking)

                xp = results.get("xp") or self._fallback_award(context.profile.experience_points)
                summary = self.composer.compose(
                    context,
                    persisted,
                    xp,
                    ranking=ranking,
                    plan_progression=results.get("progression"),
                    personal_records=results.get("personal_records"),
                )

            WORKOUT_SESSIONS_COMPLETED_TOTAL.labels(source="new" if persisted.created else "existing").inc()
            logger.info(
                "session_completed",
                session_id=persisted.session_id,
                xp_awarded=summary.xp_awarded,
                rank_changes=len(summary.rank_changes),
                personal_records=len(summary.personal_records),
                failed_steps=sorted(errors),
            )
            return summary

    async def _store_rank_up_counts(self, persisted: PersistedSession, ranking: RankingResult) -> None:
        counts = ranking.counts
        values: dict[str, Any] = {
            "muscle_rank_ups": counts.muscle,
            "muscle_group_rank_ups": counts.muscle_group,
            "overall_rank_ups": counts.overall,
        }
        try:
            await self.store.update(WorkoutSession, persisted.session_id, values)
        except Exception as exc:
            PIPELINE_STEP_FAILURES_TOTAL.labels(step="rank_up_counts").inc()
            logger.error("session_rank_up_counts_failed", error=str(exc))

    def _fallback_award(self, experience_points: int) -> XpAward:
        xp_awarded = self.settings.XP_PER_WORKOUT
        return XpAward(xp_awarded=xp_awarded, total_xp=(experience_points or 0) + xp_awarded)
