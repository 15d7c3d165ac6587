import structlog

from ..exceptions import SessionNotFoundException, SessionPersistenceException
from ..models import WorkoutSession, WorkoutSessionSet
from ..repositories import RelationalStore
from .context import PersistedSession, SessionContext

logger = structlog.get_logger(__name__)


class SessionPersistence:
    def __init__(self, store: RelationalStore):
        self.store = store

    async def persist(self, context: SessionContext) -> PersistedSession:
        """Write the session row and its sets in one transaction. Any failure here is fatal for the request."""
        existing_id = context.request.existing_session_id
        try:
            saved = await self.store.save_with_children(
                WorkoutSession,
                context.session_payload,
                WorkoutSessionSet,
                [prepared.to_row() for prepared in context.sets],
                "workout_session_id",
                key=existing_id,
                owner_filters=[WorkoutSession.user_id == context.user_id],
            )
        except Exception as exc:
            logger.error(
                "session_persist_failed",
                user_id=context.user_id,
                existing_session_id=existing_id,
                error=str(exc),
            )
            raise SessionPersistenceException() from exc

        if saved is None:
            logger.warning("session_not_found_for_user", session_id=existing_id, user_id=context.user_id)
            raise SessionNotFoundException(existing_id)

        session, rows = saved
        for prepared, row in zip(context.sets, rows):
            prepared.id = row.id

        logger.info(
            "session_persisted",
            session_id=session.id,
            user_id=context.user_id,
            sets=len(rows),
            created=existing_id is None,
        )
        return PersistedSession(session_id=session.id, sets=context.sets, created=existing_id is None)
