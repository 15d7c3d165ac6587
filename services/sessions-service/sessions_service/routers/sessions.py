import structlog
from fastapi import APIRouter, Depends, status

from .. import schemas as sm
from ..dependencies import get_completion_service, get_current_user_id
from ..services.completion_service import SessionCompletionService

router = APIRouter(prefix="/sessions")

logger = structlog.get_logger(__name__)


@router.post(
    "/finish",
    response_model=sm.SessionCompletionSummary,
    status_code=status.HTTP_200_OK,
)
async def finish_workout_session(
    payload: sm.FinishSessionRequest,
    user_id: str = Depends(get_current_user_id),
    completion_service: SessionCompletionService = Depends(get_completion_service),
):
    logger.info(
        "finish_session_requested",
        user_id=user_id,
        existing_session_id=payload.existing_session_id,
        exercises=len(payload.exercises),
    )
    return await completion_service.finish(user_id, payload)
