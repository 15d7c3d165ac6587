from backend_common.dependencies import make_get_current_user_id
from fastapi import Depends

from .config import Settings, get_settings
from .database import get_session_factory
from .repositories import RelationalStore
from .services.completion_service import SessionCompletionService

get_current_user_id = make_get_current_user_id("sessions-service")


def get_store() -> RelationalStore:
    return RelationalStore(get_session_factory())


def get_completion_service(
    store: RelationalStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> SessionCompletionService:
    return SessionCompletionService(store, settings=settings)
