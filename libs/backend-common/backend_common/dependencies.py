from collections.abc import Callable

import structlog
from fastapi import HTTPException, Request, status
from sentry_sdk import set_tag, set_user


def make_get_current_user_id(
    service_name: str,
    header_name: str = "x-user-id",
    error_status_code: int = status.HTTP_401_UNAUTHORIZED,
    error_detail: str = "X-User-Id header required",
) -> Callable[[Request], str]:
    def get_current_user_id(request: Request) -> str:
        user_id = (request.headers.get(header_name) or "").strip()
        if not user_id:
            raise HTTPException(status_code=error_status_code, detail=error_detail)
        set_user({"id": user_id})
        set_tag("service", service_name)
        structlog.contextvars.bind_contextvars(user_id=user_id)
        return user_id

    return get_current_user_id
