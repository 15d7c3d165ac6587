from fastapi import HTTPException, status


class NotFoundException(HTTPException):
    def __init__(self, detail: str = "Object not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ProfileNotFoundException(NotFoundException):
    def __init__(self, user_id: str):
        super().__init__(detail=f"Profile for user_id={user_id} not found")


class SessionNotFoundException(NotFoundException):
    def __init__(self, session_id: int):
        super().__init__(detail=f"Session with id={session_id} not found")


class ContextLoadException(HTTPException):
    """The acting user's profile could not be read from the store."""

    def __init__(self, user_id: str):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Could not load profile for user_id={user_id}",
        )


class SessionPersistenceException(HTTPException):
    """The session row or its set rows could not be written."""

    def __init__(self, detail: str = "Failed to persist workout session"):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
