import structlog
from backend_common.fastapi_app import create_service_app
from fastapi.responses import JSONResponse

from .exceptions import NotFoundException
from .logging_config import configure_logging
from .redis_client import close_redis, init_redis
from .routers.sessions import router as sessions_router

configure_logging()
logger = structlog.get_logger(__name__)

app = create_service_app(
    title="sessions-service",
    version="0.1.0",
    enable_cors=False,
)


@app.exception_handler(NotFoundException)
async def not_found_exception_handler(request, exc: NotFoundException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


@app.on_event("startup")
async def startup_event():
    await init_redis()


@app.on_event("shutdown")
async def shutdown_event():
    await close_redis()


app.include_router(sessions_router, prefix="/workouts")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
