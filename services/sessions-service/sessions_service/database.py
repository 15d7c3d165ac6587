from functools import lru_cache

import structlog
from backend_common.database import (
    create_async_engine_and_session,
    ensure_asyncpg_url,
    normalize_asyncpg_query,
    redact_url,
)
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from .config import Settings, get_settings

logger = structlog.get_logger(__name__)

Base = declarative_base()


def build_database_url(settings: Settings) -> str:
    return normalize_asyncpg_query(ensure_asyncpg_url(settings.SESSIONS_DATABASE_URL))


def create_engine_for(settings: Settings) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    database_url = build_database_url(settings)
    logger.info("sessions_database_configured", url=redact_url(database_url))

    engine_args = {}
    if database_url.startswith("postgresql"):
        engine_args["pool_size"] = settings.SESSIONS_DATABASE_POOL_SIZE
        engine_args["pool_pre_ping"] = True

    return create_async_engine_and_session(
        database_url,
        echo=settings.SESSIONS_DATABASE_ECHO,
        expire_on_commit=False,
        autoflush=False,
        **engine_args,
    )


@lru_cache()
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    _, session_factory = create_engine_for(get_settings())
    return session_factory
