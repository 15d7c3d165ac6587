"""Redis client utilities for sessions-service."""

from __future__ import annotations

from typing import Optional

import structlog
from redis.asyncio import Redis

from .config import get_settings

logger = structlog.get_logger(__name__)

redis_client: Optional[Redis] = None


REFERENCE_NAMESPACE = "sessions:reference"


async def init_redis() -> None:
    global redis_client

    settings = get_settings()
    if not settings.SESSIONS_REDIS_ENABLED:
        logger.info("sessions_redis_disabled")
        return

    try:
        redis_client = Redis(
            host=settings.SESSIONS_REDIS_HOST,
            port=settings.SESSIONS_REDIS_PORT,
            db=settings.SESSIONS_REDIS_DB,
            password=settings.SESSIONS_REDIS_PASSWORD,
            encoding="utf-8",
            decode_responses=True,
            health_check_interval=30,
        )
        await redis_client.ping()
        logger.info(
            "sessions_redis_connected",
            host=settings.SESSIONS_REDIS_HOST,
            port=settings.SESSIONS_REDIS_PORT,
            db=settings.SESSIONS_REDIS_DB,
        )
    except Exception as exc:
        logger.error("sessions_redis_connection_failed", error=str(exc))
        redis_client = None


async def get_redis() -> Optional[Redis]:
    return redis_client


async def close_redis() -> None:
    global redis_client

    if redis_client is None:
        return

    try:
        await redis_client.aclose()
        logger.info("sessions_redis_closed")
    except Exception as exc:
        logger.warning("sessions_redis_close_failed", error=str(exc))
    finally:
        redis_client = None
