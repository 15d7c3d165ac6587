"""Read-through JSON cache over an optional Redis client."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

JsonPayload = dict | list


@dataclass
class CacheMetrics:
    """Prometheus counters for hits, misses and errors; any of them may be omitted."""

    hits: Any = None
    misses: Any = None
    errors: Any = None

    def record(self, outcome: str) -> None:
        counter = getattr(self, outcome, None)
        if counter is not None:
            counter.inc()


class CacheHelper:
    """
    Keys are ``<namespace>:<name>``. When ``get_redis`` returns None every
    lookup falls through to the loader. Redis errors are logged and counted,
    never raised; loader errors propagate.

    Usage:
        cache = CacheHelper(get_redis, namespace="sessions:reference", default_ttl=3600)
        ranks = await cache.get_or_load("ranks", load_ranks)
    """

    def __init__(
        self,
        get_redis: Callable[[], Awaitable[Any]],
        *,
        namespace: str,
        metrics: CacheMetrics | None = None,
        default_ttl: int = 300,
    ):
        self._get_redis = get_redis
        self._namespace = namespace.rstrip(":")
        self._metrics = metrics or CacheMetrics()
        self._default_ttl = default_ttl

    def key(self, name: str) -> str:
        return f"{self._namespace}:{name}"

    async def get(self, name: str) -> JsonPayload | None:
        redis = await self._get_redis()
        if redis is None:
            return None
        key = self.key(name)
        try:
            cached = await redis.get(key)
        except Exception:
            self._metrics.record("errors")
            logger.warning("cache_get_failed", key=key, exc_info=True)
            return None
        if cached is None:
            self._metrics.record("misses")
            return None
        self._metrics.record("hits")
        return json.loads(cached)

    async def set(self, name: str, data: JsonPayload, ttl: int | None = None) -> None:
        redis = await self._get_redis()
        if redis is None:
            return
        key = self.key(name)
        try:
            await redis.set(key, json.dumps(data, default=str), ex=ttl or self._default_ttl)
        except Exception:
            self._metrics.record("errors")
            logger.warning("cache_set_failed", key=key, exc_info=True)

    async def get_or_load(
        self,
        name: str,
        loader: Callable[[], Awaitable[JsonPayload]],
        ttl: int | None = None,
    ) -> JsonPayload:
        cached = await self.get(name)
        if cached is not None:
            return cached
        data = await loader()
        await self.set(name, data, ttl=ttl)
        return data
