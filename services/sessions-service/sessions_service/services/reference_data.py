from typing import Optional

import structlog
from backend_common.cache import CacheHelper, CacheMetrics

from ..config import Settings
from ..metrics import (
    REFERENCE_CACHE_ERRORS_TOTAL,
    REFERENCE_CACHE_HITS_TOTAL,
    REFERENCE_CACHE_MISSES_TOTAL,
)
from ..models import (
    ExerciseRankBenchmark,
    LevelDefinition,
    Muscle,
    MuscleGroup,
    MuscleGroupRankBenchmark,
    MuscleRankBenchmark,
    OverallRankBenchmark,
    Rank,
)
from ..redis_client import REFERENCE_NAMESPACE, get_redis
from ..repositories import RelationalStore
from .context import Benchmark, BenchmarkTables, LevelInfo, MuscleGroupInfo, MuscleInfo

logger = structlog.get_logger(__name__)

_BENCHMARK_MODELS = {
    "exercise": (ExerciseRankBenchmark, "exercise_id"),
    "muscle": (MuscleRankBenchmark, "muscle_id"),
    "muscle_group": (MuscleGroupRankBenchmark, "muscle_group_id"),
    "overall": (OverallRankBenchmark, None),
}


class ReferenceData:
    """Static catalogs read through the Redis cache when one is available."""

    def __init__(self, store: RelationalStore, settings: Settings, cache: Optional[CacheHelper] = None):
        self.store = store
        self._ttl = settings.REFERENCE_CACHE_TTL_SECONDS
        self._cache = cache or CacheHelper(
            get_redis,
            namespace=REFERENCE_NAMESPACE,
            metrics=CacheMetrics(
                hits=REFERENCE_CACHE_HITS_TOTAL,
                misses=REFERENCE_CACHE_MISSES_TOTAL,
                errors=REFERENCE_CACHE_ERRORS_TOTAL,
            ),
            default_ttl=self._ttl,
        )

    async def ranks(self) -> dict[int, str]:
        async def load():
            rows = await self.store.fetch(Rank, order_by=[Rank.id])
            return [{"id": r.id, "rank_name": r.rank_name} for r in rows]

        rows = await self._cache.get_or_load("ranks", load, ttl=self._ttl)
        return {int(row["id"]): row["rank_name"] for row in rows}

    async def muscles(self) -> dict[str, MuscleInfo]:
        async def load():
            rows = await self.store.fetch(Muscle)
            return [
                {
                    "id": m.id,
                    "name": m.name,
                    "muscle_group_id": m.muscle_group_id,
                    "muscle_group_weight": m.muscle_group_weight or 0.0,
                }
                for m in rows
            ]

        rows = await self._cache.get_or_load("muscles", load, ttl=self._ttl)
        return {row["id"]: MuscleInfo(**row) for row in rows}

    async def muscle_groups(self) -> dict[str, MuscleGroupInfo]:
        async def load():
            rows = await self.store.fetch(MuscleGroup)
            return [{"id": g.id, "name": g.name, "overall_weight": g.overall_weight or 0.0} for g in rows]

        rows = await self._cache.get_or_load("muscle_groups", load, ttl=self._ttl)
        return {row["id"]: MuscleGroupInfo(**row) for row in rows}

    async def benchmarks(self) -> BenchmarkTables:
        async def load():
            payload = {}
            for level, (model, entity_column) in _BENCHMARK_MODELS.items():
                rows = await self.store.fetch(model)
                payload[level] = [
                    {
                        "rank_id": r.rank_id,
                        "min_threshold": r.min_threshold,
                        "gender": r.gender,
                        "entity_id": getattr(r, entity_column) if entity_column else None,
                    }
                    for r in rows
                ]
            return payload

        payload = await self._cache.get_or_load("rank_benchmarks", load, ttl=self._ttl)
        return BenchmarkTables(
            **{level: [Benchmark(**row) for row in payload.get(level, [])] for level in _BENCHMARK_MODELS}
        )

    async def level_definitions(self) -> list[LevelInfo]:
        async def load():
            rows = await self.store.fetch(LevelDefinition, order_by=[LevelDefinition.level_number])
            return [{"level_number": r.level_number, "xp_required": r.xp_required} for r in rows]

        rows = await self._cache.get_or_load("level_definitions", load, ttl=self._ttl)
        return [LevelInfo(**row) for row in rows]
