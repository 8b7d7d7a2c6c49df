"""Storage, graph and growth statistics over the whole store."""

import logging
from datetime import timedelta

from pydantic import BaseModel, Field

from ._util import now_iso, parse_datetime, utcnow
from .errors import StoreError
from .store.helix import HelixClient

log = logging.getLogger("ontomem")

EMBEDDING_DIM = 768
GROWTH_WINDOW_DAYS = 7
MB = 1024 * 1024


class StorageStats(BaseModel):
    total_memories: int = 0
    total_size_bytes: int = 0
    total_size_mb: float = 0.0
    total_size_gb: float = 0.0
    size_by_type: dict[str, int] = Field(default_factory=dict)
    avg_memory_size: float = 0.0
    largest_memories: list[tuple[str, int]] = Field(default_factory=list)
    vector_count: int = 0
    vector_storage_mb: float = 0.0
    collected_at: str = ""


class GraphStats(BaseModel):
    node_counts: dict[str, int] = Field(default_factory=dict)
    total_nodes: int = 0
    collected_at: str = ""


class GrowthStats(BaseModel):
    memories_per_day: float = 0.0
    growth_rate_percent: float = 0.0
    trend: str = "slow"
    analysis_period_days: int = GROWTH_WINDOW_DAYS
    collected_at: str = ""


class AnalyticsSummary(BaseModel):
    storage: StorageStats
    graph: GraphStats
    growth: GrowthStats
    category_breakdown: dict[str, int] = Field(default_factory=dict)


def growth_trend(per_day: float) -> str:
    if per_day < 1:
        return "slow"
    if per_day < 10:
        return "stable"
    if per_day < 100:
        return "growing"
    return "rapid"


def _records(result) -> list[dict]:
    if isinstance(result, dict):
        result = result.get("memories") or []
    return [r for r in result or [] if isinstance(r, dict)]


def _count(result) -> int:
    if isinstance(result, bool):
        return int(result)
    if isinstance(result, int):
        return result
    if isinstance(result, dict):
        for key in ("count", "total"):
            if isinstance(result.get(key), int):
                return result[key]
    return 0


class AnalyticsManager:
    def __init__(self, client: HelixClient):
        self.client = client

    async def _all_memories(self) -> list[dict]:
        return _records(await self.client.execute_query("getAllMemories", {}))

    async def storage_stats(self) -> StorageStats:
        memories = await self._all_memories()
        sizes = [(m.get("memory_id", ""), len((m.get("content") or "").encode())) for m in memories]
        total = sum(s for _, s in sizes)

        by_type: dict[str, int] = {}
        for m, (_, size) in zip(memories, sizes):
            key = m.get("memory_type") or "unknown"
            by_type[key] = by_type.get(key, 0) + size

        largest = sorted(sizes, key=lambda x: x[1], reverse=True)[:10]
        count = len(memories)
        return StorageStats(
            total_memories=count,
            total_size_bytes=total,
            total_size_mb=total / MB,
            total_size_gb=total / MB / 1024,
            size_by_type=by_type,
            avg_memory_size=total / count if count else 0.0,
            largest_memories=largest,
            vector_count=count,
            vector_storage_mb=count * EMBEDDING_DIM * 4 / MB,
            collected_at=now_iso(),
        )

    async def graph_stats(self) -> GraphStats:
        counts = {}
        for label, query in (("Memory", "countAllMemories"),
                             ("Entity", "countAllEntities"),
                             ("Concept", "countAllConcepts")):
            try:
                counts[label] = _count(await self.client.execute_query(query, {}))
            except StoreError as e:
                log.warning("%s failed: %s", query, e)
                counts[label] = 0
        return GraphStats(node_counts=counts, total_nodes=sum(counts.values()), collected_at=now_iso())

    async def growth_stats(self) -> GrowthStats:
        try:
            memories = await self._all_memories()
        except StoreError as e:
            log.warning("growth stats unavailable: %s", e)
            memories = []
        cutoff = utcnow() - timedelta(days=GROWTH_WINDOW_DAYS)
        recent = 0
        for m in memories:
            created = parse_datetime(m.get("created_at"))
            if created is not None and created >= cutoff:
                recent += 1
        older = len(memories) - recent

        per_day = recent / GROWTH_WINDOW_DAYS
        if older:
            rate = recent / older * 100
        else:
            rate = 100.0 if recent else 0.0
        return GrowthStats(
            memories_per_day=per_day,
            growth_rate_percent=rate,
            trend=growth_trend(per_day),
            collected_at=now_iso(),
        )

    async def category_breakdown(self) -> dict[str, int]:
        try:
            memories = await self._all_memories()
        except StoreError as e:
            log.warning("category breakdown unavailable: %s", e)
            return {}
        out: dict[str, int] = {}
        for m in memories:
            key = m.get("memory_type") or "unknown"
            out[key] = out.get(key, 0) + 1
        return out

    async def summary(self) -> AnalyticsSummary:
        return AnalyticsSummary(
            storage=await self.storage_stats(),
            graph=await self.graph_stats(),
            growth=await self.growth_stats(),
            category_breakdown=await self.category_breakdown(),
        )
