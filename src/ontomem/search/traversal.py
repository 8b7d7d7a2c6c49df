"""Two-phase retrieval: vector seeds, then graph expansion over reasoning edges.

Phase 1 scores each vector hit as 0.7 * similarity + 0.3 * freshness.
Phase 2 walks typed edges breadth-first from every seed, concurrently per
seed, scoring neighbors as 0.3 * similarity + 0.5 * (edge weight * parent
score) + 0.2 * freshness. Phase 3 keeps the best score per memory, drops
anything under min_combined_score and sorts.
"""

import asyncio
import logging
import time
from datetime import datetime

from pydantic import BaseModel, Field

from ..errors import StoreError
from ..store.cache import LruTtlCache, make_key
from ..store.helix import HelixClient
from ..store.records import is_searchable, logical_connections, vector_hits
from .scoring import (
    before_cutoff,
    graph_combined,
    graph_score,
    neighbor_similarity,
    temporal_freshness,
    vector_combined,
    vector_score,
)

log = logging.getLogger("ontomem")

DEFAULT_DECAY_DAYS = 30.0

# (connection key, edge type, weight)
EDGE_WEIGHTS: tuple[tuple[str, str, float], ...] = (
    ("implies_out", "IMPLIES", 0.9),
    ("implies_in", "IMPLIES", 0.8),
    ("because_out", "BECAUSE", 0.95),
    ("because_in", "BECAUSE", 0.85),
    ("supports_out", "SUPPORTS", 0.8),
    ("supports_in", "SUPPORTS", 0.7),
    ("contradicts_out", "CONTRADICTS", 0.6),
    ("contradicts_in", "CONTRADICTS", 0.6),
    ("refutes_out", "REFUTES", 0.5),
    ("refutes_in", "REFUTES", 0.5),
    ("relation_out", "RELATES_TO", 0.7),
    ("relation_in", "RELATES_TO", 0.6),
)


class SearchConfig(BaseModel):
    vector_top_k: int = 10
    graph_depth: int = 2
    min_vector_score: float = 0.5
    min_combined_score: float = 0.3
    edge_types: list[str] | None = None
    temporal_decay_days: float = DEFAULT_DECAY_DAYS


class SearchResult(BaseModel):
    memory_id: str
    content: str = ""
    memory_type: str = ""
    user_id: str = ""
    created_at: str = ""
    internal_id: str | None = None
    vector_score: float = 0.0
    graph_score: float = 0.0
    temporal_score: float = 0.0
    combined_score: float = 0.0
    depth: int = 0
    source: str = "vector"
    edge_type: str | None = None
    parent_id: str | None = None
    metadata: dict = Field(default_factory=dict)


class TraversalStats(BaseModel):
    searches: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    cache_hit_rate: float = 0.0
    cache_size: int = 0
    phase1_ms: float = 0.0
    phase2_ms: float = 0.0
    phase3_ms: float = 0.0
    total_ms: float = 0.0


def _owned_by(rec: dict, user_id: str | None) -> bool:
    if not user_id:
        return True
    owner = rec.get("user_id")
    return not owner or owner == user_id


def rank_and_filter(results: list[SearchResult], min_combined: float) -> list[SearchResult]:
    best: dict[str, SearchResult] = {}
    for r in results:
        current = best.get(r.memory_id)
        if current is None or r.combined_score > current.combined_score:
            best[r.memory_id] = r
    ranked = [r for r in best.values() if r.combined_score >= min_combined]
    ranked.sort(key=lambda r: r.combined_score, reverse=True)
    return ranked


class SmartTraversal:
    def __init__(self, client: HelixClient, cache_size: int = 100, cache_ttl: float = 300.0):
        self.client = client
        self._cache = LruTtlCache(cache_size, cache_ttl)
        self._lock = asyncio.Lock()
        self._stats = TraversalStats()

    async def search(
        self,
        query: str,
        query_vector: list[float],
        user_id: str | None = None,
        config: SearchConfig | None = None,
        temporal_cutoff: datetime | None = None,
    ) -> list[SearchResult]:
        config = config or SearchConfig()
        cutoff_key = temporal_cutoff.strftime("%Y-%m-%dT%H:%M") if temporal_cutoff else None
        key = make_key(list(query_vector), user_id, config.model_dump_json(), cutoff_key)

        async with self._lock:
            cached = self._cache.get(key)
        self._stats.searches += 1
        if cached is not None:
            self._stats.cache_hits += 1
            self._update_rate()
            log.debug("traversal cache hit for %r", query)
            return [r.model_copy() for r in cached]
        self._stats.cache_misses += 1
        self._update_rate()

        started = time.monotonic()
        seeds = await self.vector_phase(query_vector, user_id, config, temporal_cutoff)
        phase1 = time.monotonic()

        expanded: list[SearchResult] = []
        if seeds and config.graph_depth > 0:
            expanded = await self.graph_phase(seeds, query_vector, user_id, config, temporal_cutoff)
        phase2 = time.monotonic()

        ranked = rank_and_filter(seeds + expanded, config.min_combined_score)
        done = time.monotonic()

        self._stats.phase1_ms = (phase1 - started) * 1000
        self._stats.phase2_ms = (phase2 - phase1) * 1000
        self._stats.phase3_ms = (done - phase2) * 1000
        self._stats.total_ms = (done - started) * 1000

        async with self._lock:
            self._cache.put(key, ranked)
            self._stats.cache_size = len(self._cache)
        log.info("smart traversal %r: %d seeds, %d expanded, %d ranked in %.0fms",
                 query, len(seeds), len(expanded), len(ranked), self._stats.total_ms)
        return [r.model_copy() for r in ranked]

    async def vector_phase(
        self,
        query_vector: list[float],
        user_id: str | None,
        config: SearchConfig,
        temporal_cutoff: datetime | None = None,
    ) -> list[SearchResult]:
        try:
            result = await self.client.execute_query("smartVectorSearchWithChunks", {
                "query_vector": query_vector,
                "limit": config.vector_top_k,
            })
        except StoreError as e:
            log.warning("vector search failed: %s", e)
            return []

        seeds = []
        for hit in vector_hits(result):
            if not _owned_by(hit, user_id) or not is_searchable(hit):
                continue
            created_at = hit.get("created_at", "") or ""
            if before_cutoff(created_at, temporal_cutoff):
                continue
            v = vector_score(query_vector, hit)
            if v < config.min_vector_score:
                continue
            t = temporal_freshness(created_at, config.temporal_decay_days)
            seeds.append(SearchResult(
                memory_id=hit["memory_id"],
                content=hit.get("content", "") or "",
                memory_type=hit.get("memory_type", "") or "",
                user_id=hit.get("user_id", "") or "",
                created_at=created_at,
                internal_id=str(hit["id"]) if hit.get("id") else None,
                vector_score=v,
                temporal_score=t,
                combined_score=vector_combined(v, t),
            ))
        return seeds

    async def graph_phase(
        self,
        seeds: list[SearchResult],
        query_vector: list[float],
        user_id: str | None,
        config: SearchConfig,
        temporal_cutoff: datetime | None = None,
    ) -> list[SearchResult]:
        visited = {s.memory_id for s in seeds}
        per_seed = await asyncio.gather(*(
            self._expand(seed, query_vector, user_id, config, temporal_cutoff, visited)
            for seed in seeds
        ))
        return [r for group in per_seed for r in group]

    async def _expand(
        self,
        seed: SearchResult,
        query_vector: list[float],
        user_id: str | None,
        config: SearchConfig,
        temporal_cutoff: datetime | None,
        visited: set[str],
    ) -> list[SearchResult]:
        allowed = {t.upper() for t in config.edge_types} if config.edge_types else None
        found: list[SearchResult] = []
        frontier = [seed]
        for depth in range(1, config.graph_depth + 1):
            next_frontier = []
            for parent in frontier:
                try:
                    raw = await self.client.execute_query(
                        "getMemoryLogicalConnections", {"memory_id": parent.memory_id},
                    )
                except StoreError as e:
                    log.debug("expanding %s failed: %s", parent.memory_id, e)
                    continue
                conns = logical_connections(raw)
                for key, edge_type, weight in EDGE_WEIGHTS:
                    if allowed is not None and edge_type not in allowed:
                        continue
                    for rec in conns[key]:
                        mid = rec.get("memory_id")
                        # check-and-add with no await in between
                        if not mid or mid in visited:
                            continue
                        visited.add(mid)
                        if not _owned_by(rec, user_id) or not is_searchable(rec):
                            continue
                        created_at = rec.get("created_at", "") or ""
                        if before_cutoff(created_at, temporal_cutoff):
                            continue
                        s = neighbor_similarity(query_vector, rec)
                        g = graph_score(weight, parent.combined_score)
                        t = temporal_freshness(created_at, config.temporal_decay_days)
                        node = SearchResult(
                            memory_id=mid,
                            content=rec.get("content", "") or "",
                            memory_type=rec.get("memory_type", "") or "",
                            user_id=rec.get("user_id", "") or "",
                            created_at=created_at,
                            internal_id=str(rec["id"]) if rec.get("id") else None,
                            vector_score=s,
                            graph_score=g,
                            temporal_score=t,
                            combined_score=graph_combined(s, g, t),
                            depth=depth,
                            source="graph",
                            edge_type=edge_type,
                            parent_id=parent.memory_id,
                        )
                        found.append(node)
                        next_frontier.append(node)
            if not next_frontier:
                break
            frontier = next_frontier
        return found

    def _update_rate(self) -> None:
        total = self._stats.cache_hits + self._stats.cache_misses
        self._stats.cache_hit_rate = self._stats.cache_hits / total if total else 0.0

    async def clear_cache(self) -> None:
        async with self._lock:
            self._cache.clear()
            self._stats.cache_size = 0

    def get_stats(self) -> TraversalStats:
        return self._stats.model_copy()
