"""Ontology-weighted search.

final = vector*wV + concept*wC + tag*wT + graph*wG + temporal*wTm, with
per-mode weights. Concept and tag signals come from keyword tables applied
to the query and from each memory's INSTANCE_OF / BELONGS_TO_CATEGORY
edges.
"""

import logging

from pydantic import BaseModel, Field

from ..errors import StoreError
from ..graph.ontology import contains_phrase
from ..store.helix import HelixClient
from ..store.records import is_searchable, logical_connections, vector_hits
from .scoring import (
    clamp01,
    neighbor_similarity,
    temporal_freshness,
    vector_score,
    within_window,
)

log = logging.getLogger("ontomem")

QUERY_CONCEPT_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("preference", "Preference"), ("like", "Preference"), ("love", "Preference"),
    ("enjoy", "Preference"), ("hate", "Preference"), ("dislike", "Preference"),
    ("skill", "Skill"), ("know", "Skill"), ("learn", "Skill"),
    ("expert", "Skill"), ("master", "Skill"),
    ("goal", "Goal"), ("want", "Goal"), ("plan", "Goal"),
    ("aim", "Goal"), ("objective", "Goal"),
    ("fact", "Fact"), ("remember", "Fact"), ("true", "Fact"), ("false", "Fact"),
    ("opinion", "Opinion"), ("think", "Opinion"), ("believe", "Opinion"), ("feel", "Opinion"),
    ("experience", "Experience"), ("did", "Experience"), ("happened", "Experience"),
    ("achievement", "Achievement"), ("completed", "Achievement"),
    ("finished", "Achievement"), ("succeeded", "Achievement"),
)

KNOWN_TAGS: tuple[str, ...] = (
    "python", "fastapi", "rust", "javascript", "typescript", "react",
    "django", "flask", "nodejs", "docker", "kubernetes", "aws", "gcp",
    "postgresql", "mongodb", "redis", "helixdb", "ollama", "openai",
    "async", "api", "backend", "frontend", "database", "graph",
    "work", "personal", "project", "home", "travel", "health",
    "finance", "learning", "career", "family",
    "ai", "ml", "memory", "llm", "embedding", "vector", "search",
    "programming", "coding", "development", "architecture",
)

ONTO_EDGE_WEIGHTS: tuple[tuple[str, str, float], ...] = (
    ("implies_out", "IMPLIES", 0.9),
    ("implies_in", "IMPLIES", 0.8),
    ("because_out", "BECAUSE", 0.95),
    ("because_in", "BECAUSE", 0.85),
    ("relation_out", "RELATES_TO", 0.7),
    ("relation_in", "RELATES_TO", 0.6),
)

EXACT_MATCH_CONFIDENCE = 0.8


class OntoSearchConfig(BaseModel):
    concept_weight: float = 0.3
    tag_weight: float = 0.15
    vector_weight: float = 0.35
    graph_weight: float = 0.1
    temporal_weight: float = 0.1
    max_concept_depth: int = 3
    include_related_concepts: bool = True
    temporal_hours: float | None = None
    temporal_decay_rate: float = 30.0
    min_concept_score: float = 0.1
    min_final_score: float = 0.2
    boost_exact_concept_match: float = 0.2
    boost_tag_match: float = 0.1
    max_concepts_per_query: int = 5
    max_tags_per_query: int = 10
    vector_top_k: int = 20
    graph_depth: int = 2

    @classmethod
    def from_mode(cls, mode: str) -> "OntoSearchConfig":
        mode = (mode or "").strip().lower()
        if mode == "recent":
            return cls(
                temporal_weight=0.4, vector_weight=0.3, concept_weight=0.2,
                tag_weight=0.05, graph_weight=0.05, temporal_hours=24.0,
                temporal_decay_rate=7.0, min_final_score=0.15,
            )
        if mode == "contextual":
            return cls(
                concept_weight=0.4, vector_weight=0.3, tag_weight=0.15,
                temporal_weight=0.1, graph_weight=0.05, boost_exact_concept_match=0.3,
            )
        if mode == "deep":
            return cls(
                graph_weight=0.3, concept_weight=0.25, vector_weight=0.25,
                temporal_weight=0.1, tag_weight=0.1, graph_depth=3, max_concept_depth=4,
            )
        if mode == "full":
            return cls(
                concept_weight=0.25, vector_weight=0.25, graph_weight=0.2,
                tag_weight=0.15, temporal_weight=0.15, graph_depth=2,
            )
        return cls()


class QueryConcept(BaseModel):
    concept_id: str
    confidence: float
    match_type: str = "exact"


class OntoSearchResult(BaseModel):
    memory_id: str
    content: str = ""
    memory_type: str = ""
    user_id: str = ""
    created_at: str = ""
    vector_score: float = 0.0
    concept_score: float = 0.0
    tag_score: float = 0.0
    graph_score: float = 0.0
    temporal_score: float = 0.0
    final_score: float = 0.0
    matched_concepts: list[QueryConcept] = Field(default_factory=list)
    matched_tags: list[str] = Field(default_factory=list)
    related_to: str | None = None
    edge_type: str | None = None
    depth: int = 0
    source: str = "vector"


def classify_query_concepts(query: str, config: OntoSearchConfig) -> list[QueryConcept]:
    lowered = query.lower()
    seen: set[str] = set()
    concepts = []
    for keyword, concept_id in QUERY_CONCEPT_KEYWORDS:
        if concept_id not in seen and contains_phrase(lowered, keyword):
            seen.add(concept_id)
            concepts.append(QueryConcept(concept_id=concept_id, confidence=EXACT_MATCH_CONFIDENCE))
    return concepts[: config.max_concepts_per_query]


def extract_query_tags(query: str, config: OntoSearchConfig) -> list[str]:
    lowered = query.lower()
    return [t for t in KNOWN_TAGS if contains_phrase(lowered, t)][: config.max_tags_per_query]


def concept_overlap(query_concepts: list[QueryConcept], memory_concepts: list[str],
                    config: OntoSearchConfig) -> float:
    if not query_concepts or not memory_concepts:
        return 0.0
    max_score = sum(c.confidence for c in query_concepts)
    if max_score <= 0:
        return 0.0
    total = sum(
        c.confidence + config.boost_exact_concept_match
        for c in query_concepts if c.concept_id in memory_concepts
    )
    return min(1.0, total / max_score)


def tag_overlap(query_tags: list[str], content: str, config: OntoSearchConfig) -> float:
    if not query_tags:
        return 0.0
    lowered = content.lower()
    matches = sum(1 for t in query_tags if contains_phrase(lowered, t))
    return min(1.0, matches / len(query_tags) + config.boost_tag_match)


def final_score(r: OntoSearchResult, config: OntoSearchConfig) -> float:
    return (
        r.vector_score * config.vector_weight
        + r.concept_score * config.concept_weight
        + r.tag_score * config.tag_weight
        + r.graph_score * config.graph_weight
        + r.temporal_score * config.temporal_weight
    )


def rank_results(results: list[OntoSearchResult], config: OntoSearchConfig) -> list[OntoSearchResult]:
    best: dict[str, OntoSearchResult] = {}
    for r in results:
        r.final_score = final_score(r, config)
        current = best.get(r.memory_id)
        if current is None or r.final_score > current.final_score:
            best[r.memory_id] = r
    ranked = [r for r in best.values() if r.final_score >= config.min_final_score]
    ranked.sort(key=lambda r: r.final_score, reverse=True)
    return ranked


class OntoSearch:
    def __init__(self, client: HelixClient):
        self.client = client

    async def search(
        self,
        query: str,
        query_vector: list[float],
        user_id: str | None = None,
        mode: str = "contextual",
        config: OntoSearchConfig | None = None,
        limit: int | None = None,
    ) -> list[OntoSearchResult]:
        config = config or OntoSearchConfig.from_mode(mode)
        query_concepts = classify_query_concepts(query, config)
        query_tags = extract_query_tags(query, config)

        results = await self.vector_phase(query_vector, user_id, config)
        for r in results:
            memory_concepts = await self.memory_concepts(r.memory_id)
            r.concept_score = concept_overlap(query_concepts, memory_concepts, config)
            r.matched_concepts = [c for c in query_concepts if c.concept_id in memory_concepts]
            r.tag_score = tag_overlap(query_tags, r.content, config)
            r.matched_tags = [t for t in query_tags if contains_phrase(r.content.lower(), t)]

        if config.graph_depth > 0 and results:
            results = results + await self.graph_phase(results, query_vector, user_id, config)

        ranked = rank_results(results, config)
        log.info("onto search %r: %d concepts, %d tags, %d results",
                 query, len(query_concepts), len(query_tags), len(ranked))
        return ranked[:limit] if limit else ranked

    async def vector_phase(self, query_vector: list[float], user_id: str | None,
                           config: OntoSearchConfig) -> list[OntoSearchResult]:
        try:
            raw = await self.client.execute_query("smartVectorSearchWithChunks", {
                "query_vector": query_vector,
                "limit": config.vector_top_k,
            })
        except StoreError as e:
            log.warning("vector search failed: %s", e)
            return []
        out = []
        for hit in vector_hits(raw):
            if user_id and hit.get("user_id") and hit["user_id"] != user_id:
                continue
            if not is_searchable(hit):
                continue
            created_at = hit.get("created_at", "") or ""
            if not within_window(created_at, config.temporal_hours):
                continue
            out.append(OntoSearchResult(
                memory_id=hit["memory_id"],
                content=hit.get("content", "") or "",
                memory_type=hit.get("memory_type", "") or "",
                user_id=hit.get("user_id", "") or "",
                created_at=created_at,
                vector_score=vector_score(query_vector, hit),
                temporal_score=temporal_freshness(created_at, config.temporal_decay_rate),
            ))
        return out

    async def memory_concepts(self, memory_id: str) -> list[str]:
        try:
            raw = await self.client.execute_query("getMemoryConcepts", {"memory_id": memory_id})
        except StoreError as e:
            log.debug("concepts for %s unavailable: %s", memory_id, e)
            return []
        data = raw if isinstance(raw, dict) else {}
        ids = []
        for key in ("instance_of", "belongs_to"):
            for rec in data.get(key) or []:
                if isinstance(rec, dict) and rec.get("concept_id"):
                    ids.append(rec["concept_id"])
        return ids

    async def graph_phase(
        self,
        seeds: list[OntoSearchResult],
        query_vector: list[float],
        user_id: str | None,
        config: OntoSearchConfig,
    ) -> list[OntoSearchResult]:
        visited = {s.memory_id for s in seeds}
        found: list[OntoSearchResult] = []
        frontier: list[tuple[OntoSearchResult, float]] = [(s, 1.0) for s in seeds]
        for depth in range(1, config.graph_depth + 1):
            next_frontier = []
            for parent, parent_weight in frontier:
                try:
                    raw = await self.client.execute_query(
                        "getMemoryLogicalConnections", {"memory_id": parent.memory_id},
                    )
                except StoreError as e:
                    log.debug("expanding %s failed: %s", parent.memory_id, e)
                    continue
                conns = logical_connections(raw)
                for key, edge_type, weight in ONTO_EDGE_WEIGHTS:
                    for rec in conns[key]:
                        mid = rec.get("memory_id")
                        if not mid or mid in visited:
                            continue
                        visited.add(mid)
                        if user_id and rec.get("user_id") and rec["user_id"] != user_id:
                            continue
                        if not is_searchable(rec):
                            continue
                        created_at = rec.get("created_at", "") or ""
                        g = clamp01(weight * parent_weight)
                        node = OntoSearchResult(
                            memory_id=mid,
                            content=rec.get("content", "") or "",
                            memory_type=rec.get("memory_type", "") or "",
                            user_id=rec.get("user_id", "") or "",
                            created_at=created_at,
                            vector_score=neighbor_similarity(query_vector, rec),
                            graph_score=g,
                            temporal_score=temporal_freshness(created_at, config.temporal_decay_rate),
                            related_to=parent.memory_id,
                            edge_type=edge_type,
                            depth=depth,
                            source="graph",
                        )
                        found.append(node)
                        next_frontier.append((node, g))
            if not next_frontier:
                break
            frontier = next_frontier
        return found
