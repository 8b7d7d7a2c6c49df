"""Depth-aware retrieval: search, rebuild chunked memories, attach context."""

import logging
from enum import Enum

from pydantic import BaseModel, Field

from ._util import preview
from .errors import StoreError
from .graph.entities import EntityManager
from .search.modes import SearchMode, temporal_cutoff, to_search_config
from .search.traversal import SearchResult, SmartTraversal
from .store.helix import HelixClient

log = logging.getLogger("ontomem")


class RetrievalDepth(str, Enum):
    shallow = "shallow"
    medium = "medium"
    deep = "deep"

    @classmethod
    def from_str(cls, s: str | None) -> "RetrievalDepth":
        try:
            return cls((s or "medium").strip().lower())
        except ValueError:
            return cls.medium

    @property
    def mode(self) -> SearchMode:
        return {
            RetrievalDepth.shallow: SearchMode.recent,
            RetrievalDepth.medium: SearchMode.contextual,
            RetrievalDepth.deep: SearchMode.deep,
        }[self]

    @property
    def reasoning_depth(self) -> int:
        return 2 if self == RetrievalDepth.deep else 1


class ReasoningLink(BaseModel):
    from_memory_id: str
    to_memory_id: str
    relation_type: str
    strength: int = 50


class EntityRef(BaseModel):
    entity_id: str
    name: str
    entity_type: str


class RetrievalResult(BaseModel):
    memories: list[SearchResult] = Field(default_factory=list)
    chunks_reconstructed: int = 0
    context_memories: list[SearchResult] = Field(default_factory=list)
    reasoning_chains: list[ReasoningLink] = Field(default_factory=list)
    entities: list[EntityRef] = Field(default_factory=list)
    metadata: dict = Field(default_factory=dict)


class ChunkReconstructor:
    def __init__(self, client: HelixClient):
        self.client = client

    async def reconstruct(self, memory_id: str) -> tuple[str, int]:
        """Full text of a chunked memory and its chunk count.

        Returns ("", 0) when the memory has no chunks or the lookup fails,
        so callers keep the stored content.
        """
        try:
            result = await self.client.execute_query("getMemoryWithChunks", {"memory_id": memory_id})
        except StoreError as e:
            log.warning("chunks for %s unavailable: %s", memory_id, e)
            return "", 0
        if not isinstance(result, dict) or not result.get("has_chunks"):
            return "", 0

        chunks = [c for c in result.get("chunks") or [] if isinstance(c, dict)]
        chunks.sort(key=lambda c: int(c.get("position", 0) or 0))
        parts = [(c.get("text") or c.get("content") or "").strip() for c in chunks]
        text = " ".join(p for p in parts if p)
        if not text:
            return "", 0
        log.debug("reconstructed %d chunks for %s", len(chunks), memory_id)
        return text, len(chunks)


class ContextAssembler:
    def __init__(self, client: HelixClient, entities: EntityManager | None = None):
        self.client = client
        self.entities = entities or EntityManager(client)

    async def reasoning(self, memory_id: str, max_depth: int) -> list[ReasoningLink]:
        try:
            result = await self.client.execute_query("getMemoryReasoningRelations", {
                "memory_id": memory_id,
                "max_depth": max_depth,
            })
        except StoreError as e:
            log.debug("reasoning relations for %s unavailable: %s", memory_id, e)
            return []
        if isinstance(result, dict):
            result = result.get("relations") or []
        links = []
        for rec in result or []:
            if not isinstance(rec, dict) or not rec.get("from_id") or not rec.get("to_id"):
                continue
            links.append(ReasoningLink(
                from_memory_id=rec["from_id"],
                to_memory_id=rec["to_id"],
                relation_type=rec.get("relation_type", "") or "",
                strength=int(rec.get("strength", 50) or 0),
            ))
        return links

    async def entity_refs(self, memory_id: str) -> list[EntityRef]:
        return [
            EntityRef(entity_id=e.entity_id, name=e.name, entity_type=e.entity_type)
            for e in await self.entities.entities_for_memory(memory_id)
        ]


class RetrievalManager:
    def __init__(
        self,
        client: HelixClient,
        traversal: SmartTraversal,
        entities: EntityManager | None = None,
    ):
        self.client = client
        self.traversal = traversal
        self.reconstructor = ChunkReconstructor(client)
        self.assembler = ContextAssembler(client, entities)

    async def retrieve(
        self,
        query: str,
        query_vector: list[float],
        user_id: str | None = None,
        depth: RetrievalDepth | str = RetrievalDepth.medium,
        limit: int = 10,
        include_reasoning: bool = True,
        include_entities: bool = True,
    ) -> RetrievalResult:
        if isinstance(depth, str):
            depth = RetrievalDepth.from_str(depth)
        mode = depth.mode
        log.info("retrieving %r (depth=%s, limit=%d)", preview(query, 50), depth.value, limit)

        hits = await self.traversal.search(
            query,
            query_vector,
            user_id=user_id,
            config=to_search_config(mode, limit),
            temporal_cutoff=temporal_cutoff(mode),
        )
        hits = hits[:limit]

        reconstructed = 0
        for hit in hits:
            text, count = await self.reconstructor.reconstruct(hit.memory_id)
            if count:
                hit.content = text
                hit.metadata["chunk_count"] = count
                reconstructed += 1

        links: list[ReasoningLink] = []
        entity_refs: dict[str, EntityRef] = {}
        for hit in hits:
            if include_reasoning:
                links.extend(await self.assembler.reasoning(hit.memory_id, depth.reasoning_depth))
            if include_entities:
                for ref in await self.assembler.entity_refs(hit.memory_id):
                    entity_refs.setdefault(ref.entity_id, ref)

        primary = [h for h in hits if h.source == "vector"]
        context = [h for h in hits if h.source != "vector"]
        return RetrievalResult(
            memories=primary,
            chunks_reconstructed=reconstructed,
            context_memories=context,
            reasoning_chains=links,
            entities=list(entity_refs.values()),
            metadata={
                "query": query,
                "depth": depth.value,
                "mode": mode.value,
                "limit": limit,
                "total_results": len(hits),
            },
        )
