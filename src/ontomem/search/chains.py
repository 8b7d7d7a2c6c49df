"""Reasoning-chain search: vector seeds expanded depth-first along typed edges.

Direction follows the reasoning, not the stored edge: forward goes from a
premise to what it leads to, backward from a conclusion to its grounds.

  IMPLIES      A IMPLIES B      forward A -> B (implies_out)
  BECAUSE      A BECAUSE B      backward A -> B (because_out)
  SUPPORTS     A SUPPORTS B     forward A -> B (supports_out)
  REFUTES      A REFUTES B      forward A -> B (refutes_out)
  CONTRADICTS  symmetric; out edges count as forward
"""

import logging
from enum import Enum

from pydantic import BaseModel, Field

from ..errors import StoreError
from ..store.helix import HelixClient
from ..store.records import is_searchable, logical_connections, vector_hits
from ..types import RelationType
from .scoring import edge_confidence

log = logging.getLogger("ontomem")

# relation -> (forward key, backward key)
DIRECTION_KEYS: dict[RelationType, tuple[str, str]] = {
    RelationType.implies: ("implies_out", "implies_in"),
    RelationType.because: ("because_in", "because_out"),
    RelationType.supports: ("supports_out", "supports_in"),
    RelationType.refutes: ("refutes_out", "refutes_in"),
    RelationType.contradicts: ("contradicts_out", "contradicts_in"),
}


class ChainDirection(str, Enum):
    forward = "forward"
    backward = "backward"
    both = "both"

    @classmethod
    def from_str(cls, s: str | None) -> "ChainDirection":
        try:
            return cls((s or "both").strip().lower())
        except ValueError:
            return cls.both


class MemoryChainConfig(BaseModel):
    max_depth: int = 5
    direction: ChainDirection = ChainDirection.both
    relation_types: list[RelationType] = Field(default_factory=lambda: [
        RelationType.implies, RelationType.because, RelationType.contradicts,
    ])
    min_confidence: float = 0.5
    include_contradictions: bool = True

    @classmethod
    def causal_only(cls) -> "MemoryChainConfig":
        return cls(direction=ChainDirection.backward, relation_types=[RelationType.because],
                   include_contradictions=False)

    @classmethod
    def implications_only(cls) -> "MemoryChainConfig":
        return cls(direction=ChainDirection.forward, relation_types=[RelationType.implies],
                   include_contradictions=False)

    @classmethod
    def deep_context(cls) -> "MemoryChainConfig":
        return cls(
            max_depth=7,
            direction=ChainDirection.both,
            relation_types=[
                RelationType.implies, RelationType.because, RelationType.contradicts,
                RelationType.supports, RelationType.refutes,
            ],
            min_confidence=0.3,
        )

    @classmethod
    def preset(cls, name: str | None) -> "MemoryChainConfig":
        presets = {
            "causal": cls.causal_only,
            "causal_only": cls.causal_only,
            "implications": cls.implications_only,
            "implications_only": cls.implications_only,
            "deep": cls.deep_context,
            "deep_context": cls.deep_context,
        }
        factory = presets.get((name or "").strip().lower())
        return factory() if factory else cls()


class ChainNode(BaseModel):
    memory_id: str
    content: str = ""
    memory_type: str | None = None
    depth: int = 0
    relation_type: RelationType | None = None
    direction: str | None = None
    parent_id: str | None = None
    confidence: float = 1.0


class MemoryChain(BaseModel):
    root_id: str
    nodes: list[ChainNode] = Field(default_factory=list)
    total_depth: int = 0

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    def add_node(self, node: ChainNode) -> None:
        self.nodes.append(node)
        self.total_depth = max(self.total_depth, node.depth)


class ChainSearchResult(BaseModel):
    query: str
    chains: list[MemoryChain] = Field(default_factory=list)
    total_chains: int = 0
    total_memories: int = 0
    deepest_chain: int = 0
    memories: list[ChainNode] = Field(default_factory=list)

    @classmethod
    def build(cls, query: str, chains: list[MemoryChain]) -> "ChainSearchResult":
        seen: dict[str, ChainNode] = {}
        for chain in chains:
            for node in chain.nodes:
                seen.setdefault(node.memory_id, node)
        return cls(
            query=query,
            chains=chains,
            total_chains=len(chains),
            total_memories=len(seen),
            deepest_chain=max((c.total_depth for c in chains), default=0),
            memories=list(seen.values()),
        )

    def reasoning_trails(self) -> list[str]:
        trails = []
        for i, chain in enumerate(self.chains, 1):
            lines = [f"Chain {i} (depth {chain.total_depth}):"]
            for node in chain.nodes:
                arrow = f"--{node.relation_type.value}--> " if node.relation_type else ""
                lines.append(f"{'  ' * (node.depth + 1)}{arrow}{node.content}")
            trails.append("\n".join(lines))
        return trails


class ChainSearch:
    def __init__(self, client: HelixClient, config: MemoryChainConfig | None = None):
        self.client = client
        self.config = config or MemoryChainConfig()

    async def search(
        self,
        query: str,
        query_vector: list[float],
        user_id: str | None = None,
        limit: int = 5,
        config: MemoryChainConfig | None = None,
    ) -> ChainSearchResult:
        config = config or self.config
        seeds = await self.seeds(query_vector, user_id, limit)
        if not seeds:
            log.info("chain search %r: no seeds", query)
            return ChainSearchResult(query=query)

        chains = []
        for seed in seeds:
            chain = await self.build_chain(seed, user_id, config)
            if chain.node_count > 1:
                chains.append(chain)
        chains.sort(key=lambda c: (c.node_count, c.total_depth), reverse=True)
        result = ChainSearchResult.build(query, chains)
        log.info("chain search %r: %d chains, %d memories, max depth %d",
                 query, result.total_chains, result.total_memories, result.deepest_chain)
        return result

    async def seeds(self, query_vector: list[float], user_id: str | None, limit: int) -> list[dict]:
        try:
            raw = await self.client.execute_query("smartVectorSearchWithChunks", {
                "query_vector": query_vector,
                "limit": limit,
            })
        except StoreError as e:
            log.warning("chain seed search failed: %s", e)
            return []
        out = []
        for hit in vector_hits(raw):
            if user_id and hit.get("user_id") and hit["user_id"] != user_id:
                continue
            if is_searchable(hit):
                out.append(hit)
        return out[:limit]

    def _allowed(self, config: MemoryChainConfig) -> list[tuple[str, RelationType, str]]:
        """(connection key, relation, direction label) pairs to follow."""
        pairs = []
        for rtype in config.relation_types:
            if rtype == RelationType.contradicts and not config.include_contradictions:
                continue
            keys = DIRECTION_KEYS.get(rtype)
            if keys is None:
                continue
            forward_key, backward_key = keys
            if config.direction in (ChainDirection.forward, ChainDirection.both):
                pairs.append((forward_key, rtype, "forward"))
            if config.direction in (ChainDirection.backward, ChainDirection.both):
                pairs.append((backward_key, rtype, "backward"))
        return pairs

    async def build_chain(self, seed: dict, user_id: str | None,
                          config: MemoryChainConfig) -> MemoryChain:
        root_id = seed["memory_id"]
        chain = MemoryChain(root_id=root_id)
        chain.add_node(ChainNode(
            memory_id=root_id,
            content=seed.get("content", "") or "",
            memory_type=seed.get("memory_type") or None,
        ))
        visited = {root_id}
        await self._expand(chain, root_id, 1, user_id, config, self._allowed(config), visited)
        return chain

    async def _expand(
        self,
        chain: MemoryChain,
        node_id: str,
        depth: int,
        user_id: str | None,
        config: MemoryChainConfig,
        allowed: list[tuple[str, RelationType, str]],
        visited: set[str],
    ) -> None:
        if depth > config.max_depth or not allowed:
            return
        try:
            raw = await self.client.execute_query(
                "getMemoryLogicalConnections", {"memory_id": node_id},
            )
        except StoreError as e:
            log.debug("connections of %s unavailable: %s", node_id, e)
            return
        conns = logical_connections(raw)
        for key, rtype, direction in allowed:
            for rec in conns[key]:
                mid = rec.get("memory_id")
                if not mid or mid in visited:
                    continue
                if user_id and rec.get("user_id") and rec["user_id"] != user_id:
                    continue
                if not is_searchable(rec):
                    continue
                confidence = edge_confidence(rec)
                if confidence < config.min_confidence:
                    continue
                visited.add(mid)
                chain.add_node(ChainNode(
                    memory_id=mid,
                    content=rec.get("content", "") or "",
                    memory_type=rec.get("memory_type") or None,
                    depth=depth,
                    relation_type=rtype,
                    direction=direction,
                    parent_id=node_id,
                    confidence=confidence,
                ))
                await self._expand(chain, mid, depth + 1, user_id, config, allowed, visited)
