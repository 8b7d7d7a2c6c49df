"""Graph integration of a memory: find neighbors, decide, write edges.

plan() is side-effect free so the write pipeline can decide before anything
is persisted. apply() assumes the memory already exists in the store.
"""

import logging

from pydantic import BaseModel, Field

from ..evolution.manager import EvolutionManager, EvolutionResult
from ..graph.edges import EdgeCreator
from ..resolver import IdResolver
from ..store.helix import HelixClient
from ..types import RelationType
from .decision import DecisionEngine, MemoryDecision, Operation, SimilarMemory
from .finder import SimilarMemoryFinder

log = logging.getLogger("ontomem")

RELATES_THRESHOLD = 0.75


class IntegrationConfig(BaseModel):
    max_similar: int = 5
    similarity_threshold: float = 0.7
    duplicate_threshold: float = 0.92
    relates_threshold: float = RELATES_THRESHOLD
    copy_relations: bool = True


class IntegrationResult(BaseModel):
    memory_id: str
    decision: MemoryDecision
    similar_count: int = 0
    edges_created: int = 0
    evolution: EvolutionResult | None = None
    errors: list[str] = Field(default_factory=list)


class Integrator:
    def __init__(
        self,
        client: HelixClient,
        resolver: IdResolver,
        engine: DecisionEngine,
        evolution: EvolutionManager,
        config: IntegrationConfig | None = None,
        edges: EdgeCreator | None = None,
    ):
        self.client = client
        self.resolver = resolver
        self.engine = engine
        self.evolution = evolution
        self.config = config or IntegrationConfig()
        self.edges = edges or evolution.edges
        self.finder = SimilarMemoryFinder(
            client, self.config.max_similar, self.config.similarity_threshold,
        )
        self.engine.duplicate_threshold = self.config.duplicate_threshold

    async def plan(
        self,
        content: str,
        vector: list[float],
        user_id: str,
        exclude_memory_id: str | None = None,
    ) -> tuple[list[SimilarMemory], MemoryDecision]:
        similar = await self.finder.find(vector, user_id, exclude_memory_id)
        decision = await self.engine.decide(content, similar, user_id)
        log.info("integration plan for %s: %s (%d) against %d similar",
                 exclude_memory_id or "new memory", decision.operation.value,
                 decision.confidence, len(similar))
        return similar, decision

    async def _internal_ids(self, memory_ids: list[str], similar: list[SimilarMemory]) -> dict[str, str]:
        known = {s.id: s.internal_id for s in similar if s.internal_id}
        resolved = await self.resolver.resolve_many([m for m in memory_ids if m not in known])
        return {**resolved, **known}

    async def apply(
        self,
        memory_id: str,
        content: str,
        created_at: str,
        decision: MemoryDecision,
        similar: list[SimilarMemory],
    ) -> IntegrationResult:
        result = IntegrationResult(
            memory_id=memory_id, decision=decision, similar_count=len(similar),
        )
        if decision.operation == Operation.NOOP:
            return result
        if decision.operation == Operation.UPDATE and decision.merged_content and decision.target_memory_id:
            result.evolution = await self.evolution.enhance(
                decision.target_memory_id, decision.merged_content,
            )
            return result

        new_internal = await self.resolver.resolve(memory_id)
        scores = {s.id: s.score for s in similar}
        linked: set[str] = set()
        candidates = [t for t, _ in decision.relates_to if t != memory_id]
        if not decision.from_llm:
            candidates += [s.id for s in similar if s.score >= self.config.relates_threshold]
        internals = await self._internal_ids(candidates, similar)

        for target_id, rtype in decision.relates_to:
            if target_id == memory_id:
                continue
            target_internal = internals.get(target_id)
            if target_internal is None:
                result.errors.append(f"{rtype} {target_id}: memory not found")
                continue
            strength = int(round(scores.get(target_id, 0.8) * 100))
            if await self.edges.create(rtype, new_internal, target_internal, strength,
                                       reasoning_id=f"integration_{memory_id}"):
                result.edges_created += 1
                linked.add(target_id)
            else:
                result.errors.append(f"{rtype} {target_id}: edge write failed")

        handled = {decision.target_memory_id} if decision.operation in (
            Operation.SUPERSEDE, Operation.CONTRADICT, Operation.DELETE,
        ) else set()
        if not decision.from_llm:
            for s in similar:
                if s.id in linked or s.id in handled or s.score < self.config.relates_threshold:
                    continue
                target_internal = internals.get(s.id)
                if target_internal is None:
                    result.errors.append(f"RELATES_TO {s.id}: memory not found")
                    continue
                if await self.edges.relation(
                    new_internal, target_internal, RelationType.relates_to.value,
                    int(round(s.score * 100)), {"similarity": round(s.score, 4)},
                ):
                    result.edges_created += 1

        target = decision.target_memory_id
        old_content = next((s.content for s in similar if s.id == target), None)
        if decision.operation in (Operation.SUPERSEDE, Operation.DELETE) and target:
            result.evolution = await self.evolution.supersede(
                memory_id,
                decision.supersedes_memory_id or target,
                superseded_at=created_at,
                reason=decision.reasoning or decision.operation.value.lower(),
                copy_relations=self.config.copy_relations,
                old_content=old_content,
                new_content=content,
            )
            result.edges_created += result.evolution.edges_created
        elif decision.operation == Operation.CONTRADICT and target:
            result.evolution = await self.evolution.contradict(
                memory_id, decision.contradicts_memory_id or target,
                decision.confidence, decision.reasoning,
            )
            result.edges_created += result.evolution.edges_created

        log.info("integrated %s: %s, %d edges", memory_id, decision.operation.value,
                 result.edges_created)
        return result

    async def integrate(
        self,
        memory_id: str,
        content: str,
        vector: list[float],
        user_id: str,
        created_at: str,
    ) -> IntegrationResult:
        """Plan and apply for a memory that is already stored."""
        similar, decision = await self.plan(content, vector, user_id, memory_id)
        return await self.apply(memory_id, content, created_at, decision, similar)
