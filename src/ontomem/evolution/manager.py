"""Temporal evolution of memories: supersession, contradiction, enhancement."""

import logging

from pydantic import BaseModel

from .._util import now_iso
from ..graph.edges import EdgeCreator
from ..resolver import IdResolver
from ..store.helix import HelixClient
from .contradiction import ContradictionDetector
from .relations import RelationCopier

log = logging.getLogger("ontomem")


class EvolutionResult(BaseModel):
    operation: str
    memory_id: str
    target_memory_id: str | None = None
    edges_created: int = 0
    relations_copied: int = 0
    success: bool = True
    message: str = ""


class EvolutionManager:
    def __init__(
        self,
        client: HelixClient,
        resolver: IdResolver,
        edges: EdgeCreator | None = None,
        detector: ContradictionDetector | None = None,
    ):
        self.client = client
        self.resolver = resolver
        self.edges = edges or EdgeCreator(client)
        self.copier = RelationCopier(client, self.edges)
        self.detector = detector or ContradictionDetector()

    async def supersede(
        self,
        new_memory_id: str,
        old_memory_id: str,
        superseded_at: str | None = None,
        reason: str = "superseded",
        copy_relations: bool = True,
        old_content: str | None = None,
        new_content: str | None = None,
    ) -> EvolutionResult:
        """Close the old memory's validity at `superseded_at` and link new -> old.

        superseded_at should be the new memory's created_at so that
        old.valid_until matches it exactly.
        """
        superseded_at = superseded_at or now_iso()
        new_internal = await self.resolver.resolve(new_memory_id)
        old_internal = await self.resolver.resolve(old_memory_id)

        await self.client.execute_query("updateMemoryValidUntil", {
            "memory_id": old_memory_id,
            "valid_until": superseded_at,
        })
        await self.resolver.invalidate(old_memory_id)

        is_contradiction = False
        if old_content is not None and new_content is not None:
            is_contradiction = self.detector.is_contradiction(old_content, new_content)

        edges = int(await self.edges.supersedes(
            new_internal, old_internal, reason, superseded_at, is_contradiction,
        ))
        copied = 0
        if copy_relations:
            copied = await self.copier.copy_outgoing(old_memory_id, new_internal)

        log.info("%s supersedes %s at %s", new_memory_id, old_memory_id, superseded_at)
        return EvolutionResult(
            operation="supersede",
            memory_id=new_memory_id,
            target_memory_id=old_memory_id,
            edges_created=edges + copied,
            relations_copied=copied,
            message=reason,
        )

    async def contradict(
        self, memory_id: str, other_memory_id: str, confidence: int = 80,
        reason: str = "",
    ) -> EvolutionResult:
        """Two CONTRADICTS edges, one each way, same confidence. Both memories stay active."""
        a = await self.resolver.resolve(memory_id)
        b = await self.resolver.resolve(other_memory_id)
        created = 0
        for src, dst in ((a, b), (b, a)):
            if await self.edges.contradicts(src, dst, confidence, resolution=reason):
                created += 1
        if created < 2:
            log.warning("contradiction %s <-> %s: only %d of 2 edges written",
                        memory_id, other_memory_id, created)
        return EvolutionResult(
            operation="contradict",
            memory_id=memory_id,
            target_memory_id=other_memory_id,
            edges_created=created,
            success=created == 2,
            message=reason,
        )

    async def enhance(self, memory_id: str, content: str) -> EvolutionResult:
        await self.client.execute_query("updateMemoryContent", {
            "memory_id": memory_id,
            "content": content,
            "updated_at": now_iso(),
        })
        await self.resolver.invalidate(memory_id)
        log.info("enhanced %s in place", memory_id)
        return EvolutionResult(operation="enhance", memory_id=memory_id)

    async def update_metadata(
        self, memory_id: str, certainty: int | None = None, importance: int | None = None,
    ) -> EvolutionResult:
        internal = await self.resolver.resolve(memory_id)
        params: dict = {"id": internal, "updated_at": now_iso()}
        if certainty is not None:
            params["certainty"] = certainty
        if importance is not None:
            params["importance"] = importance
        await self.client.execute_query("updateMemoryById", params)
        return EvolutionResult(operation="update", memory_id=memory_id)
