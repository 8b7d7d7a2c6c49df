import logging

from ..errors import StoreError
from ..graph.edges import EdgeCreator
from ..store.helix import HelixClient
from ..store.records import logical_connections

log = logging.getLogger("ontomem")


class RelationCopier:
    """Carries a superseded memory's outgoing reasoning edges over to its successor."""

    def __init__(self, client: HelixClient, edges: EdgeCreator):
        self.client = client
        self.edges = edges

    async def copy_outgoing(self, old_memory_id: str, new_internal_id: str) -> int:
        try:
            result = await self.client.execute_query(
                "getMemoryLogicalConnections", {"memory_id": old_memory_id},
            )
        except StoreError as e:
            log.warning("reading relations of %s failed: %s", old_memory_id, e)
            return 0

        conns = logical_connections(result)
        reasoning_id = f"copied_from_{old_memory_id}"
        copied = 0
        for rec in conns["implies_out"]:
            target = rec.get("id")
            if target and target != new_internal_id:
                if await self.edges.implies(new_internal_id, str(target),
                                            int(rec.get("probability", 80) or 80), reasoning_id):
                    copied += 1
        for rec in conns["because_out"]:
            target = rec.get("id")
            if target and target != new_internal_id:
                if await self.edges.because(new_internal_id, str(target),
                                            int(rec.get("strength", 80) or 80), reasoning_id):
                    copied += 1
        for rec in conns["relation_out"]:
            target = rec.get("id")
            if target and target != new_internal_id:
                if await self.edges.relation(
                    new_internal_id, str(target), "RELATES_TO",
                    int(rec.get("strength", 50) or 50),
                    {"copied_from": old_memory_id},
                ):
                    copied += 1
        if copied:
            log.info("copied %d relations from %s", copied, old_memory_id)
        return copied
