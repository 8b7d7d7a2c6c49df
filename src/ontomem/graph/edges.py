import json
import logging

from .._util import now_iso
from ..store.helix import HelixClient
from ..types import RelationType

log = logging.getLogger("ontomem")


class EdgeCreator:
    """Writes reasoning edges between memories, by internal id.

    A failed write is logged and counted; the memories are already stored so
    nothing is raised to the caller.
    """

    def __init__(self, client: HelixClient):
        self.client = client
        self.created = 0
        self.failed = 0

    async def _write(self, query: str, params: dict) -> bool:
        try:
            await self.client.execute_query(query, params)
        except Exception as e:
            self.failed += 1
            log.warning("%s %s -> %s failed: %s", query,
                        params.get("from_id", params.get("source_id", params.get("new_id"))),
                        params.get("to_id", params.get("target_id", params.get("old_id"))), e)
            return False
        self.created += 1
        return True

    async def implies(self, from_id: str, to_id: str, probability: int = 80,
                      reasoning_id: str = "") -> bool:
        return await self._write("addMemoryImplication", {
            "from_id": from_id,
            "to_id": to_id,
            "probability": probability,
            "reasoning_id": reasoning_id,
        })

    async def because(self, from_id: str, to_id: str, strength: int = 80,
                      reasoning_id: str = "") -> bool:
        return await self._write("addMemoryCausation", {
            "from_id": from_id,
            "to_id": to_id,
            "strength": strength,
            "reasoning_id": reasoning_id,
        })

    async def contradicts(self, from_id: str, to_id: str, confidence: int = 80,
                          resolution: str = "", resolved: bool = False,
                          strategy: str = "keep_both") -> bool:
        return await self._write("addMemoryContradiction", {
            "from_id": from_id,
            "to_id": to_id,
            "confidence": confidence,
            "resolution": resolution,
            "resolved": resolved,
            "resolution_strategy": strategy,
        })

    async def relation(self, source_id: str, target_id: str, relation_type: str,
                       strength: int = 50, metadata: dict | None = None) -> bool:
        return await self._write("addMemoryRelation", {
            "source_id": source_id,
            "target_id": target_id,
            "relation_type": relation_type,
            "strength": strength,
            "created_at": now_iso(),
            "metadata": json.dumps(metadata or {}),
        })

    async def supersedes(self, new_id: str, old_id: str, reason: str,
                         superseded_at: str, is_contradiction: bool = False) -> bool:
        return await self._write("addMemorySupersession", {
            "new_id": new_id,
            "old_id": old_id,
            "reason": reason,
            "superseded_at": superseded_at,
            "is_contradiction": is_contradiction,
        })

    async def create(self, relation_type: RelationType | str, from_id: str, to_id: str,
                     strength: int = 80, reasoning_id: str = "",
                     metadata: dict | None = None) -> bool:
        """Dispatch on relation type. Types without a dedicated query become relations."""
        rtype = RelationType.from_str(relation_type) if isinstance(relation_type, str) else relation_type
        if rtype == RelationType.implies:
            return await self.implies(from_id, to_id, strength, reasoning_id)
        if rtype == RelationType.because:
            return await self.because(from_id, to_id, strength, reasoning_id)
        if rtype == RelationType.contradicts:
            return await self.contradicts(from_id, to_id, strength)
        label = rtype.value if rtype is not None else str(relation_type).upper()
        return await self.relation(from_id, to_id, label, strength, metadata)

    def stats(self) -> dict:
        return {"created": self.created, "failed": self.failed}
