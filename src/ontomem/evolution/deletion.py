"""Soft delete, restore, hard delete and orphan cleanup.

Soft-deleted memories keep their node and edges but drop out of default
searches. Hard deletion removes the node (and with cascade, every incident
edge first); it cannot be undone.
"""

import logging
from enum import Enum

from pydantic import BaseModel, Field

from .._util import now_iso
from ..errors import (
    AlreadyDeleted,
    CannotRestore,
    DeletionError,
    MemoryNotFound,
    NotFound,
    StoreError,
)
from ..resolver import IdResolver
from ..store.helix import HelixClient
from ..store.records import as_bool, deleted_count, is_deleted, records_under

log = logging.getLogger("ontomem")


class DeletionStrategy(str, Enum):
    soft = "soft"
    hard = "hard"

    @classmethod
    def from_str(cls, s: str | None) -> "DeletionStrategy":
        try:
            return cls((s or "soft").strip().lower())
        except ValueError:
            return cls.soft


class DeletionResult(BaseModel):
    memory_id: str
    strategy: DeletionStrategy
    success: bool = True
    edges_deleted: int = 0
    deleted_at: str = ""
    deleted_by: str = ""
    reason: str = ""


class RestoreResult(BaseModel):
    memory_id: str
    restored: bool
    restored_at: str = ""
    restored_by: str = ""


class CleanupStats(BaseModel):
    orphaned_entities: list[str] = Field(default_factory=list)
    orphaned_edges: list[str] = Field(default_factory=list)
    entities_deleted: int = 0
    edges_deleted: int = 0
    dry_run: bool = True


def _ids(records, *keys: str) -> list[str]:
    out = []
    for rec in records or []:
        if isinstance(rec, dict):
            for key in keys:
                if rec.get(key):
                    out.append(str(rec[key]))
                    break
        elif rec:
            out.append(str(rec))
    return out


class DeletionManager:
    def __init__(self, client: HelixClient, resolver: IdResolver):
        self.client = client
        self.resolver = resolver
        self._hard_deleted: set[str] = set()

    async def _load(self, memory_id: str) -> dict:
        try:
            result = await self.client.execute_query("getMemory", {"memory_id": memory_id})
        except NotFound:
            raise MemoryNotFound(memory_id)
        rec = result.get("memory") if isinstance(result, dict) else None
        if isinstance(rec, list):
            rec = rec[0] if rec else None
        if not rec:
            raise MemoryNotFound(memory_id)
        return rec

    async def soft_delete(self, memory_id: str, deleted_by: str = "system",
                          reason: str = "") -> DeletionResult:
        rec = await self._load(memory_id)
        if is_deleted(rec):
            raise AlreadyDeleted(memory_id)

        deleted_at = now_iso()
        try:
            result = await self.client.execute_query("softDeleteMemory", {
                "memory_id": memory_id,
                "deleted_by": deleted_by,
                "deleted_at": deleted_at,
                "reason": reason,
            })
        except StoreError as e:
            if "already deleted" in str(e).lower():
                raise AlreadyDeleted(memory_id) from e
            raise
        if result is not None and not as_bool(result):
            raise DeletionError(f"soft delete of {memory_id} was rejected")

        await self.resolver.invalidate(memory_id)
        log.info("soft-deleted %s by %s", memory_id, deleted_by)
        return DeletionResult(
            memory_id=memory_id,
            strategy=DeletionStrategy.soft,
            deleted_at=deleted_at,
            deleted_by=deleted_by,
            reason=reason,
        )

    async def undelete(self, memory_id: str, restored_by: str = "system") -> RestoreResult:
        if memory_id in self._hard_deleted:
            raise CannotRestore(memory_id)
        try:
            rec = await self._load(memory_id)
        except MemoryNotFound:
            raise CannotRestore(memory_id)
        if not is_deleted(rec):
            raise CannotRestore(memory_id, "not deleted")

        restored_at = now_iso()
        try:
            await self.client.execute_query("restoreMemory", {
                "memory_id": memory_id,
                "restored_by": restored_by,
                "restored_at": restored_at,
            })
        except StoreError as e:
            if "hard deleted" in str(e).lower():
                raise CannotRestore(memory_id) from e
            raise
        log.info("restored %s by %s", memory_id, restored_by)
        return RestoreResult(memory_id=memory_id, restored=True,
                             restored_at=restored_at, restored_by=restored_by)

    async def hard_delete(self, memory_id: str, cascade: bool = True) -> DeletionResult:
        await self._load(memory_id)

        edges = 0
        if cascade:
            count = await self.client.execute_query("getMemoryEdgeCount", {"memory_id": memory_id})
            expected = deleted_count(count)
            if expected:
                result = await self.client.execute_query("deleteMemoryEdges", {"memory_id": memory_id})
                edges = deleted_count(result)
                if edges != expected:
                    log.warning("deleting edges of %s: expected %d, removed %d",
                                memory_id, expected, edges)

        result = await self.client.execute_query("hardDeleteMemory", {"memory_id": memory_id})
        if not as_bool(result):
            raise DeletionError(f"hard delete of {memory_id} failed")

        self._hard_deleted.add(memory_id)
        await self.resolver.invalidate(memory_id)
        log.info("hard-deleted %s (%d edges)", memory_id, edges)
        return DeletionResult(
            memory_id=memory_id,
            strategy=DeletionStrategy.hard,
            edges_deleted=edges,
            deleted_at=now_iso(),
        )

    async def delete(
        self,
        memory_id: str,
        strategy: DeletionStrategy | str = DeletionStrategy.soft,
        deleted_by: str = "system",
        reason: str = "",
        cascade: bool = True,
    ) -> DeletionResult:
        if isinstance(strategy, str):
            strategy = DeletionStrategy.from_str(strategy)
        if strategy == DeletionStrategy.hard:
            return await self.hard_delete(memory_id, cascade)
        return await self.soft_delete(memory_id, deleted_by, reason)

    async def cleanup_orphans(self, dry_run: bool = True) -> CleanupStats:
        entities = await self.client.execute_query("findOrphanedEntities", {})
        edges = await self.client.execute_query("findOrphanedEdges", {})
        stats = CleanupStats(
            orphaned_entities=_ids(records_under(entities, "entities"), "entity_id", "id"),
            orphaned_edges=_ids(records_under(edges, "edges"), "id", "edge_id"),
            dry_run=dry_run,
        )
        if dry_run:
            log.info("cleanup dry run: %d orphaned entities, %d orphaned edges",
                     len(stats.orphaned_entities), len(stats.orphaned_edges))
            return stats

        if stats.orphaned_entities:
            result = await self.client.execute_query(
                "deleteEntitiesBatch", {"entity_ids": stats.orphaned_entities},
            )
            stats.entities_deleted = deleted_count(result)
        if stats.orphaned_edges:
            result = await self.client.execute_query(
                "deleteEdgesBatch", {"edge_ids": stats.orphaned_edges},
            )
            stats.edges_deleted = deleted_count(result)
        log.info("cleanup removed %d entities and %d edges",
                 stats.entities_deleted, stats.edges_deleted)
        return stats
