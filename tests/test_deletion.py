"""Tests for soft delete, restore, hard delete and orphan cleanup."""

import pytest

from conftest import vec
from ontomem.errors import AlreadyDeleted, CannotRestore, MemoryNotFound, QueryError
from ontomem.evolution import DeletionManager, DeletionStrategy
from ontomem.resolver import IdResolver


@pytest.fixture
def manager(fake_helix):
    return DeletionManager(fake_helix, IdResolver(fake_helix))


@pytest.fixture
def pair(fake_helix):
    """Two memories that contradict each other both ways."""
    fake_helix.seed_memory("A", "The meeting is at 3pm.", vector=vec(1, 0))
    fake_helix.seed_memory("B", "The meeting is at 5pm.", vector=vec(0.9, 0.1))
    fake_helix.add_edge("CONTRADICTS", "A", "B", confidence=70)
    fake_helix.add_edge("CONTRADICTS", "B", "A", confidence=70)
    return fake_helix


# ---------------------------------------------------------------------------
# soft delete
# ---------------------------------------------------------------------------

class TestSoftDelete:
    @pytest.mark.asyncio
    async def test_soft_delete_and_restore(self, manager, pair):
        result = await manager.delete("A", deleted_by="alice", reason="outdated")

        assert result.strategy == DeletionStrategy.soft
        assert (result.deleted_by, result.reason) == ("alice", "outdated")
        rec = pair.memories["A"]
        assert rec["is_deleted"] == 1
        # edges survive a soft delete
        assert len(pair.edges_of("CONTRADICTS")) == 2

        restored = await manager.undelete("A", restored_by="alice")
        assert restored.restored
        assert pair.memories["A"]["is_deleted"] == 0

    @pytest.mark.asyncio
    async def test_second_soft_delete_rejected(self, manager, pair):
        await manager.soft_delete("A")
        with pytest.raises(AlreadyDeleted) as exc:
            await manager.soft_delete("A")
        assert exc.value.memory_id == "A"
        assert pair.count("softDeleteMemory") == 1

    @pytest.mark.asyncio
    async def test_store_reports_already_deleted(self, manager, pair):
        pair.failures["softDeleteMemory"] = QueryError("memory A already deleted")
        with pytest.raises(AlreadyDeleted):
            await manager.soft_delete("A")

    @pytest.mark.asyncio
    async def test_restore_of_live_memory_rejected(self, manager, pair):
        with pytest.raises(CannotRestore):
            await manager.undelete("A")

    @pytest.mark.asyncio
    async def test_unknown_memory(self, manager, pair):
        with pytest.raises(MemoryNotFound):
            await manager.delete("ghost")

    def test_strategy_parsing(self):
        assert DeletionStrategy.from_str("HARD") == DeletionStrategy.hard
        assert DeletionStrategy.from_str("bogus") == DeletionStrategy.soft
        assert DeletionStrategy.from_str(None) == DeletionStrategy.soft


# ---------------------------------------------------------------------------
# hard delete
# ---------------------------------------------------------------------------

class TestHardDelete:
    @pytest.mark.asyncio
    async def test_cascade_removes_edges(self, manager, pair):
        result = await manager.delete("A", strategy="hard")

        # two CONTRADICTS edges plus the owning user edge
        assert result.edges_deleted == 3
        assert "A" not in pair.memories
        assert pair.edges == []

    @pytest.mark.asyncio
    async def test_hard_deleted_cannot_be_restored(self, manager, pair):
        await manager.hard_delete("A")
        with pytest.raises(CannotRestore):
            await manager.undelete("A")
        assert pair.count("restoreMemory") == 0

    @pytest.mark.asyncio
    async def test_without_cascade_edges_are_left_behind(self, manager, pair):
        result = await manager.hard_delete("A", cascade=False)

        assert result.edges_deleted == 0
        assert pair.count("deleteMemoryEdges") == 0
        assert len(pair.edges) == 2

    @pytest.mark.asyncio
    async def test_isolated_memory_skips_edge_delete(self, manager, fake_helix):
        fake_helix.seed_memory("lonely", "nothing points here")
        fake_helix.owns.clear()

        result = await manager.hard_delete("lonely")

        assert result.edges_deleted == 0
        assert fake_helix.count("deleteMemoryEdges") == 0


# ---------------------------------------------------------------------------
# orphan cleanup
# ---------------------------------------------------------------------------

class TestCleanup:
    @pytest.mark.asyncio
    async def test_dry_run_then_apply(self, manager, pair):
        await manager.hard_delete("A", cascade=False)
        pair.entities["orphan"] = {"entity_id": "orphan", "name": "Nobody"}

        preview = await manager.cleanup_orphans(dry_run=True)
        assert preview.dry_run
        assert preview.orphaned_entities == ["orphan"]
        assert len(preview.orphaned_edges) == 2
        assert len(pair.edges) == 2

        applied = await manager.cleanup_orphans(dry_run=False)
        assert (applied.entities_deleted, applied.edges_deleted) == (1, 2)
        assert pair.edges == []
        assert pair.entities == {}

    @pytest.mark.asyncio
    async def test_nothing_to_clean(self, manager, pair):
        stats = await manager.cleanup_orphans(dry_run=False)
        assert stats.orphaned_entities == stats.orphaned_edges == []
        assert pair.count("deleteEdgesBatch") == 0

    @pytest.mark.asyncio
    async def test_bare_list_responses(self, manager, pair, monkeypatch):
        monkeypatch.setattr(pair, "q_findOrphanedEntities", lambda: [{"entity_id": "e1"}, "e2"])
        monkeypatch.setattr(pair, "q_findOrphanedEdges", lambda: [{"edge_id": "x1"}, None])

        stats = await manager.cleanup_orphans(dry_run=True)

        assert stats.orphaned_entities == ["e1", "e2"]
        assert stats.orphaned_edges == ["x1"]


# ---------------------------------------------------------------------------
# through MemoryCore
# ---------------------------------------------------------------------------

class TestCoreDeletion:
    @pytest.mark.asyncio
    async def test_delete_invalidates_search_cache(self, core, pair):
        before = await core.search("meeting", mode="contextual", query_vector=vec(1, 0))
        assert "A" in {h.memory_id for h in before}

        await core.delete("A")
        after = await core.search("meeting", mode="contextual", query_vector=vec(1, 0))

        assert "A" not in {h.memory_id for h in after}
        assert pair.count("smartVectorSearchWithChunks") == 2

    @pytest.mark.asyncio
    async def test_undelete_makes_memory_searchable_again(self, core, pair):
        await core.delete("A")
        await core.undelete("A")
        hits = await core.search("meeting", mode="contextual", query_vector=vec(1, 0))
        assert "A" in {h.memory_id for h in hits}

    @pytest.mark.asyncio
    async def test_cleanup_defaults_to_dry_run(self, core, pair):
        stats = await core.cleanup()
        assert stats.dry_run
        assert pair.count("deleteEntitiesBatch") == 0
