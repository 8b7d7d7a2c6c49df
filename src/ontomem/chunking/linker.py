import logging
import time

from ..errors import StoreError
from ..events import (
    ChunkCreated,
    ChunkingComplete,
    EventBus,
    EventType,
    LinkCreated,
    LinkingComplete,
)
from ..store.helix import HelixClient

log = logging.getLogger("ontomem")


class ChunkLinkBuilder:
    """Collects ChunkCreated events per memory and writes the NEXT_CHUNK chain.

    The chain is written only once every chunk announced by `total_chunks`
    has been seen, so LinkingComplete can never precede a chunk creation.
    """

    def __init__(self, client: HelixClient, bus: EventBus):
        self.client = client
        self.bus = bus
        self._chunks: dict[str, list[ChunkCreated]] = {}
        self._expected: dict[str, int] = {}
        bus.subscribe(EventType.chunk_created, self.on_chunk_created)
        bus.subscribe(EventType.chunking_complete, self.on_chunking_complete)

    async def on_chunk_created(self, event: ChunkCreated) -> None:
        memory_id = event.parent_memory_id
        bucket = self._chunks.setdefault(memory_id, [])
        bucket.append(event)
        self._expected[memory_id] = event.total_chunks

        expected = self._expected[memory_id]
        if expected > 0 and len(bucket) >= expected:
            chunks = self._chunks.pop(memory_id)
            self._expected.pop(memory_id, None)
            await self._build_chain(memory_id, chunks, event.correlation_id)

    async def on_chunking_complete(self, event: ChunkingComplete) -> None:
        # a partially failed memory never reaches its expected count
        if not event.success and event.memory_id in self._chunks:
            dropped = len(self._chunks.pop(event.memory_id))
            self._expected.pop(event.memory_id, None)
            log.warning("dropping %d unlinked chunks of %s", dropped, event.memory_id)

    async def _build_chain(
        self, memory_id: str, chunks: list[ChunkCreated], correlation_id: str | None,
    ) -> None:
        started = time.monotonic()
        chunks.sort(key=lambda c: c.position)
        edges = 0
        errors = 0

        for prev, nxt in zip(chunks, chunks[1:]):
            if not prev.chunk_internal_id or not nxt.chunk_internal_id:
                errors += 1
                continue
            try:
                result = await self.client.execute_query("linkChunks", {
                    "from_chunk_id": prev.chunk_internal_id,
                    "to_chunk_id": nxt.chunk_internal_id,
                })
            except StoreError as e:
                log.warning("linking %s -> %s failed: %s", prev.chunk_id, nxt.chunk_id, e)
                errors += 1
                continue
            edges += 1
            edge_id = result.get("id") if isinstance(result, dict) else None
            await self.bus.emit(LinkCreated(
                from_chunk_id=prev.chunk_id,
                to_chunk_id=nxt.chunk_id,
                edge_id=str(edge_id) if edge_id else None,
                correlation_id=correlation_id,
            ))

        duration_ms = (time.monotonic() - started) * 1000
        log.info("linked %d chunks of %s (%d edges, %d errors)",
                 len(chunks), memory_id, edges, errors)
        await self.bus.emit(LinkingComplete(
            memory_id=memory_id,
            edges_created=edges,
            errors=errors,
            duration_ms=duration_ms,
            correlation_id=correlation_id,
        ))

    def stats(self) -> dict:
        return {
            "pending_memories": len(self._chunks),
            "total_chunks_tracked": sum(len(v) for v in self._chunks.values()),
        }
