import asyncio
import logging
import time

from pydantic import BaseModel, Field

from .._util import now_iso
from ..errors import OmcError
from ..events import (
    ChunkCreated,
    ChunkingComplete,
    ChunkingFailed,
    ChunkingStarted,
    EventBus,
    EventType,
    LinkingComplete,
)
from ..llm.embeddings import EmbeddingGenerator
from ..resolver import IdResolver
from ..store.helix import HelixClient
from ..types import TextChunk
from .splitter import ChunkingConfig, create_splitter

log = logging.getLogger("ontomem")


class ChunkingResult(BaseModel):
    memory_id: str
    chunks_created: int = 0
    links_created: int = 0
    duration_ms: float = 0.0
    success: bool = True
    skipped: bool = False
    errors: list[str] = Field(default_factory=list)


def chunk_id_for(memory_id: str, position: int) -> str:
    return f"{memory_id}_chunk_{position}"


class ChunkingService:
    def __init__(
        self,
        client: HelixClient,
        resolver: IdResolver,
        bus: EventBus,
        config: ChunkingConfig | None = None,
        embedder: EmbeddingGenerator | None = None,
    ):
        self.client = client
        self.resolver = resolver
        self.bus = bus
        self.config = config or ChunkingConfig()
        self.embedder = embedder
        self.splitter = create_splitter(self.config)
        self._linked: dict[str, int] = {}
        bus.subscribe(EventType.linking_complete, self._on_linking_complete)

    async def _on_linking_complete(self, event: LinkingComplete) -> None:
        self._linked[event.memory_id] = event.edges_created

    def needs_chunking(self, content: str) -> bool:
        return self.config.needs_chunking(len(content))

    async def process_memory(
        self,
        memory_id: str,
        content: str,
        user_id: str,
        internal_id: str | None = None,
        correlation_id: str | None = None,
    ) -> ChunkingResult:
        if not self.needs_chunking(content):
            return ChunkingResult(memory_id=memory_id, skipped=True)

        started = time.monotonic()
        try:
            parent_internal = internal_id or await self.resolver.resolve(memory_id)
            chunks = self.splitter.split(content)
        except OmcError as e:
            log.error("chunking %s failed: %s", memory_id, e)
            await self.bus.emit(ChunkingFailed(
                memory_id=memory_id, error=str(e), stage="chunking_pipeline",
                correlation_id=correlation_id,
            ))
            raise

        total = len(chunks)
        await self.bus.emit(ChunkingStarted(
            memory_id=memory_id,
            estimated_chunks=total,
            strategy=self.splitter.name,
            correlation_id=correlation_id,
        ))

        outcomes = await asyncio.gather(
            *(
                self._create_chunk(memory_id, parent_internal, pos, chunk, total, correlation_id)
                for pos, chunk in enumerate(chunks)
            ),
            return_exceptions=True,
        )

        created = 0
        errors: list[str] = []
        for pos, outcome in enumerate(outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                log.warning("chunk %d of %s failed: %s", pos, memory_id, outcome)
                errors.append(f"chunk {pos}: {outcome}")
            else:
                created += 1

        links = self._linked.pop(memory_id, 0)
        duration_ms = (time.monotonic() - started) * 1000
        success = not errors
        await self.bus.emit(ChunkingComplete(
            memory_id=memory_id,
            chunks_created=created,
            links_created=links,
            duration_ms=duration_ms,
            success=success,
            correlation_id=correlation_id,
        ))
        log.info("chunked %s: %d/%d chunks, %d links in %.0fms",
                 memory_id, created, total, links, duration_ms)
        return ChunkingResult(
            memory_id=memory_id,
            chunks_created=created,
            links_created=links,
            duration_ms=duration_ms,
            success=success,
            errors=errors,
        )

    async def _create_chunk(
        self,
        memory_id: str,
        parent_internal: str,
        position: int,
        chunk: TextChunk,
        total: int,
        correlation_id: str | None,
    ) -> str:
        chunk_id = chunk_id_for(memory_id, position)
        result = await self.client.execute_query("addMemoryChunk", {
            "chunk_id": chunk_id,
            "parent_id": parent_internal,
            "position": position,
            "content": chunk.text,
            "token_count": chunk.token_count,
            "created_at": now_iso(),
        })
        if isinstance(result, dict) and isinstance(result.get("chunk"), dict):
            result = result["chunk"]
        chunk_internal = str(result.get("id", "")) if isinstance(result, dict) else ""

        if self.embedder is not None and chunk_internal:
            try:
                vector = await self.embedder.generate(chunk.text)
                await self.client.execute_query("addChunkEmbedding", {
                    "chunk_id": chunk_internal,
                    "vector_data": vector,
                    "embedding_model": self.embedder.model_name,
                    "created_at": now_iso(),
                })
            except OmcError as e:
                log.warning("embedding for %s failed: %s", chunk_id, e)

        await self.bus.emit(ChunkCreated(
            chunk_id=chunk_id,
            chunk_internal_id=chunk_internal,
            parent_memory_id=memory_id,
            parent_internal_id=parent_internal,
            position=position,
            content=chunk.text,
            token_count=chunk.token_count,
            total_chunks=total,
            correlation_id=correlation_id,
        ))
        return chunk_internal
