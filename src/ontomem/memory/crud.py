import json
import logging

from .._util import now_iso, short_id
from ..errors import MissingInternalId, NotFound, OmcError, StoreError
from ..llm.embeddings import EmbeddingGenerator
from ..resolver import IdResolver, extract_internal_id
from ..store.helix import HelixClient
from ..types import Memory, MemoryType
from .users import UserLinker

log = logging.getLogger("ontomem")


def new_memory_id() -> str:
    return short_id("mem")


class MemoryCrud:
    def __init__(
        self,
        client: HelixClient,
        resolver: IdResolver,
        users: UserLinker,
        embedder: EmbeddingGenerator | None = None,
    ):
        self.client = client
        self.resolver = resolver
        self.users = users
        self.embedder = embedder

    async def add_memory(
        self,
        content: str,
        user_id: str,
        memory_type: str = MemoryType.fact.value,
        certainty: int = 80,
        importance: int = 50,
        context_tags: str = "",
        source: str = "user",
        metadata: dict | None = None,
        created_at: str | None = None,
        vector: list[float] | None = None,
        memory_id: str | None = None,
    ) -> Memory:
        """Write the memory node, its embedding, and the owning user edge."""
        memory_id = memory_id or new_memory_id()
        created_at = created_at or now_iso()
        mtype = (MemoryType.from_str(memory_type) or MemoryType.fact).value
        result = await self.client.execute_query("addMemory", {
            "memory_id": memory_id,
            "user_id": user_id,
            "content": content,
            "memory_type": mtype,
            "certainty": certainty,
            "importance": importance,
            "created_at": created_at,
            "updated_at": created_at,
            "valid_from": created_at,
            "context_tags": context_tags,
            "source": source,
            "metadata": json.dumps(metadata or {}),
        })
        internal_id = extract_internal_id(result)
        if not internal_id:
            log.error("addMemory for %s returned no internal id: %r", memory_id, result)
            raise MissingInternalId(memory_id)
        await self.resolver.remember(memory_id, internal_id)

        if vector is None and self.embedder is not None:
            try:
                vector = await self.embedder.generate(content)
            except OmcError as e:
                log.warning("embedding for %s failed: %s", memory_id, e)
        if vector is not None:
            await self.attach_embedding(internal_id, vector)

        await self.users.ensure_user(user_id)
        await self.users.link_memory_to_user(user_id, internal_id)

        log.info("stored memory %s (%s) for %s", memory_id, mtype, user_id)
        return Memory(
            memory_id=memory_id,
            content=content,
            memory_type=mtype,
            user_id=user_id,
            certainty=certainty,
            importance=importance,
            created_at=created_at,
            updated_at=created_at,
            valid_from=created_at,
            context_tags=context_tags,
            source=source,
            metadata=json.dumps(metadata or {}),
            internal_id=internal_id,
        )

    async def attach_embedding(self, internal_id: str, vector: list[float]) -> None:
        model = self.embedder.model_name if self.embedder is not None else "external"
        try:
            await self.client.execute_query("addMemoryEmbedding", {
                "memory_id": internal_id,
                "vector_data": vector,
                "embedding_model": model,
                "created_at": now_iso(),
            })
        except StoreError as e:
            log.warning("storing embedding for %s failed: %s", internal_id, e)

    async def get_memory(self, memory_id: str) -> Memory | None:
        try:
            result = await self.client.execute_query("getMemory", {"memory_id": memory_id})
        except NotFound:
            return None
        rec = result.get("memory") if isinstance(result, dict) else None
        if isinstance(rec, list):
            rec = rec[0] if rec else None
        if not rec:
            return None
        memory = Memory.from_record(rec)
        if memory.internal_id:
            await self.resolver.remember(memory.memory_id or memory_id, memory.internal_id)
        return memory

