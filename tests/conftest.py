"""Shared fixtures for the ontomem test suite.

FakeHelix answers the named queries the library sends to HelixDB from plain
dicts, so the write pipeline, search and deletion paths run end to end
without a server. Embeddings come from a word-hashing provider unless a test
pins exact vectors for its texts.
"""

import os
import re
import zlib
from datetime import datetime, timezone

import pytest

# No real endpoints or keys in tests
os.environ["HELIX_HOST"] = "localhost"
os.environ["HELIX_PORT"] = "6969"
os.environ["HELIX_LLM_PROVIDER"] = "ollama"
os.environ["HELIX_LLM_API_KEY"] = ""
os.environ["HELIX_EMBEDDING_PROVIDER"] = "ollama"
os.environ["HELIX_EMBEDDING_API_KEY"] = ""
os.environ["HELIX_DEFAULT_USER"] = "default"
os.environ["ONTOMEM_LOG_LEVEL"] = "WARNING"

from ontomem.errors import LlmError, NotFound, QueryError  # noqa: E402
from ontomem.llm.embeddings import EmbeddingGenerator, EmbeddingProvider  # noqa: E402
from ontomem.llm.providers import LlmMetadata, LlmProvider  # noqa: E402

DIM = 16

BASE_CONCEPTS = [
    ("Thing", None, 0),
    ("Preference", "Thing", 1),
    ("Skill", "Thing", 1),
    ("Goal", "Thing", 1),
    ("Fact", "Thing", 1),
    ("Opinion", "Thing", 1),
    ("Experience", "Thing", 1),
    ("Achievement", "Thing", 1),
    ("Action", "Thing", 1),
    ("ProgrammingSkill", "Skill", 2),
]

# reasoning edge label -> logical connection key prefix
LOGICAL_PREFIX = {
    "IMPLIES": "implies",
    "BECAUSE": "because",
    "CONTRADICTS": "contradicts",
    "RELATES_TO": "relation",
}


def vec(*head: float) -> list[float]:
    """A DIM-wide vector starting with `head`, zero padded."""
    return [float(x) for x in head] + [0.0] * (DIM - len(head))


def iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Fake store
# ---------------------------------------------------------------------------

class FakeHelix:
    """In-memory stand-in for HelixClient.

    Memories are keyed by external memory_id and carry an internal `id`
    ("n1", "n2", ...). Queries that take internal ids (edges, links,
    embeddings) resolve them the way the real store does.
    """

    base_url = "http://localhost:6969"

    def __init__(self):
        self.memories: dict[str, dict] = {}
        self.by_internal: dict[str, str] = {}
        self.vectors: dict[str, list[float]] = {}
        self.users: dict[str, dict] = {}
        self.owns: list[tuple[str, str]] = []
        self.chunks: dict[str, dict] = {}
        self.chunk_vectors: dict[str, list[float]] = {}
        self.chunk_links: list[tuple[str, str]] = []
        self.edges: list[dict] = []
        self.entities: dict[str, dict] = {}
        self.entity_links: list[dict] = []
        self.concepts: dict[str, dict] = {}
        self.concept_links: list[dict] = []
        self.contexts: dict[str, dict] = {}
        self.context_links: list[dict] = []
        self.calls: list[tuple[str, dict]] = []
        self.failures: dict[str, Exception] = {}
        self.healthy = True
        self._seq = 0

    def _next(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}{self._seq}"

    # -- test helpers --------------------------------------------------------

    def count(self, query_name: str) -> int:
        return sum(1 for name, _ in self.calls if name == query_name)

    def edges_of(self, label: str) -> list[dict]:
        return [e for e in self.edges if e["label"] == label]

    def internal(self, memory_id: str) -> str:
        return self.memories[memory_id]["id"]

    def seed_memory(self, memory_id: str, content: str, user_id: str = "default",
                    vector: list[float] | None = None, memory_type: str = "fact",
                    created_at: str | None = None, **extra) -> dict:
        created_at = created_at or iso(datetime.now(timezone.utc))
        rec = {
            "id": self._next("n"),
            "memory_id": memory_id,
            "user_id": user_id,
            "content": content,
            "memory_type": memory_type,
            "certainty": 80,
            "importance": 50,
            "created_at": created_at,
            "updated_at": created_at,
            "valid_from": created_at,
            "valid_until": None,
            "context_tags": "",
            "source": "user",
            "metadata": "{}",
            "is_deleted": 0,
            "deleted_at": None,
            "deleted_by": None,
        }
        rec.update(extra)
        self.memories[memory_id] = rec
        self.by_internal[rec["id"]] = memory_id
        if vector is not None:
            self.vectors[rec["id"]] = vector
        self.owns.append((user_id, rec["id"]))
        return rec

    def add_edge(self, label: str, from_memory: str, to_memory: str, **props) -> dict:
        edge = {
            "id": self._next("e"),
            "label": label,
            "from": self.internal(from_memory),
            "to": self.internal(to_memory),
            "props": props,
        }
        self.edges.append(edge)
        return edge

    # -- client surface ------------------------------------------------------

    async def health_check(self) -> bool:
        return self.healthy

    async def execute_query(self, query_name: str, params: dict | None = None):
        params = params or {}
        self.calls.append((query_name, dict(params)))
        if query_name in self.failures:
            raise self.failures[query_name]
        handler = getattr(self, f"q_{query_name}", None)
        if handler is None:
            raise QueryError(f"{query_name} failed (404): unknown query")
        return handler(**params)

    async def execute_query_no_retry(self, query_name: str, params: dict | None = None):
        return await self.execute_query(query_name, params)

    def _memory(self, memory_id: str) -> dict:
        rec = self.memories.get(memory_id)
        if rec is None:
            raise NotFound(f"memory {memory_id} not found")
        return rec

    def _by_internal(self, internal_id: str) -> dict:
        memory_id = self.by_internal.get(internal_id)
        if memory_id is None or memory_id not in self.memories:
            raise QueryError(f"node {internal_id} does not exist")
        return self.memories[memory_id]

    def _any_id(self, some_id: str) -> str:
        """Internal id for either an external or an internal memory id."""
        if some_id in self.memories:
            return self.memories[some_id]["id"]
        return some_id

    # -- users and memories --------------------------------------------------

    def q_getUser(self, user_id):
        if user_id not in self.users:
            raise NotFound(f"user {user_id} not found")
        return {"user": self.users[user_id]}

    def q_addUser(self, user_id, name):
        self.users[user_id] = {"user_id": user_id, "name": name}
        return {"user": self.users[user_id]}

    def q_linkUserToMemory(self, user_id, memory_id, context):
        self._by_internal(memory_id)
        self.owns.append((user_id, memory_id))
        return {"edge": {"id": self._next("e")}}

    def q_addMemory(self, memory_id, user_id, content, memory_type, certainty, importance,
                    created_at, updated_at, valid_from, context_tags, source, metadata):
        rec = {
            "id": self._next("n"),
            "memory_id": memory_id,
            "user_id": user_id,
            "content": content,
            "memory_type": memory_type,
            "certainty": certainty,
            "importance": importance,
            "created_at": created_at,
            "updated_at": updated_at,
            "valid_from": valid_from,
            "valid_until": None,
            "context_tags": context_tags,
            "source": source,
            "metadata": metadata,
            "is_deleted": 0,
            "deleted_at": None,
            "deleted_by": None,
        }
        self.memories[memory_id] = rec
        self.by_internal[rec["id"]] = memory_id
        return {"memory": {"id": rec["id"], "memory_id": memory_id}}

    def q_getMemory(self, memory_id):
        return {"memory": dict(self._memory(memory_id))}

    def q_addMemoryEmbedding(self, memory_id, vector_data, embedding_model, created_at):
        self._by_internal(memory_id)
        self.vectors[memory_id] = vector_data
        return {"embedding": {"id": self._next("v")}}

    def q_updateMemoryValidUntil(self, memory_id, valid_until):
        self._memory(memory_id)["valid_until"] = valid_until
        return {"memory": dict(self.memories[memory_id])}

    def q_updateMemoryContent(self, memory_id, content, updated_at):
        rec = self._memory(memory_id)
        rec["content"] = content
        rec["updated_at"] = updated_at
        return {"memory": dict(rec)}

    def q_updateMemoryById(self, id, updated_at, certainty=None, importance=None):
        rec = self._by_internal(id)
        if certainty is not None:
            rec["certainty"] = certainty
        if importance is not None:
            rec["importance"] = importance
        rec["updated_at"] = updated_at
        return {"memory": dict(rec)}

    def q_getAllMemories(self):
        return {"memories": [dict(m) for m in self.memories.values()]}

    def q_countAllMemories(self):
        return {"count": len(self.memories)}

    def q_countAllEntities(self):
        return {"count": len(self.entities)}

    def q_countAllConcepts(self):
        return {"count": len(self.concepts)}

    # -- vector search -------------------------------------------------------

    def q_smartVectorSearchWithChunks(self, query_vector, limit):
        from ontomem._util import cosine_similarity

        scored = []
        for internal_id, vector in self.vectors.items():
            memory_id = self.by_internal.get(internal_id)
            if memory_id in self.memories:
                scored.append((cosine_similarity(query_vector, vector), memory_id, vector))
        scored.sort(key=lambda x: x[0], reverse=True)
        memories = [
            {**self.memories[mid], "vector": v, "score": s} for s, mid, v in scored[:limit]
        ]

        chunk_hits = []
        for chunk_internal, vector in self.chunk_vectors.items():
            chunk = self.chunks.get(chunk_internal)
            parent = self.by_internal.get(chunk["parent_id"]) if chunk else None
            if parent in self.memories:
                chunk_hits.append((cosine_similarity(query_vector, vector), parent, vector))
        chunk_hits.sort(key=lambda x: x[0], reverse=True)
        parents = [
            {**self.memories[mid], "vector": v, "score": s} for s, mid, v in chunk_hits[:limit]
        ]
        return {"memories": memories, "parent_memories": parents}

    # -- chunks --------------------------------------------------------------

    def q_addMemoryChunk(self, chunk_id, parent_id, position, content, token_count, created_at):
        self._by_internal(parent_id)
        internal = self._next("c")
        self.chunks[internal] = {
            "id": internal,
            "chunk_id": chunk_id,
            "parent_id": parent_id,
            "position": position,
            "content": content,
            "token_count": token_count,
            "created_at": created_at,
        }
        return {"chunk": {"id": internal, "chunk_id": chunk_id}}

    def q_addChunkEmbedding(self, chunk_id, vector_data, embedding_model, created_at):
        self.chunk_vectors[chunk_id] = vector_data
        return {"embedding": {"id": self._next("v")}}

    def q_linkChunks(self, from_chunk_id, to_chunk_id):
        if from_chunk_id not in self.chunks or to_chunk_id not in self.chunks:
            raise QueryError("linkChunks: chunk does not exist")
        self.chunk_links.append((from_chunk_id, to_chunk_id))
        return {"id": self._next("e")}

    def q_getMemoryWithChunks(self, memory_id):
        rec = self._memory(memory_id)
        chunks = [c for c in self.chunks.values() if c["parent_id"] == rec["id"]]
        return {"memory": dict(rec), "has_chunks": bool(chunks), "chunks": chunks}

    # -- reasoning edges -----------------------------------------------------

    def _edge(self, label: str, from_id: str, to_id: str, props: dict) -> dict:
        self._by_internal(from_id)
        self._by_internal(to_id)
        edge = {"id": self._next("e"), "label": label, "from": from_id, "to": to_id,
                "props": props}
        self.edges.append(edge)
        return {"edge": {"id": edge["id"]}}

    def q_addMemoryImplication(self, from_id, to_id, probability, reasoning_id):
        return self._edge("IMPLIES", from_id, to_id,
                          {"probability": probability, "reasoning_id": reasoning_id})

    def q_addMemoryCausation(self, from_id, to_id, strength, reasoning_id):
        return self._edge("BECAUSE", from_id, to_id,
                          {"strength": strength, "reasoning_id": reasoning_id})

    def q_addMemoryContradiction(self, from_id, to_id, confidence, resolution, resolved,
                                 resolution_strategy):
        return self._edge("CONTRADICTS", from_id, to_id, {
            "confidence": confidence, "resolution": resolution,
            "resolved": resolved, "resolution_strategy": resolution_strategy,
        })

    def q_addMemoryRelation(self, source_id, target_id, relation_type, strength, created_at,
                            metadata):
        return self._edge("RELATES_TO", source_id, target_id, {
            "relation_type": relation_type, "strength": strength, "metadata": metadata,
        })

    def q_addMemorySupersession(self, new_id, old_id, reason, superseded_at, is_contradiction):
        return self._edge("SUPERSEDES", new_id, old_id, {
            "reason": reason, "superseded_at": superseded_at,
            "is_contradiction": is_contradiction,
        })

    def q_getMemoryLogicalConnections(self, memory_id):
        internal = self._memory(memory_id)["id"]
        out: dict[str, list[dict]] = {}
        for edge in self.edges:
            prefix = LOGICAL_PREFIX.get(edge["label"])
            if prefix is None:
                continue
            if edge["from"] == internal:
                key, other = f"{prefix}_out", edge["to"]
            elif edge["to"] == internal:
                key, other = f"{prefix}_in", edge["from"]
            else:
                continue
            other_id = self.by_internal.get(other)
            if other_id not in self.memories:
                continue
            rec = {**self.memories[other_id], **edge["props"]}
            if other in self.vectors:
                rec["vector"] = self.vectors[other]
            out.setdefault(key, []).append(rec)
        return out

    def q_getMemoryReasoningRelations(self, memory_id, max_depth):
        internal = self._memory(memory_id)["id"]
        relations = []
        for edge in self.edges:
            if internal not in (edge["from"], edge["to"]) or edge["label"] not in LOGICAL_PREFIX:
                continue
            props = edge["props"]
            strength = props.get("strength", props.get("probability", props.get("confidence", 50)))
            relations.append({
                "from_id": self.by_internal.get(edge["from"]),
                "to_id": self.by_internal.get(edge["to"]),
                "relation_type": edge["label"],
                "strength": strength,
            })
        return {"relations": relations}

    # -- deletion ------------------------------------------------------------

    def _touching(self, internal: str) -> tuple[list, list, list, list]:
        return (
            [e for e in self.edges if internal in (e["from"], e["to"])],
            [o for o in self.owns if o[1] == internal],
            [link for link in self.entity_links if link["memory_id"] == internal],
            [link for link in self.concept_links if link["memory_id"] == internal],
        )

    def q_softDeleteMemory(self, memory_id, deleted_by, deleted_at, reason):
        rec = self._memory(memory_id)
        if rec["is_deleted"]:
            raise QueryError(f"memory {memory_id} already deleted")
        rec.update(is_deleted=1, deleted_by=deleted_by, deleted_at=deleted_at,
                   deletion_reason=reason)
        return {"success": True}

    def q_restoreMemory(self, memory_id, restored_by, restored_at):
        rec = self._memory(memory_id)
        rec.update(is_deleted=0, deleted_by=None, deleted_at=None)
        return {"success": True}

    def q_getMemoryEdgeCount(self, memory_id):
        internal = self._memory(memory_id)["id"]
        return {"count": sum(len(group) for group in self._touching(internal))}

    def q_deleteMemoryEdges(self, memory_id):
        internal = self._memory(memory_id)["id"]
        edges, owns, entity_links, concept_links = self._touching(internal)
        self.edges = [e for e in self.edges if e not in edges]
        self.owns = [o for o in self.owns if o not in owns]
        self.entity_links = [x for x in self.entity_links if x not in entity_links]
        self.concept_links = [x for x in self.concept_links if x not in concept_links]
        return {"deleted_count": len(edges) + len(owns) + len(entity_links) + len(concept_links)}

    def q_hardDeleteMemory(self, memory_id):
        rec = self.memories.pop(memory_id, None)
        if rec is None:
            raise NotFound(f"memory {memory_id} not found")
        self.by_internal.pop(rec["id"], None)
        self.vectors.pop(rec["id"], None)
        for internal in [k for k, c in self.chunks.items() if c["parent_id"] == rec["id"]]:
            self.chunks.pop(internal)
            self.chunk_vectors.pop(internal, None)
        return {"success": True}

    def q_findOrphanedEntities(self):
        linked = {link["entity_id"] for link in self.entity_links}
        return {"entities": [{"entity_id": eid} for eid in self.entities if eid not in linked]}

    def q_findOrphanedEdges(self):
        return {"edges": [
            {"id": e["id"]} for e in self.edges
            if e["from"] not in self.by_internal or e["to"] not in self.by_internal
        ]}

    def q_deleteEntitiesBatch(self, entity_ids):
        removed = sum(1 for eid in entity_ids if self.entities.pop(eid, None) is not None)
        return {"deleted_count": removed}

    def q_deleteEdgesBatch(self, edge_ids):
        before = len(self.edges)
        self.edges = [e for e in self.edges if e["id"] not in set(edge_ids)]
        return {"deleted_count": before - len(self.edges)}

    # -- entities ------------------------------------------------------------

    def q_createEntity(self, entity_id, name, entity_type, properties, aliases):
        self.entities[entity_id] = {
            "id": self._next("x"), "entity_id": entity_id, "name": name,
            "entity_type": entity_type, "properties": properties, "aliases": aliases,
        }
        return {"entity": self.entities[entity_id]}

    def q_getEntity(self, entity_id):
        if entity_id not in self.entities:
            raise NotFound(f"entity {entity_id} not found")
        return {"entity": self.entities[entity_id]}

    def q_getEntityByName(self, name):
        for rec in self.entities.values():
            if rec["name"].lower() == name.lower():
                return {"entity": rec}
        raise NotFound(f"entity {name} not found")

    def q_linkExtractedEntity(self, memory_id, entity_id, confidence, method):
        self._by_internal(memory_id)
        self.entity_links.append({"memory_id": memory_id, "entity_id": entity_id,
                                  "label": "EXTRACTED_ENTITY", "confidence": confidence})
        return {"edge": {"id": self._next("e")}}

    def q_linkMentionsEntity(self, memory_id, entity_id, salience, sentiment):
        self._by_internal(memory_id)
        self.entity_links.append({"memory_id": memory_id, "entity_id": entity_id,
                                  "label": "MENTIONS", "salience": salience})
        return {"edge": {"id": self._next("e")}}

    def q_getEntitiesForMemory(self, memory_id):
        internal = self._any_id(memory_id)
        ids = [link["entity_id"] for link in self.entity_links if link["memory_id"] == internal]
        return {"entities": [self.entities[i] for i in dict.fromkeys(ids) if i in self.entities]}

    def q_searchEntities(self, query, limit):
        hits = [e for e in self.entities.values() if query.lower() in e["name"].lower()]
        return {"entities": hits[:limit]}

    # -- ontology ------------------------------------------------------------

    def q_checkOntologyInitialized(self):
        return {"thing": self.concepts.get("Thing")}

    def q_initializeBaseOntology(self):
        for concept_id, parent, level in BASE_CONCEPTS:
            self.concepts[concept_id] = {
                "concept_id": concept_id, "name": concept_id, "parent_id": parent,
                "level": level, "description": "",
            }
        return {"success": True}

    def q_getAllConcepts(self):
        return {"concepts": list(self.concepts.values())}

    def q_linkMemoryToInstanceOf(self, memory_id, concept_id, confidence):
        self._by_internal(memory_id)
        self.concept_links.append({"memory_id": memory_id, "concept_id": concept_id,
                                   "label": "INSTANCE_OF", "confidence": confidence})
        return {"edge": {"id": self._next("e")}}

    def q_linkMemoryToCategory(self, memory_id, concept_id, relevance):
        self._by_internal(memory_id)
        self.concept_links.append({"memory_id": memory_id, "concept_id": concept_id,
                                   "label": "BELONGS_TO_CATEGORY", "relevance": relevance})
        return {"edge": {"id": self._next("e")}}

    def q_getMemoryConcepts(self, memory_id):
        internal = self._memory(memory_id)["id"]
        links = [link for link in self.concept_links if link["memory_id"] == internal]
        return {
            "instance_of": [{"concept_id": x["concept_id"]} for x in links
                            if x["label"] == "INSTANCE_OF"],
            "belongs_to": [{"concept_id": x["concept_id"]} for x in links
                           if x["label"] == "BELONGS_TO_CATEGORY"],
        }

    # -- contexts ------------------------------------------------------------

    def q_addContext(self, context_id, name, properties, created_at):
        self.contexts[context_id] = {"context_id": context_id, "name": name,
                                     "properties": properties, "created_at": created_at}
        return {"context": self.contexts[context_id]}

    def q_getContext(self, context_id):
        if context_id not in self.contexts:
            raise NotFound(f"context {context_id} not found")
        return {"context": self.contexts[context_id]}

    def q_getContextByName(self, name):
        for rec in self.contexts.values():
            if rec["name"].lower() == name.lower():
                return {"context": rec}
        raise NotFound(f"context {name} not found")

    def q_linkMemoryToContext(self, memory_id, context_id, priority):
        self._by_internal(memory_id)
        self.context_links.append({"memory_id": memory_id, "context_id": context_id,
                                   "priority": priority})
        return {"edge": {"id": self._next("e")}}

    def q_getRecentContexts(self, limit, user_id=None):
        return {"contexts": list(self.contexts.values())[:limit]}


# ---------------------------------------------------------------------------
# Fake providers
# ---------------------------------------------------------------------------

_WORD = re.compile(r"[a-z0-9']+")


class HashingEmbeddings(EmbeddingProvider):
    """Bag of words hashed into DIM buckets. Pinned texts get their pinned vector."""

    name = "hashing"

    def __init__(self):
        super().__init__("fake-embed", "http://embeddings.invalid")
        self.pinned: dict[str, list[float]] = {}
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if text in self.pinned:
            return self.pinned[text]
        out = [0.0] * DIM
        for word in _WORD.findall(text.lower()):
            out[zlib.crc32(word.encode()) % DIM] += 1.0
        return out


class ScriptedLlm(LlmProvider):
    """Answers generate() from a queue of replies. Exceptions in the queue are raised."""

    name = "scripted"

    def __init__(self, replies: list | None = None):
        super().__init__("scripted-model", "http://llm.invalid")
        self.replies = list(replies or [])
        self.prompts: list[tuple[str, str]] = []

    async def generate(self, system, user, response_format=None):
        self.prompts.append((system, user))
        if not self.replies:
            raise LlmError("scripted llm has no replies left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply, LlmMetadata(provider=self.name, model=self.model)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_helix():
    return FakeHelix()


@pytest.fixture
def hashing_embeddings():
    return HashingEmbeddings()


@pytest.fixture
def embedder(hashing_embeddings):
    """A real EmbeddingGenerator over the hashing provider, no fallback."""
    return EmbeddingGenerator(hashing_embeddings, fallback_enabled=False)


@pytest.fixture
def make_core(fake_helix, embedder):
    """Factory for MemoryCore wired to the fake store and embedder."""
    from ontomem.config import OmcConfig
    from ontomem.core import MemoryCore

    def _make(llm=None, chunking=None, integration=None, config=None):
        return MemoryCore(
            config or OmcConfig(),
            client=fake_helix,
            llm=llm,
            embedder=embedder,
            use_llm=False,
            chunking=chunking,
            integration=integration,
        )
    return _make


@pytest.fixture
def core(make_core):
    return make_core()


@pytest.fixture
def pin(hashing_embeddings):
    """Pin exact vectors for texts: pin({"text": vec(1, 0)})."""
    def _pin(mapping: dict[str, list[float]]):
        hashing_embeddings.pinned.update(mapping)
    return _pin
