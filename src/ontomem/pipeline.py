"""The write path for new text.

Stages run in order for every memory the text yields:

    extracting -> deciding -> storing -> chunking -> linking -> integrating -> done

Any stage may end the run in `failed`. The decision is taken before anything
is persisted, so NOOP writes nothing and an UPDATE only touches the target.
"""

import logging
import uuid
from enum import Enum

from pydantic import BaseModel, Field

from ._util import now_iso, preview
from .chunking.service import ChunkingService
from .errors import OmcError
from .graph.edges import EdgeCreator
from .graph.entities import EntityManager
from .graph.ontology import OntologyManager
from .integration.decision import Operation
from .integration.integrator import Integrator
from .llm.embeddings import EmbeddingGenerator
from .llm.extractor import ExtractionResult, MemoryExtractor
from .memory.crud import MemoryCrud
from .resolver import IdResolver
from .types import ConceptLinkType, EntityEdgeType, EntityType, MemoryType

log = logging.getLogger("ontomem")

MAX_CONCEPTS_PER_MEMORY = 3
MIN_CONCEPT_CONFIDENCE = 0.2


class PipelineStage(str, Enum):
    extracting = "extracting"
    deciding = "deciding"
    storing = "storing"
    chunking = "chunking"
    linking = "linking"
    integrating = "integrating"
    done = "done"
    failed = "failed"


class StoredMemory(BaseModel):
    memory_id: str
    content: str
    memory_type: str = MemoryType.fact.value
    operation: Operation = Operation.ADD
    created: bool = True
    confidence: int = 100
    reasoning: str = ""
    created_at: str = ""
    chunks_created: int = 0
    links_created: int = 0
    entities_linked: int = 0
    concepts_linked: int = 0
    edges_created: int = 0


class AddResult(BaseModel):
    correlation_id: str
    stage: PipelineStage = PipelineStage.extracting
    memories: list[StoredMemory] = Field(default_factory=list)
    entities_extracted: int = 0
    relations_created: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def memory_ids(self) -> list[str]:
        return [m.memory_id for m in self.memories]

    @property
    def added(self) -> int:
        return sum(1 for m in self.memories if m.created)


class WritePipeline:
    def __init__(
        self,
        crud: MemoryCrud,
        resolver: IdResolver,
        embedder: EmbeddingGenerator,
        integrator: Integrator,
        chunking: ChunkingService,
        entities: EntityManager,
        ontology: OntologyManager,
        edges: EdgeCreator,
        extractor: MemoryExtractor | None = None,
    ):
        self.crud = crud
        self.resolver = resolver
        self.embedder = embedder
        self.integrator = integrator
        self.chunking = chunking
        self.entities = entities
        self.ontology = ontology
        self.edges = edges
        self.extractor = extractor

    def _enter(self, result: AddResult, stage: PipelineStage) -> None:
        log.debug("pipeline %s: %s -> %s", result.correlation_id, result.stage.value, stage.value)
        result.stage = stage

    async def run(
        self,
        content: str,
        user_id: str,
        memory_type: str = MemoryType.fact.value,
        certainty: int = 80,
        importance: int = 50,
        context_tags: str = "",
        source: str = "user",
        metadata: dict | None = None,
        extract: bool = True,
    ) -> AddResult:
        result = AddResult(correlation_id=uuid.uuid4().hex)
        try:
            extraction = await self._extract(result, content, user_id, extract)
            if extraction.memories:
                items = [(m.text, m.memory_type, m.certainty, m.importance, m.entities)
                         for m in extraction.memories]
            else:
                items = [(content, memory_type, certainty, importance, [])]

            for text, mtype, cert, imp, names in items:
                stored = await self._write_one(
                    result, text, user_id, mtype, cert, imp, context_tags, source,
                    metadata, names, extraction,
                )
                result.memories.append(stored)

            if extraction.relations:
                self._enter(result, PipelineStage.linking)
                result.relations_created = await self._link_relations(result, extraction)
        except Exception as e:
            self._enter(result, PipelineStage.failed)
            log.error("pipeline %s failed: %s", result.correlation_id, e)
            raise

        self._enter(result, PipelineStage.done)
        log.info("pipeline %s stored %d of %d memories for %s",
                 result.correlation_id, result.added, len(result.memories), user_id)
        return result

    async def _extract(self, result: AddResult, content: str, user_id: str,
                       extract: bool) -> ExtractionResult:
        self._enter(result, PipelineStage.extracting)
        if not extract or self.extractor is None:
            return ExtractionResult()
        extraction = await self.extractor.extract(content, user_id)
        result.entities_extracted = len(extraction.entities)
        if not extraction.memories:
            log.info("extraction yielded nothing, storing raw text as a fact")
        return extraction

    async def _write_one(
        self,
        result: AddResult,
        content: str,
        user_id: str,
        memory_type: str,
        certainty: int,
        importance: int,
        context_tags: str,
        source: str,
        metadata: dict | None,
        entity_names: list[str],
        extraction: ExtractionResult,
    ) -> StoredMemory:
        self._enter(result, PipelineStage.deciding)
        vector = await self.embedder.generate(content)
        similar, decision = await self.integrator.plan(content, vector, user_id)

        if decision.operation == Operation.NOOP and decision.target_memory_id:
            log.info("skipping %r: %s", preview(content, 40), decision.reasoning)
            return StoredMemory(
                memory_id=decision.target_memory_id, content=content, memory_type=memory_type,
                operation=decision.operation, created=False,
                confidence=decision.confidence, reasoning=decision.reasoning,
            )
        if (decision.operation == Operation.UPDATE and decision.merged_content
                and decision.target_memory_id):
            self._enter(result, PipelineStage.storing)
            await self.integrator.evolution.enhance(decision.target_memory_id, decision.merged_content)
            return StoredMemory(
                memory_id=decision.target_memory_id, content=decision.merged_content,
                memory_type=memory_type, operation=decision.operation, created=False,
                confidence=decision.confidence, reasoning=decision.reasoning,
            )

        self._enter(result, PipelineStage.storing)
        memory = await self.crud.add_memory(
            content, user_id,
            memory_type=memory_type,
            certainty=certainty,
            importance=importance,
            context_tags=context_tags,
            source=source,
            metadata=metadata,
            created_at=now_iso(),
            vector=vector,
        )
        stored = StoredMemory(
            memory_id=memory.memory_id, content=content, memory_type=memory.memory_type,
            operation=decision.operation, confidence=decision.confidence,
            reasoning=decision.reasoning, created_at=memory.created_at,
        )

        self._enter(result, PipelineStage.chunking)
        chunked = await self.chunking.process_memory(
            memory.memory_id, content, user_id,
            internal_id=memory.internal_id, correlation_id=result.correlation_id,
        )
        stored.chunks_created = chunked.chunks_created
        stored.links_created = chunked.links_created
        result.errors.extend(chunked.errors)

        self._enter(result, PipelineStage.linking)
        stored.entities_linked = await self._link_entities(
            memory.internal_id, entity_names, extraction, result,
        )
        stored.concepts_linked = await self._link_concepts(memory.internal_id, content, result)

        self._enter(result, PipelineStage.integrating)
        integration = await self.integrator.apply(
            memory.memory_id, content, memory.created_at, decision, similar,
        )
        stored.edges_created = integration.edges_created
        result.errors.extend(integration.errors)
        return stored

    async def _link_entities(self, internal_id: str, names: list[str],
                             extraction: ExtractionResult, result: AddResult) -> int:
        types = {e.name.strip().lower(): e.type for e in extraction.entities}
        linked = 0
        for name in names:
            try:
                entity = await self.entities.get_or_create_entity(
                    name, EntityType.normalize(types.get(name.strip().lower())),
                )
                await self.entities.link_to_memory(
                    entity.entity_id, internal_id, EntityEdgeType.extracted_entity,
                )
                linked += 1
            except Exception as e:
                log.warning("linking entity %r failed: %s", name, e)
                result.errors.append(f"entity {name}: {e}")
        return linked

    async def _link_concepts(self, internal_id: str, content: str, result: AddResult) -> int:
        try:
            await self.ontology.load()
        except OmcError as e:
            log.warning("ontology unavailable, skipping concept links: %s", e)
            return 0
        linked = 0
        matches = self.ontology.classify_text(content, MIN_CONCEPT_CONFIDENCE)
        for concept_id, score in matches[:MAX_CONCEPTS_PER_MEMORY]:
            try:
                await self.ontology.link_to_concept(
                    internal_id, concept_id, ConceptLinkType.instance_of, int(round(score * 100)),
                )
                linked += 1
            except Exception as e:
                log.warning("linking concept %s failed: %s", concept_id, e)
                result.errors.append(f"concept {concept_id}: {e}")
        return linked

    async def _link_relations(self, result: AddResult, extraction: ExtractionResult) -> int:
        by_text = {m.content.strip().lower(): m.memory_id for m in result.memories}
        created = 0
        for rel in extraction.relations:
            src = by_text.get(rel.from_memory_content.strip().lower())
            dst = by_text.get(rel.to_memory_content.strip().lower())
            if not src or not dst or src == dst:
                continue
            try:
                src_internal = await self.resolver.resolve(src)
                dst_internal = await self.resolver.resolve(dst)
            except OmcError as e:
                log.warning("relation %s -> %s skipped: %s", src, dst, e)
                continue
            if await self.edges.create(rel.relation_type, src_internal, dst_internal,
                                       rel.strength, reasoning_id=f"extraction_{result.correlation_id}"):
                created += 1
        return created
