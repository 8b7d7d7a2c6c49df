"""MemoryCore: one object wiring every component from an OmcConfig."""

import logging

from .analytics import AnalyticsManager, AnalyticsSummary
from .chunking import ChunkingConfig, ChunkingService, ChunkLinkBuilder
from .config import OmcConfig
from .errors import OmcError, ValidationError
from .events import EventBus
from .evolution import (
    CleanupStats,
    DeletionManager,
    DeletionResult,
    DeletionStrategy,
    EvolutionManager,
    EvolutionResult,
    RestoreResult,
)
from .graph import ContextManager, EdgeCreator, EntityManager, OntologyManager
from .integration import DecisionEngine, IntegrationConfig, Integrator
from .llm.embeddings import EmbeddingGenerator, create_embedder
from .llm.extractor import MemoryExtractor
from .llm.providers import LlmProvider, create_llm_provider
from .memory import MemoryCrud, UserLinker
from .pipeline import AddResult, WritePipeline
from .resolver import IdResolver
from .retrieval import RetrievalDepth, RetrievalManager, RetrievalResult
from .search import (
    ChainSearch,
    ChainSearchResult,
    MemoryChainConfig,
    OntoSearch,
    OntoSearchResult,
    ProcessedQuery,
    QueryProcessor,
    SearchMode,
    SearchResult,
    SmartTraversal,
)
from .search.modes import get_defaults, temporal_cutoff, to_search_config
from .store.helix import HelixClient
from .types import Memory, MemoryType

log = logging.getLogger("ontomem")


def _onto_to_search_result(r: OntoSearchResult) -> SearchResult:
    return SearchResult(
        memory_id=r.memory_id,
        content=r.content,
        memory_type=r.memory_type,
        user_id=r.user_id,
        created_at=r.created_at,
        vector_score=r.vector_score,
        graph_score=r.graph_score,
        temporal_score=r.temporal_score,
        combined_score=r.final_score,
        depth=r.depth,
        source=r.source,
        edge_type=r.edge_type,
        parent_id=r.related_to,
        metadata={
            "concept_score": r.concept_score,
            "tag_score": r.tag_score,
            "matched_concepts": [c.concept_id for c in r.matched_concepts],
            "matched_tags": r.matched_tags,
        },
    )


class MemoryCore:
    def __init__(
        self,
        config: OmcConfig | None = None,
        *,
        client: HelixClient | None = None,
        llm: LlmProvider | None = None,
        embedder: EmbeddingGenerator | None = None,
        use_llm: bool = True,
        chunking: ChunkingConfig | None = None,
        integration: IntegrationConfig | None = None,
    ):
        self.config = config or OmcConfig.from_env()
        self.client = client or HelixClient(self.config.helix)
        if llm is None and use_llm:
            llm = create_llm_provider(self.config.llm)
        self.llm = llm
        self.embedder = embedder or create_embedder(self.config.embeddings)

        self.bus = EventBus()
        self.resolver = IdResolver(self.client)
        self.users = UserLinker(self.client)
        self.crud = MemoryCrud(self.client, self.resolver, self.users, self.embedder)
        self.link_builder = ChunkLinkBuilder(self.client, self.bus)
        self.chunking = ChunkingService(self.client, self.resolver, self.bus, chunking, self.embedder)

        self.entities = EntityManager(self.client)
        self.ontology = OntologyManager(self.client)
        self.contexts = ContextManager(self.client)
        self.edges = EdgeCreator(self.client)

        self.evolution = EvolutionManager(self.client, self.resolver, self.edges)
        self.deletion = DeletionManager(self.client, self.resolver)
        self.engine = DecisionEngine(self.llm)
        self.integrator = Integrator(
            self.client, self.resolver, self.engine, self.evolution, integration, self.edges,
        )
        self.extractor = MemoryExtractor(self.llm) if self.llm is not None else None
        self.pipeline = WritePipeline(
            self.crud, self.resolver, self.embedder, self.integrator, self.chunking,
            self.entities, self.ontology, self.edges, self.extractor,
        )

        self.traversal = SmartTraversal(self.client)
        self.onto = OntoSearch(self.client)
        self.chains = ChainSearch(self.client)
        self.query_processor = QueryProcessor(self.llm)
        self.retrieval = RetrievalManager(self.client, self.traversal, self.entities)
        self.analytics = AnalyticsManager(self.client)

    def __repr__(self) -> str:
        return f"MemoryCore({self.client!r}, llm={'on' if self.llm else 'off'})"

    # -- writes --------------------------------------------------------------

    async def add(
        self,
        content: str,
        user_id: str | None = None,
        memory_type: str = MemoryType.fact.value,
        certainty: int | None = None,
        importance: int | None = None,
        context_tags: str = "",
        source: str = "user",
        metadata: dict | None = None,
        extract: bool = True,
    ) -> AddResult:
        if not content or not content.strip():
            raise ValidationError("content cannot be empty")
        defaults = self.config.search
        result = await self.pipeline.run(
            content.strip(),
            user_id or self.config.default_user,
            memory_type=memory_type,
            certainty=defaults.certainty if certainty is None else certainty,
            importance=defaults.importance if importance is None else importance,
            context_tags=context_tags,
            source=source,
            metadata=metadata,
            extract=extract,
        )
        await self.traversal.clear_cache()
        return result

    async def update(
        self,
        memory_id: str,
        content: str | None = None,
        certainty: int | None = None,
        importance: int | None = None,
    ) -> list[EvolutionResult]:
        if content is None and certainty is None and importance is None:
            raise ValidationError("nothing to update")
        results = []
        if content is not None:
            if not content.strip():
                raise ValidationError("content cannot be empty")
            results.append(await self.evolution.enhance(memory_id, content.strip()))
        if certainty is not None or importance is not None:
            results.append(await self.evolution.update_metadata(memory_id, certainty, importance))
        await self.traversal.clear_cache()
        return results

    async def delete(
        self,
        memory_id: str,
        strategy: DeletionStrategy | str = DeletionStrategy.soft,
        deleted_by: str = "user",
        reason: str = "",
        cascade: bool = True,
    ) -> DeletionResult:
        result = await self.deletion.delete(memory_id, strategy, deleted_by, reason, cascade)
        await self.traversal.clear_cache()
        return result

    async def undelete(self, memory_id: str, restored_by: str = "user") -> RestoreResult:
        result = await self.deletion.undelete(memory_id, restored_by)
        await self.traversal.clear_cache()
        return result

    async def cleanup(self, dry_run: bool = True) -> CleanupStats:
        return await self.deletion.cleanup_orphans(dry_run)

    # -- reads ---------------------------------------------------------------

    async def get(self, memory_id: str) -> Memory | None:
        return await self.crud.get_memory(memory_id)

    async def search(
        self,
        query: str,
        user_id: str | None = None,
        mode: SearchMode | str | None = None,
        limit: int | None = None,
        query_vector: list[float] | None = None,
    ) -> list[SearchResult]:
        mode = SearchMode.from_str(mode or self.config.search.mode)
        limit = limit or self.config.search.limit
        vector = query_vector or await self.embedder.generate(query)

        if get_defaults(mode).use_smart_traversal:
            results = await self.traversal.search(
                query, vector,
                user_id=user_id,
                config=to_search_config(mode, limit),
                temporal_cutoff=temporal_cutoff(mode),
            )
        else:
            onto = await self.onto.search(query, vector, user_id, mode=mode.value)
            results = [_onto_to_search_result(r) for r in onto]
        log.info("search %r (%s): %d results", query, mode.value, len(results))
        return results[:limit]

    async def search_by_concept(
        self,
        query: str,
        user_id: str | None = None,
        mode: str = "contextual",
        limit: int | None = None,
        query_vector: list[float] | None = None,
    ) -> list[OntoSearchResult]:
        vector = query_vector or await self.embedder.generate(query)
        return await self.onto.search(
            query, vector, user_id, mode=mode, limit=limit or self.config.search.limit,
        )

    async def search_chain(
        self,
        query: str,
        user_id: str | None = None,
        config: MemoryChainConfig | str | None = None,
        limit: int = 5,
        query_vector: list[float] | None = None,
    ) -> ChainSearchResult:
        if config is None or isinstance(config, str):
            config = MemoryChainConfig.preset(config)
        vector = query_vector or await self.embedder.generate(query)
        return await self.chains.search(query, vector, user_id, limit, config)

    async def retrieve(
        self,
        query: str,
        user_id: str | None = None,
        depth: RetrievalDepth | str = RetrievalDepth.medium,
        limit: int | None = None,
        include_reasoning: bool = True,
        include_entities: bool = True,
    ) -> RetrievalResult:
        vector = await self.embedder.generate(query)
        return await self.retrieval.retrieve(
            query, vector, user_id, depth, limit or self.config.search.limit,
            include_reasoning, include_entities,
        )

    async def process_query(self, query: str, use_llm: bool = False) -> ProcessedQuery:
        if use_llm:
            return await self.query_processor.process_with_llm(query)
        return self.query_processor.process(query)

    # -- ops -----------------------------------------------------------------

    async def health(self) -> dict:
        store_ok = await self.client.health_check()
        ontology_ok = True
        try:
            await self.ontology.load()
        except OmcError as e:
            log.warning("ontology check failed: %s", e)
            ontology_ok = False
        return {
            "status": "ok" if store_ok else "degraded",
            "store": {"url": self.client.base_url, "reachable": store_ok},
            "ontology": {"loaded": ontology_ok, **self.ontology.get_stats().model_dump()},
            "llm": self.llm.stats() if self.llm is not None and hasattr(self.llm, "stats") else None,
            "embeddings": self.embedder.stats(),
            "resolver": self.resolver.get_stats(),
            "traversal": self.traversal.get_stats().model_dump(),
            "edges": self.edges.stats(),
            "chunk_links": self.link_builder.stats(),
        }

    async def stats(self) -> AnalyticsSummary:
        return await self.analytics.summary()
