from .linker import ChunkLinkBuilder
from .service import ChunkingResult, ChunkingService, chunk_id_for
from .splitter import (
    ChunkingConfig,
    ChunkingStrategy,
    SemanticSplitter,
    SentenceSplitter,
    create_splitter,
    estimate_tokens,
)

__all__ = [
    "ChunkLinkBuilder",
    "ChunkingConfig",
    "ChunkingResult",
    "ChunkingService",
    "ChunkingStrategy",
    "SemanticSplitter",
    "SentenceSplitter",
    "chunk_id_for",
    "create_splitter",
    "estimate_tokens",
]
