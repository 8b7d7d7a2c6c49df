from .embeddings import EmbeddingGenerator, OllamaEmbeddings, OpenAIEmbeddings, create_embedder
from .extractor import ExtractionResult, MemoryExtractor
from .providers import (
    CerebrasProvider,
    FallbackLlmProvider,
    LlmMetadata,
    LlmProvider,
    OllamaProvider,
    OpenAICompatibleProvider,
    create_llm_provider,
)

__all__ = [
    "EmbeddingGenerator",
    "OllamaEmbeddings",
    "OpenAIEmbeddings",
    "create_embedder",
    "ExtractionResult",
    "MemoryExtractor",
    "CerebrasProvider",
    "FallbackLlmProvider",
    "LlmMetadata",
    "LlmProvider",
    "OllamaProvider",
    "OpenAICompatibleProvider",
    "create_llm_provider",
]
