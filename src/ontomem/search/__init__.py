from .chains import (
    ChainDirection,
    ChainNode,
    ChainSearch,
    ChainSearchResult,
    MemoryChain,
    MemoryChainConfig,
)
from .modes import SearchMode, estimate_token_cost, get_defaults, to_search_config
from .onto import OntoSearch, OntoSearchConfig, OntoSearchResult
from .query import ProcessedQuery, QueryProcessor
from .traversal import SearchConfig, SearchResult, SmartTraversal

__all__ = [
    "ChainDirection",
    "ChainNode",
    "ChainSearch",
    "ChainSearchResult",
    "MemoryChain",
    "MemoryChainConfig",
    "SearchMode",
    "estimate_token_cost",
    "get_defaults",
    "to_search_config",
    "OntoSearch",
    "OntoSearchConfig",
    "OntoSearchResult",
    "ProcessedQuery",
    "QueryProcessor",
    "SearchConfig",
    "SearchResult",
    "SmartTraversal",
]
