"""ontomem: ontological memory for agents on top of HelixDB."""

from .config import OmcConfig
from .core import MemoryCore
from .errors import OmcError
from .pipeline import AddResult, PipelineStage
from .retrieval import RetrievalDepth
from .search import MemoryChainConfig, SearchMode

__version__ = "0.1.0"

__all__ = [
    "MemoryCore",
    "OmcConfig",
    "OmcError",
    "AddResult",
    "PipelineStage",
    "RetrievalDepth",
    "MemoryChainConfig",
    "SearchMode",
]
