from .decision import DecisionEngine, MemoryDecision, Operation, SimilarMemory
from .finder import SimilarMemoryFinder
from .integrator import IntegrationConfig, IntegrationResult, Integrator

__all__ = [
    "DecisionEngine",
    "MemoryDecision",
    "Operation",
    "SimilarMemory",
    "SimilarMemoryFinder",
    "IntegrationConfig",
    "IntegrationResult",
    "Integrator",
]
