from .contradiction import ContradictionDetector
from .deletion import CleanupStats, DeletionManager, DeletionResult, DeletionStrategy, RestoreResult
from .manager import EvolutionManager, EvolutionResult
from .relations import RelationCopier

__all__ = [
    "ContradictionDetector",
    "DeletionManager",
    "DeletionStrategy",
    "DeletionResult",
    "RestoreResult",
    "CleanupStats",
    "EvolutionManager",
    "EvolutionResult",
    "RelationCopier",
]
