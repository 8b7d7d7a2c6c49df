from .contexts import ContextManager
from .edges import EdgeCreator
from .entities import EntityManager
from .ontology import ConceptMatch, OntologyError, OntologyManager

__all__ = [
    "ContextManager",
    "EdgeCreator",
    "EntityManager",
    "OntologyManager",
    "ConceptMatch",
    "OntologyError",
]
