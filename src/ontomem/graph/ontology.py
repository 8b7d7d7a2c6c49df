"""Concept hierarchy and keyword classification.

The base tree lives in the store; it is loaded once and then served from the
in-process cache. Keyword tables are module-level read-only data.
"""

import logging
import re

from pydantic import BaseModel, Field

from ..errors import OmcError, StoreError, ValidationError
from ..store.helix import HelixClient
from ..store.records import records_under
from ..types import Concept, ConceptLinkType, ConceptRelation, ConceptType

log = logging.getLogger("ontomem")

KEYWORD_PATTERNS: dict[str, tuple[str, ...]] = {
    "Preference": ("love", "like", "prefer", "enjoy", "favorite", "hate", "dislike"),
    "Skill": ("can", "know how", "able to", "expert", "proficient", "skilled"),
    "Fact": ("is", "are", "was", "were", "has", "have"),
    "Goal": ("want", "plan", "goal", "aim", "intend", "wish"),
    "Opinion": ("think", "believe", "feel", "opinion", "view"),
    "Experience": ("did", "went", "saw", "experienced", "happened"),
    "Achievement": ("completed", "finished", "achieved", "accomplished", "built"),
}

CONCEPT_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Preference": ("like", "love", "prefer", "favorite", "enjoy", "hate", "dislike"),
    "Skill": ("can", "able to", "skilled at", "expert in", "know how", "proficient"),
    "Goal": ("want", "goal", "aim", "plan", "wish", "hope", "intend"),
    "Opinion": ("think", "believe", "feel", "opinion", "view", "consider"),
    "Fact": ("fact", "is", "has", "knows", "information", "data"),
    "Action": ("did", "does", "doing", "performed", "executed", "ran"),
    "Experience": ("experienced", "went through", "encounter", "witnessed"),
    "Achievement": ("completed", "finished", "achieved", "success", "accomplished"),
}


class OntologyError(OmcError):
    pass


class ConceptMatch(BaseModel):
    concept_id: str
    name: str
    confidence: float
    matched_keywords: list[str] = Field(default_factory=list)


class OntologyStats(BaseModel):
    total_concepts: int
    total_relations: int
    concepts_by_type: dict[str, int] = Field(default_factory=dict)
    max_depth: int = 0


def contains_phrase(text: str, phrase: str) -> bool:
    return re.search(rf"(?<![a-z]){re.escape(phrase)}(?![a-z])", text) is not None


def _score_keywords(text: str, table: dict[str, tuple[str, ...]]) -> list[tuple[str, float, list[str]]]:
    lowered = text.lower()
    scored = []
    for concept_id, keywords in table.items():
        matched = [kw for kw in keywords if contains_phrase(lowered, kw)]
        if matched:
            scored.append((concept_id, len(matched) / len(keywords), matched))
    scored.sort(key=lambda x: x[1], reverse=True)
    return scored


class OntologyManager:
    def __init__(self, client: HelixClient):
        self.client = client
        self._concepts: dict[str, Concept] = {}
        self._relations: list[ConceptRelation] = []
        self.is_loaded = False

    async def load(self) -> None:
        """Load the base ontology, initializing it in the store first if needed."""
        if self.is_loaded:
            return
        try:
            check = await self.client.execute_query("checkOntologyInitialized", {})
            if not (isinstance(check, dict) and check.get("thing")):
                log.info("ontology not initialized, creating base ontology")
                await self.client.execute_query("initializeBaseOntology", {})
            result = await self.client.execute_query("getAllConcepts", {})
        except StoreError as e:
            raise OntologyError(f"loading ontology failed: {e}") from e

        concepts: dict[str, Concept] = {}
        relations: list[ConceptRelation] = []
        for node in records_under(result, "concepts"):
            if not isinstance(node, dict) or not node.get("concept_id"):
                continue
            level = int(node.get("level", 0) or 0)
            concept = Concept(
                concept_id=node["concept_id"],
                name=node.get("name", node["concept_id"]),
                concept_type=ConceptType.abstract if level <= 2 else ConceptType.concrete,
                description=node.get("description") or "",
                parent_concept=node.get("parent_id") or None,
                level=level,
            )
            concepts[concept.concept_id] = concept
            if concept.parent_concept:
                relations.append(ConceptRelation(
                    from_concept=concept.parent_concept,
                    to_concept=concept.concept_id,
                ))
        self._concepts = concepts
        self._relations = relations
        self.is_loaded = True
        log.info("loaded %d concepts and %d relations", len(concepts), len(relations))

    def get_concept(self, concept_id: str) -> Concept | None:
        return self._concepts.get(concept_id)

    def add_concept(self, concept: Concept) -> None:
        if concept.concept_id in self._concepts:
            raise ValidationError(f"concept already exists: {concept.concept_id}")
        if concept.parent_concept:
            parent = self._concepts.get(concept.parent_concept)
            if parent is None:
                raise ValidationError(f"unknown parent concept: {concept.parent_concept}")
            if parent.level >= concept.level:
                raise ValidationError(
                    f"parent {parent.concept_id} must have a lower level than {concept.concept_id}"
                )
            self._relations.append(ConceptRelation(
                from_concept=parent.concept_id, to_concept=concept.concept_id,
            ))
        self._concepts[concept.concept_id] = concept

    def get_subtypes(self, concept_id: str) -> list[Concept]:
        if not self.is_loaded:
            raise OntologyError("ontology not loaded")
        return [c for c in self._concepts.values() if c.parent_concept == concept_id]

    def get_ancestors(self, concept_id: str) -> list[Concept]:
        """Walk parent pointers upwards. Stops on cycles or non-decreasing levels."""
        ancestors: list[Concept] = []
        current = self._concepts.get(concept_id)
        visited = {concept_id}
        while current is not None and current.parent_concept:
            parent = self._concepts.get(current.parent_concept)
            if parent is None or parent.concept_id in visited:
                break
            if parent.level >= current.level:
                log.warning("concept %s has parent %s at level %d >= %d, stopping",
                            current.concept_id, parent.concept_id, parent.level, current.level)
                break
            ancestors.append(parent)
            visited.add(parent.concept_id)
            current = parent
        return ancestors

    def get_depth(self, concept_id: str) -> int:
        return len(self.get_ancestors(concept_id))

    def classify_text(self, text: str, min_confidence: float = 0.1) -> list[tuple[str, float]]:
        return [
            (concept_id, score)
            for concept_id, score, _ in _score_keywords(text, KEYWORD_PATTERNS)
            if score >= min_confidence
        ]

    def map_to_concepts(self, text: str, top_k: int = 5) -> list[ConceptMatch]:
        matches = []
        for concept_id, score, matched in _score_keywords(text, CONCEPT_KEYWORDS)[:top_k]:
            concept = self._concepts.get(concept_id)
            matches.append(ConceptMatch(
                concept_id=concept_id,
                name=concept.name if concept else concept_id,
                confidence=score,
                matched_keywords=matched,
            ))
        return matches

    async def link_to_concept(
        self,
        memory_internal_id: str,
        concept_id: str,
        link_type: ConceptLinkType = ConceptLinkType.instance_of,
        confidence: int = 80,
    ) -> None:
        if link_type == ConceptLinkType.instance_of:
            await self.client.execute_query("linkMemoryToInstanceOf", {
                "memory_id": memory_internal_id,
                "concept_id": concept_id,
                "confidence": confidence,
            })
        else:
            await self.client.execute_query("linkMemoryToCategory", {
                "memory_id": memory_internal_id,
                "concept_id": concept_id,
                "relevance": confidence,
            })

    def get_stats(self) -> OntologyStats:
        by_type: dict[str, int] = {}
        for c in self._concepts.values():
            by_type[c.concept_type.value] = by_type.get(c.concept_type.value, 0) + 1
        max_depth = max((self.get_depth(cid) for cid in self._concepts), default=0)
        return OntologyStats(
            total_concepts=len(self._concepts),
            total_relations=len(self._relations),
            concepts_by_type=by_type,
            max_depth=max_depth,
        )
