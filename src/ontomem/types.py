from enum import Enum

from pydantic import BaseModel, Field


class MemoryType(str, Enum):
    fact = "fact"
    preference = "preference"
    goal = "goal"
    opinion = "opinion"
    experience = "experience"
    achievement = "achievement"

    @classmethod
    def from_str(cls, s: str | None) -> "MemoryType | None":
        if not s:
            return None
        try:
            return cls(s.strip().lower())
        except ValueError:
            return None


class EntityType(str, Enum):
    person = "person"
    organization = "organization"
    location = "location"
    technology = "technology"
    concept = "concept"
    event = "event"
    product = "product"
    system = "system"
    component = "component"
    resource = "resource"
    process = "process"
    custom = "custom"

    @classmethod
    def normalize(cls, s: str | None) -> str:
        """Known types map to their value, anything else is kept as a custom label."""
        if not s or not s.strip():
            return cls.concept.value
        label = s.strip().lower()
        try:
            return cls(label).value
        except ValueError:
            return label


class EntityEdgeType(str, Enum):
    extracted_entity = "EXTRACTED_ENTITY"  # LLM-derived, carries confidence
    mentions = "MENTIONS"                  # textual, carries salience + sentiment


class ConceptType(str, Enum):
    abstract = "abstract"
    concrete = "concrete"


class ConceptLinkType(str, Enum):
    instance_of = "INSTANCE_OF"
    belongs_to_category = "BELONGS_TO_CATEGORY"


class RelationType(str, Enum):
    implies = "IMPLIES"
    because = "BECAUSE"
    contradicts = "CONTRADICTS"
    supersedes = "SUPERSEDES"
    derived_from = "DERIVED_FROM"
    supports = "SUPPORTS"
    refutes = "REFUTES"
    relates_to = "RELATES_TO"

    @classmethod
    def from_str(cls, s: str | None) -> "RelationType | None":
        if not s:
            return None
        try:
            return cls(s.strip().upper())
        except ValueError:
            return None


class User(BaseModel):
    user_id: str
    name: str


class Memory(BaseModel):
    memory_id: str
    content: str
    memory_type: str = MemoryType.fact.value
    user_id: str = ""
    certainty: int = 80
    importance: int = 50
    created_at: str = ""
    updated_at: str = ""
    valid_from: str = ""
    valid_until: str | None = None
    immutable: bool = False
    verified: bool = False
    context_tags: str = ""
    source: str = "user"
    metadata: str = "{}"
    is_deleted: bool = False
    deleted_at: str | None = None
    deleted_by: str | None = None
    internal_id: str | None = None

    @classmethod
    def from_record(cls, rec: dict) -> "Memory":
        """Build from a store record. Stores report booleans as 0/1 ints."""
        return cls(
            memory_id=rec.get("memory_id", ""),
            content=rec.get("content", "") or "",
            memory_type=rec.get("memory_type") or MemoryType.fact.value,
            user_id=rec.get("user_id", "") or "",
            certainty=int(rec.get("certainty", 80) or 0),
            importance=int(rec.get("importance", 50) or 0),
            created_at=rec.get("created_at", "") or "",
            updated_at=rec.get("updated_at", "") or "",
            valid_from=rec.get("valid_from", "") or rec.get("created_at", "") or "",
            valid_until=rec.get("valid_until") or None,
            immutable=bool(rec.get("immutable", 0)),
            verified=bool(rec.get("verified", 0)),
            context_tags=rec.get("context_tags", "") or "",
            source=rec.get("source", "user") or "user",
            metadata=rec.get("metadata", "{}") or "{}",
            is_deleted=bool(rec.get("is_deleted", 0)),
            deleted_at=rec.get("deleted_at") or None,
            deleted_by=rec.get("deleted_by") or None,
            internal_id=rec.get("id"),
        )


class TextChunk(BaseModel):
    text: str
    token_count: int
    start_pos: int
    end_pos: int


class MemoryChunk(BaseModel):
    chunk_id: str
    parent_memory_id: str
    position: int
    content: str
    token_count: int
    created_at: str
    internal_id: str | None = None


class Entity(BaseModel):
    entity_id: str
    name: str
    entity_type: str = EntityType.concept.value
    properties: dict = Field(default_factory=dict)
    aliases: list[str] = Field(default_factory=list)


class Concept(BaseModel):
    concept_id: str
    name: str
    concept_type: ConceptType = ConceptType.abstract
    description: str = ""
    parent_concept: str | None = None
    level: int = 0


class ConceptRelation(BaseModel):
    from_concept: str
    to_concept: str
    relation_type: str = "HAS_SUBTYPE"


class Context(BaseModel):
    context_id: str
    name: str
    properties: dict = Field(default_factory=dict)
    created_at: str = ""
