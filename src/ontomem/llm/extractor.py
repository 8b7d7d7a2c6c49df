import json
import logging

from pydantic import BaseModel, Field

from ..errors import ProviderError
from ..types import MemoryType
from .providers import LlmProvider

log = logging.getLogger("ontomem")

EXTRACTION_PROMPT = """You are the memory system of an AI assistant. Read the user's text and split it into atomic memories worth keeping. Each memory is one self-contained statement about the user or their work.

For each memory give:
- text: the statement, rewritten to stand alone
- memory_type: one of fact, preference, goal, opinion, experience, achievement
- certainty: 0-100, how sure the text is about it
- importance: 0-100, how much it should influence future behavior
- entities: names of people, tools, places or organizations it mentions"""

ENTITY_PROMPT = """
Also list every entity as {"id": short-slug, "name": ..., "type": person|organization|location|technology|concept|event|product|system|component|resource|process}."""

RELATION_PROMPT = """
Also list logical relations between the memories as {"from_memory_content": ..., "to_memory_content": ..., "relation_type": IMPLIES|BECAUSE|CONTRADICTS|SUPPORTS, "strength": 0-100, "confidence": 0-100, "explanation": ...}."""

FORMAT_PROMPT = """

Return a JSON object only, no other text:
{"memories": [...], "entities": [...], "relations": [...]}

If nothing is worth remembering, return: {"memories": [], "entities": [], "relations": []}"""


class ExtractedMemory(BaseModel):
    text: str
    memory_type: str = MemoryType.fact.value
    certainty: int = 80
    importance: int = 50
    entities: list[str] = Field(default_factory=list)


class ExtractedEntity(BaseModel):
    id: str = ""
    name: str
    type: str = "concept"


class ExtractedRelation(BaseModel):
    from_memory_content: str
    to_memory_content: str
    relation_type: str
    strength: int = 80
    confidence: int = 80
    explanation: str = ""


class ExtractionResult(BaseModel):
    memories: list[ExtractedMemory] = Field(default_factory=list)
    entities: list[ExtractedEntity] = Field(default_factory=list)
    relations: list[ExtractedRelation] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.memories


def parse_llm_json(text: str) -> dict | list | None:
    """Parse model output as JSON, tolerating prose around the payload."""
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        pass
    for open_ch, close_ch in (("{", "}"), ("[", "]")):
        start = text.find(open_ch)
        end = text.rfind(close_ch)
        if start >= 0 and end > start:
            try:
                return json.loads(text[start : end + 1])
            except json.JSONDecodeError:
                continue
    return None


def build_system_prompt(extract_entities: bool = True, extract_relations: bool = True) -> str:
    prompt = EXTRACTION_PROMPT
    if extract_entities:
        prompt += ENTITY_PROMPT
    if extract_relations:
        prompt += RELATION_PROMPT
    return prompt + FORMAT_PROMPT


def _clamp(value, default: int) -> int:
    try:
        return max(0, min(100, int(value)))
    except (TypeError, ValueError):
        return default


class MemoryExtractor:
    def __init__(self, llm: LlmProvider):
        self.llm = llm

    async def extract(
        self,
        text: str,
        user_id: str,
        extract_entities: bool = True,
        extract_relations: bool = True,
    ) -> ExtractionResult:
        system = build_system_prompt(extract_entities, extract_relations)
        try:
            raw, meta = await self.llm.generate(
                system, f"User: {user_id}\nText:\n{text}", "json_object",
            )
        except ProviderError as e:
            log.warning("extraction failed: %s", e)
            return ExtractionResult()

        data = parse_llm_json(raw)
        if not isinstance(data, dict):
            log.warning("extraction returned unparseable output from %s", meta.provider)
            return ExtractionResult()

        result = ExtractionResult()
        for item in data.get("memories") or []:
            if not isinstance(item, dict) or not str(item.get("text", "")).strip():
                continue
            mtype = MemoryType.from_str(item.get("memory_type")) or MemoryType.fact
            result.memories.append(ExtractedMemory(
                text=str(item["text"]).strip(),
                memory_type=mtype.value,
                certainty=_clamp(item.get("certainty"), 80),
                importance=_clamp(item.get("importance"), 50),
                entities=[str(e) for e in item.get("entities") or [] if e],
            ))
        if extract_entities:
            for item in data.get("entities") or []:
                if isinstance(item, dict) and item.get("name"):
                    result.entities.append(ExtractedEntity(
                        id=str(item.get("id", "")),
                        name=str(item["name"]),
                        type=str(item.get("type") or "concept"),
                    ))
        if extract_relations:
            for item in data.get("relations") or []:
                if not isinstance(item, dict):
                    continue
                try:
                    result.relations.append(ExtractedRelation(
                        from_memory_content=str(item["from_memory_content"]),
                        to_memory_content=str(item["to_memory_content"]),
                        relation_type=str(item.get("relation_type", "IMPLIES")).upper(),
                        strength=_clamp(item.get("strength"), 80),
                        confidence=_clamp(item.get("confidence"), 80),
                        explanation=str(item.get("explanation", "")),
                    ))
                except KeyError:
                    continue

        log.info("extracted %d memories, %d entities, %d relations",
                 len(result.memories), len(result.entities), len(result.relations))
        return result
