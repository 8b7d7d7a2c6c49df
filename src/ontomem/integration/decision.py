"""Decide what a new memory means relative to its near neighbors.

decide() never raises: provider failures and unparseable output degrade to
ADD with confidence 50 and the failure reason in `reasoning`.
"""

import logging
from enum import Enum

from pydantic import BaseModel, Field

from ..errors import ProviderError
from ..evolution.contradiction import ContradictionDetector
from ..llm.extractor import parse_llm_json
from ..llm.providers import LlmProvider

log = logging.getLogger("ontomem")

DUPLICATE_THRESHOLD = 0.92
LIKELY_DUPLICATE = 0.98

SYSTEM_PROMPT = """You manage a long-term memory store. A new memory arrived and the store already holds similar ones. Decide what to do with the new memory:

- ADD: it is new information, store it
- UPDATE: it refines an existing memory, merge them into merged_content
- DELETE: it says an existing memory should be dropped
- NOOP: it duplicates an existing memory, store nothing
- SUPERSEDE: it replaces an existing memory that is now outdated
- CONTRADICT: it conflicts with an existing memory and both must be kept

Only reference memory IDs from the list you are given. Answer with JSON only."""


class Operation(str, Enum):
    ADD = "ADD"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    NOOP = "NOOP"
    SUPERSEDE = "SUPERSEDE"
    CONTRADICT = "CONTRADICT"

    @classmethod
    def from_str(cls, s: str | None) -> "Operation | None":
        if not s:
            return None
        try:
            return cls(str(s).strip().upper())
        except ValueError:
            return None


class SimilarMemory(BaseModel):
    id: str
    content: str
    score: float
    created_at: str = ""
    user_id: str = ""
    internal_id: str | None = None


class MemoryDecision(BaseModel):
    operation: Operation
    confidence: int
    reasoning: str = ""
    target_memory_id: str | None = None
    merged_content: str | None = None
    supersedes_memory_id: str | None = None
    contradicts_memory_id: str | None = None
    relates_to: list[tuple[str, str]] = Field(default_factory=list)
    from_llm: bool = False

    @classmethod
    def add(cls, confidence: int, reasoning: str) -> "MemoryDecision":
        return cls(operation=Operation.ADD, confidence=confidence, reasoning=reasoning)

    @classmethod
    def noop(cls, target: str, confidence: int, reasoning: str) -> "MemoryDecision":
        return cls(operation=Operation.NOOP, target_memory_id=target,
                   confidence=confidence, reasoning=reasoning)

    @classmethod
    def update(cls, target: str, merged: str, confidence: int, reasoning: str) -> "MemoryDecision":
        return cls(operation=Operation.UPDATE, target_memory_id=target, merged_content=merged,
                   confidence=confidence, reasoning=reasoning)

    @classmethod
    def supersede(cls, target: str, confidence: int, reasoning: str) -> "MemoryDecision":
        return cls(operation=Operation.SUPERSEDE, target_memory_id=target,
                   supersedes_memory_id=target, confidence=confidence, reasoning=reasoning)

    @classmethod
    def contradict(cls, target: str, confidence: int, reasoning: str) -> "MemoryDecision":
        return cls(operation=Operation.CONTRADICT, target_memory_id=target,
                   contradicts_memory_id=target, confidence=confidence, reasoning=reasoning)


def build_decision_prompt(new_memory: str, similar: list[SimilarMemory], user_id: str) -> str:
    lines = [f"User: {user_id}", f"New memory: {new_memory}", "", "Existing similar memories:"]
    for i, mem in enumerate(similar, 1):
        lines.append(
            f"{i}. ID: {mem.id}\n   Content: {mem.content}\n"
            f"   Similarity: {mem.score:.2f}\n   Created: {mem.created_at or 'unknown'}"
        )
    lines.append("")
    lines.append(
        'Respond as {"operation": "ADD|UPDATE|DELETE|NOOP|SUPERSEDE|CONTRADICT", '
        '"target_memory_id": "...", "confidence": 0-100, "reasoning": "...", '
        '"merged_content": "...", "supersedes_memory_id": "...", '
        '"contradicts_memory_id": "...", "relates_to": [["memory_id", "IMPLIES|BECAUSE|RELATES_TO"]]}'
    )
    return "\n".join(lines)


def _normalize(text: str) -> str:
    return " ".join(text.lower().split()).rstrip(".!?")


def _as_id(value) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def _clamp_confidence(value, default: int = 50) -> int:
    try:
        return max(0, min(100, int(value)))
    except (TypeError, ValueError):
        return default


class DecisionEngine:
    def __init__(
        self,
        llm: LlmProvider | None = None,
        duplicate_threshold: float = DUPLICATE_THRESHOLD,
        detector: ContradictionDetector | None = None,
    ):
        self.llm = llm
        self.duplicate_threshold = duplicate_threshold
        self.detector = detector or ContradictionDetector()

    @staticmethod
    def is_likely_duplicate(score: float) -> bool:
        return score >= LIKELY_DUPLICATE

    async def decide(
        self, new_memory: str, similar: list[SimilarMemory], user_id: str,
    ) -> MemoryDecision:
        if not similar:
            return MemoryDecision.add(100, "No similar memories found")

        close = [s for s in similar if s.score >= self.duplicate_threshold]
        if not close:
            return MemoryDecision.add(
                95, f"No memories above {self.duplicate_threshold:.2f} similarity",
            )

        normalized = _normalize(new_memory)
        for s in close:
            if _normalize(s.content) == normalized:
                return MemoryDecision.noop(s.id, 100, f"Exact duplicate of {s.id}")

        if self.llm is None:
            return self._heuristic(new_memory, close)
        return await self._ask_llm(new_memory, similar, user_id)

    def _heuristic(self, new_memory: str, close: list[SimilarMemory]) -> MemoryDecision:
        best = max(close, key=lambda s: s.score)
        if self.is_likely_duplicate(best.score):
            return MemoryDecision.noop(best.id, 90, f"Near duplicate ({best.score:.2f})")
        reason = self.detector.reason(best.content, new_memory)
        if self.detector.is_change(new_memory):
            return MemoryDecision.supersede(
                best.id, 75, f"Replaces older memory ({reason or 'change marker'})",
            )
        if reason:
            return MemoryDecision.contradict(best.id, 70, reason)
        decision = MemoryDecision.add(80, "Related but distinct")
        decision.relates_to = [(s.id, "RELATES_TO") for s in close]
        return decision

    async def _ask_llm(
        self, new_memory: str, similar: list[SimilarMemory], user_id: str,
    ) -> MemoryDecision:
        prompt = build_decision_prompt(new_memory, similar, user_id)
        try:
            text, meta = await self.llm.generate(SYSTEM_PROMPT, prompt, "json_object")
        except ProviderError as e:
            log.warning("decision llm call failed: %s", e)
            return MemoryDecision.add(50, f"LLM call failed ({e})")

        try:
            decision = self._read_decision(text, similar)
        except (TypeError, ValueError, AttributeError) as e:
            log.warning("decision output unusable: %s", e)
            return MemoryDecision.add(50, f"JSON parse failed ({e})")
        if decision.from_llm:
            log.info("decision %s (%d) via %s: %s", decision.operation.value,
                     decision.confidence, meta.provider, decision.reasoning)
        return decision

    def _read_decision(self, text: str, similar: list[SimilarMemory]) -> MemoryDecision:
        data = parse_llm_json(text)
        if not isinstance(data, dict):
            return MemoryDecision.add(50, f"JSON parse failed ({text[:80]!r})")

        op = Operation.from_str(data.get("operation"))
        if op is None:
            return MemoryDecision.add(
                50, f"JSON parse failed (unknown operation {data.get('operation')!r})",
            )

        known = {s.id for s in similar}
        target = _as_id(data.get("target_memory_id"))
        supersedes = _as_id(data.get("supersedes_memory_id"))
        contradicts = _as_id(data.get("contradicts_memory_id"))
        if op == Operation.SUPERSEDE:
            supersedes = supersedes or target
            target = target or supersedes
        elif op == Operation.CONTRADICT:
            contradicts = contradicts or target
            target = target or contradicts

        if op in (Operation.UPDATE, Operation.DELETE, Operation.NOOP,
                  Operation.SUPERSEDE, Operation.CONTRADICT) and target not in known:
            return MemoryDecision.add(50, f"LLM referenced unknown memory {target!r}")

        relates_to: list[tuple[str, str]] = []
        raw_relations = data.get("relates_to")
        for item in raw_relations if isinstance(raw_relations, list) else []:
            if isinstance(item, (list, tuple)) and len(item) == 2:
                rid, rtype = item
            elif isinstance(item, dict):
                rid, rtype = item.get("id") or item.get("memory_id"), item.get("relation_type")
            else:
                continue
            rid = _as_id(rid)
            if rid in known and isinstance(rtype, str) and rtype:
                relates_to.append((rid, rtype.upper()))

        merged = data.get("merged_content")
        return MemoryDecision(
            operation=op,
            confidence=_clamp_confidence(data.get("confidence")),
            reasoning=str(data.get("reasoning", "")),
            target_memory_id=target,
            merged_content=merged if isinstance(merged, str) and merged else None,
            supersedes_memory_id=supersedes if op == Operation.SUPERSEDE else None,
            contradicts_memory_id=contradicts if op == Operation.CONTRADICT else None,
            relates_to=relates_to,
            from_llm=True,
        )
