import logging
import re

from pydantic import BaseModel, Field

from ..errors import ProviderError
from ..llm.extractor import parse_llm_json
from ..llm.providers import LlmProvider

log = logging.getLogger("ontomem")

INTENT_PATTERNS: dict[str, tuple[re.Pattern, ...]] = {
    intent: tuple(re.compile(p) for p in patterns)
    for intent, patterns in {
        "preference": (
            r"\b(like|love|prefer|favorite|enjoy|fond of|into)\b",
            r"\b(what do i like|what are my favorites|my preferences)\b",
        ),
        "skill": (
            r"\b(can i|able to|know how|capable|proficient|skilled|expert)\b",
            r"\b(what (can|do) i (do|know)|my (skills|abilities|expertise))\b",
        ),
        "goal": (
            r"\b(want to|goal|plan|aim|intend|aspire|wish)\b",
            r"\b(my (goals|plans|objectives|ambitions))\b",
        ),
        "fact": (
            r"\b(what is|tell me about|explain|describe|information about)\b",
            r"\b(how does|how do|what does)\b",
        ),
        "opinion": (
            r"\b(think|believe|opinion|feel about|view on)\b",
            r"\b(what do i think|my (opinion|view|thoughts))\b",
        ),
        "experience": (
            r"\b(did|have i|was i|when did|remember when)\b",
            r"\b(my (experience|history) with)\b",
        ),
        "recent": (
            r"\b(today|yesterday|recently|lately|just now|this week)\b",
            r"\b(what (did|have) i (do|done)|current|latest)\b",
        ),
    }.items()
}

EXPANSION_MAPPINGS: dict[str, tuple[str, ...]] = {
    "like": ("love", "enjoy", "prefer", "fond of", "appreciate"),
    "love": ("like", "adore", "enjoy", "passionate about"),
    "prefer": ("like", "favor", "choose", "opt for"),
    "can": ("able to", "capable of", "know how to", "proficient in"),
    "skill": ("ability", "expertise", "competence", "proficiency"),
    "want": ("wish", "desire", "aim", "plan", "intend"),
    "goal": ("objective", "target", "aim", "ambition", "plan"),
    "python": ("programming", "coding", "development", "backend"),
    "ai": ("artificial intelligence", "machine learning", "ml", "llm"),
    "today": ("now", "current", "recent", "latest"),
    "recently": ("lately", "just", "new", "fresh"),
}

INTENT_CONCEPTS = {
    "preference": "Preference",
    "skill": "Skill",
    "goal": "Goal",
    "fact": "Fact",
    "opinion": "Opinion",
    "experience": "Experience",
}

RECENT_WORDS = ("today", "yesterday", "recently", "lately", "just now", "this week")
BREADTH_WORDS = ("all", "everything", "complete", "full", "entire")

ANALYZER_PROMPT = "You are a query analyzer. Respond only with valid JSON."


class ProcessedQuery(BaseModel):
    original_query: str
    enhanced_query: str
    detected_intents: list[str] = Field(default_factory=list)
    concept_hints: list[str] = Field(default_factory=list)
    expanded_terms: list[str] = Field(default_factory=list)
    suggested_mode: str | None = None
    confidence: float = 0.0

    @classmethod
    def empty(cls, query: str) -> "ProcessedQuery":
        return cls(original_query=query, enhanced_query=query)


def detect_intents(query: str) -> list[str]:
    lowered = query.lower()
    return [
        intent for intent, patterns in INTENT_PATTERNS.items()
        if any(p.search(lowered) for p in patterns)
    ]


def _has_word(text: str, word: str) -> bool:
    return re.search(rf"\b{re.escape(word)}\b", text) is not None


class QueryProcessor:
    def __init__(self, llm: LlmProvider | None = None, enable_expansion: bool = True,
                 max_expansions: int = 5):
        self.llm = llm
        self.enable_expansion = enable_expansion
        self.max_expansions = max_expansions

    def process(self, query: str) -> ProcessedQuery:
        if not query.strip():
            return ProcessedQuery.empty(query)

        intents = detect_intents(query)
        concepts = [INTENT_CONCEPTS[i] for i in intents if i in INTENT_CONCEPTS]
        expansions = self.expand(query) if self.enable_expansion else []
        enhanced = " ".join([query] + expansions) if expansions else query
        result = ProcessedQuery(
            original_query=query,
            enhanced_query=enhanced,
            detected_intents=intents,
            concept_hints=concepts,
            expanded_terms=expansions,
            suggested_mode=self.suggest_mode(intents, query),
            confidence=self.confidence(intents, expansions),
        )
        log.debug("processed query %r: intents=%s mode=%s", query, intents, result.suggested_mode)
        return result

    async def process_with_llm(self, query: str) -> ProcessedQuery:
        """Rule-based result, enriched by the LLM when it answers with usable JSON."""
        result = self.process(query)
        if self.llm is None or not query.strip():
            return result

        prompt = (
            "Analyze the following user query and provide insights in JSON format:\n"
            f'Query: "{query}"\n'
            "Return a JSON object with:\n"
            "- intents: array of detected intents (preference, skill, goal, fact, opinion, experience, recent)\n"
            "- concepts: array of relevant ontology concepts\n"
            "- expansions: array of terms to expand the query\n"
            "- mode: suggested search mode (recent, contextual, deep, or null)"
        )
        try:
            text, _ = await self.llm.generate(ANALYZER_PROMPT, prompt, "json_object")
        except ProviderError as e:
            log.warning("query analysis failed: %s", e)
            return result

        data = parse_llm_json(text)
        if not isinstance(data, dict):
            log.warning("query analysis returned unparseable output")
            return result

        for field, target in (("intents", result.detected_intents),
                              ("concepts", result.concept_hints),
                              ("expansions", result.expanded_terms)):
            for item in data.get(field) or []:
                if isinstance(item, str) and item not in target:
                    target.append(item)
        if isinstance(data.get("mode"), str):
            result.suggested_mode = data["mode"]
        result.confidence = min(1.0, result.confidence + 0.2)
        return result

    def expand(self, query: str) -> list[str]:
        lowered = query.lower()
        out: list[str] = []
        for term, synonyms in EXPANSION_MAPPINGS.items():
            if not _has_word(lowered, term):
                continue
            for synonym in synonyms:
                if len(out) >= self.max_expansions:
                    return out
                if synonym not in out:
                    out.append(synonym)
        return out

    @staticmethod
    def suggest_mode(intents: list[str], query: str) -> str | None:
        lowered = query.lower()
        if "recent" in intents or any(_has_word(lowered, w) for w in RECENT_WORDS):
            return "recent"
        if any(_has_word(lowered, w) for w in BREADTH_WORDS):
            return "deep"
        if intents:
            return "contextual"
        return None

    @staticmethod
    def confidence(intents: list[str], expansions: list[str]) -> float:
        score = 0.3 + min(0.15 * len(intents), 0.3) + min(0.05 * len(expansions), 0.2)
        return min(1.0, score)
