import re

NEGATION_WORDS = (
    "not", "never", "don't", "doesn't", "isn't", "aren't", "wasn't",
    "weren't", "no longer", "actually", "but", "however", "instead",
)

SENTIMENT_PAIRS = (
    ("love", "hate"),
    ("like", "dislike"),
    ("best", "worst"),
    ("prefer", "avoid"),
    ("always", "never"),
)

# phrases saying the new statement replaces an older one
CHANGE_MARKERS = (
    "switched", "switch to", "moved to", "migrated", "changed to",
    "replaced", "no longer", "now use", "now using", "instead of", "anymore",
)

_VALUE_RE = re.compile(r"\b\d+(?::\d+)?\s*(?:am|pm|%|k|m)?\b")
_WORD_RE = re.compile(r"[a-z0-9']+")


def _has_phrase(text: str, phrase: str) -> bool:
    return re.search(rf"(?<![a-z']){re.escape(phrase)}(?![a-z'])", text) is not None


def _words(text: str) -> set[str]:
    return set(_WORD_RE.findall(text))


class ContradictionDetector:
    """Cheap lexical checks for "the new text disagrees with the old one"."""

    @staticmethod
    def reason(old_content: str, new_content: str) -> str | None:
        old_lower = old_content.lower()
        new_lower = new_content.lower()

        for word in NEGATION_WORDS:
            if _has_phrase(new_lower, word) and not _has_phrase(old_lower, word):
                return f"negation detected: '{word}'"

        for positive, negative in SENTIMENT_PAIRS:
            if (_has_phrase(old_lower, positive) and _has_phrase(new_lower, negative)) or (
                _has_phrase(old_lower, negative) and _has_phrase(new_lower, positive)
            ):
                return f"opposite sentiment: {positive} vs {negative}"

        # same statement, different number or time
        old_values = set(_VALUE_RE.findall(old_lower))
        new_values = set(_VALUE_RE.findall(new_lower))
        if old_values and new_values and old_values != new_values:
            old_rest = _words(_VALUE_RE.sub(" ", old_lower))
            new_rest = _words(_VALUE_RE.sub(" ", new_lower))
            if old_rest and old_rest == new_rest:
                return "conflicting values: " + ", ".join(sorted(old_values ^ new_values))

        return None

    @classmethod
    def is_contradiction(cls, old_content: str, new_content: str) -> bool:
        return cls.reason(old_content, new_content) is not None

    @staticmethod
    def is_change(new_content: str) -> bool:
        lowered = new_content.lower()
        return any(_has_phrase(lowered, marker) for marker in CHANGE_MARKERS)
