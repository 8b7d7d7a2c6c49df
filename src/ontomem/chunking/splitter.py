import re
from enum import Enum

from pydantic import BaseModel

from ..errors import ContentTooShort
from ..types import TextChunk

WORDS_PER_TOKEN = 0.75

_SENTENCE_END = re.compile(r"[^.!?]+(?:[.!?]+|$)")


class ChunkingStrategy(str, Enum):
    sentence = "sentence"
    semantic = "semantic"


class ChunkingConfig(BaseModel):
    chunk_size: int = 512            # estimated tokens per chunk
    chunk_overlap: int = 128         # characters carried into the next chunk
    min_sentences_per_chunk: int = 2
    min_chunk_length: int = 1000     # characters; shorter memories are stored whole
    similarity_threshold: float = 0.7
    strategy: ChunkingStrategy = ChunkingStrategy.semantic

    def needs_chunking(self, content_length: int) -> bool:
        return content_length >= self.min_chunk_length


def estimate_tokens(text: str) -> int:
    return int(len(text.split()) / WORDS_PER_TOKEN)


def split_sentences(text: str) -> list[tuple[str, int, int]]:
    """Sentences with their [start, end) offsets in `text`."""
    out = []
    for m in _SENTENCE_END.finditer(text):
        raw = m.group(0)
        stripped = raw.strip()
        if not stripped:
            continue
        start = m.start() + (len(raw) - len(raw.lstrip()))
        out.append((stripped, start, start + len(stripped)))
    return out


class SentenceSplitter:
    name = "sentence"

    def __init__(self, chunk_size: int = 512, overlap: int = 128, min_sentences: int = 2):
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.min_sentences = min_sentences

    def _overlap_tail(self, chunk_text: str) -> str:
        if self.overlap <= 0 or len(chunk_text) <= self.overlap:
            return ""
        tail = chunk_text[-self.overlap:]
        # start the carried text on a word boundary
        if not chunk_text[-self.overlap - 1].isspace() and " " in tail:
            tail = tail[tail.index(" ") + 1:]
        return tail.strip()

    def split(self, text: str) -> list[TextChunk]:
        if not text or not text.strip():
            raise ContentTooShort("cannot split empty content")

        chunks: list[TextChunk] = []
        parts: list[str] = []
        tokens = 0
        count = 0
        start: int | None = None
        end = 0

        for sentence, s_start, s_end in split_sentences(text):
            sentence_tokens = estimate_tokens(sentence)
            if parts and count >= self.min_sentences and tokens + sentence_tokens > self.chunk_size:
                chunk_text = " ".join(parts)
                chunks.append(TextChunk(
                    text=chunk_text,
                    token_count=estimate_tokens(chunk_text),
                    start_pos=start or 0,
                    end_pos=end,
                ))
                tail = self._overlap_tail(chunk_text)
                if tail:
                    parts = [tail]
                    tokens = estimate_tokens(tail)
                    start = max(0, end - len(tail))
                else:
                    parts = []
                    tokens = 0
                    start = None
                count = 0

            if start is None:
                start = s_start
            parts.append(sentence)
            tokens += sentence_tokens
            count += 1
            end = s_end

        if parts:
            chunk_text = " ".join(parts)
            chunks.append(TextChunk(
                text=chunk_text,
                token_count=estimate_tokens(chunk_text),
                start_pos=start or 0,
                end_pos=end,
            ))
        return chunks


class SemanticSplitter:
    """Sentence splitting for now; embedding-based boundaries would slot in here."""

    name = "semantic"

    def __init__(self, chunk_size: int = 512, overlap: int = 128, min_sentences: int = 2,
                 similarity_threshold: float = 0.7):
        self.similarity_threshold = similarity_threshold
        self._inner = SentenceSplitter(chunk_size, overlap, min_sentences)

    def split(self, text: str) -> list[TextChunk]:
        return self._inner.split(text)


def create_splitter(config: ChunkingConfig) -> SentenceSplitter | SemanticSplitter:
    if config.strategy == ChunkingStrategy.sentence:
        return SentenceSplitter(config.chunk_size, config.chunk_overlap,
                                config.min_sentences_per_chunk)
    return SemanticSplitter(config.chunk_size, config.chunk_overlap,
                            config.min_sentences_per_chunk, config.similarity_threshold)
