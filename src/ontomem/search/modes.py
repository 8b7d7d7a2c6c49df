"""Search modes trade result breadth against prompt tokens."""

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel

from .._util import utcnow
from .traversal import SearchConfig

BASE_TOKENS_PER_RESULT = 200
TOKENS_PER_RELATION = 50


class SearchMode(str, Enum):
    recent = "recent"
    contextual = "contextual"
    deep = "deep"
    full = "full"

    @classmethod
    def from_str(cls, s: str | None) -> "SearchMode":
        if not s:
            return cls.recent
        try:
            return cls(s.strip().lower())
        except ValueError:
            return cls.recent


class ModeDefaults(BaseModel):
    max_results: int
    graph_depth: int
    temporal_days: float | None
    vector_top_k: int
    min_vector_score: float
    min_combined_score: float
    use_smart_traversal: bool


MODE_DEFAULTS: dict[SearchMode, ModeDefaults] = {
    # 4 hours
    SearchMode.recent: ModeDefaults(
        max_results=10, graph_depth=1, temporal_days=0.167, vector_top_k=5,
        min_vector_score=0.6, min_combined_score=0.4, use_smart_traversal=True,
    ),
    SearchMode.contextual: ModeDefaults(
        max_results=20, graph_depth=2, temporal_days=30, vector_top_k=10,
        min_vector_score=0.5, min_combined_score=0.3, use_smart_traversal=True,
    ),
    SearchMode.deep: ModeDefaults(
        max_results=50, graph_depth=3, temporal_days=90, vector_top_k=15,
        min_vector_score=0.4, min_combined_score=0.25, use_smart_traversal=True,
    ),
    SearchMode.full: ModeDefaults(
        max_results=100, graph_depth=4, temporal_days=None, vector_top_k=0,
        min_vector_score=0.0, min_combined_score=0.0, use_smart_traversal=False,
    ),
}


def get_defaults(mode: SearchMode | str) -> ModeDefaults:
    if isinstance(mode, str):
        mode = SearchMode.from_str(mode)
    return MODE_DEFAULTS[mode]


def temporal_cutoff(mode: SearchMode | str, now: datetime | None = None) -> datetime | None:
    days = get_defaults(mode).temporal_days
    if days is None:
        return None
    return (now or utcnow()) - timedelta(days=days)


def to_search_config(mode: SearchMode | str, limit: int | None = None) -> SearchConfig:
    """vector_top_k 0 means "as many as max_results"."""
    d = get_defaults(mode)
    top_k = d.vector_top_k or d.max_results
    if limit:
        top_k = max(top_k, limit)
    return SearchConfig(
        vector_top_k=top_k,
        graph_depth=d.graph_depth,
        min_vector_score=d.min_vector_score,
        min_combined_score=d.min_combined_score,
    )


def _cost_tier(tokens: int) -> str:
    if tokens < 5000:
        return "low"
    if tokens < 15000:
        return "medium"
    if tokens < 50000:
        return "high"
    return "very_high"


def estimate_token_cost(
    mode: SearchMode | str,
    num_results: int | None = None,
    graph_depth: int | None = None,
) -> dict:
    if isinstance(mode, str):
        mode = SearchMode.from_str(mode)
    d = MODE_DEFAULTS[mode]
    results = d.max_results if num_results is None else num_results
    depth = d.graph_depth if graph_depth is None else graph_depth

    multiplier = 1 + 2 * depth
    per_result = BASE_TOKENS_PER_RESULT + TOKENS_PER_RELATION * depth * 2
    total = per_result * results * multiplier
    return {
        "mode": mode.value,
        "num_results": results,
        "graph_depth": depth,
        "estimated_tokens": total,
        "cost_tier": _cost_tier(total),
    }
