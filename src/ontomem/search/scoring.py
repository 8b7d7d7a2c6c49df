import math
from datetime import datetime, timedelta

from .._util import parse_datetime, rescaled_cosine, utcnow
from ..store.records import hit_vector

NEUTRAL_SIMILARITY = 0.5
UNKNOWN_FRESHNESS = 0.5


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def temporal_freshness(created_at, decay_days: float, now: datetime | None = None) -> float:
    """exp(-days_old / decay_days); 0.5 when the timestamp is unreadable."""
    created = parse_datetime(created_at)
    if created is None or decay_days <= 0:
        return UNKNOWN_FRESHNESS
    days_old = ((now or utcnow()) - created).total_seconds() / 86400.0
    return clamp01(math.exp(-days_old / decay_days))


def within_window(created_at, hours: float | None, now: datetime | None = None) -> bool:
    if hours is None:
        return True
    created = parse_datetime(created_at)
    if created is None:
        return True
    return created >= (now or utcnow()) - timedelta(hours=hours)


def before_cutoff(created_at, cutoff: datetime | None) -> bool:
    if cutoff is None:
        return False
    created = parse_datetime(created_at)
    return created is not None and created < cutoff


def vector_score(query_vector: list[float], hit: dict) -> float:
    """Query/hit similarity on [0, 1].

    Uses the hit's own vector when the store returns one, otherwise treats
    the store's `score` as a cosine and rescales it the same way.
    """
    vector = hit_vector(hit)
    if vector is not None:
        return rescaled_cosine(query_vector, vector)
    raw = hit.get("score")
    if raw is None:
        return NEUTRAL_SIMILARITY
    try:
        return clamp01((float(raw) + 1.0) / 2.0)
    except (TypeError, ValueError):
        return NEUTRAL_SIMILARITY


def neighbor_similarity(query_vector: list[float], rec: dict) -> float:
    vector = hit_vector(rec)
    if vector is None:
        return NEUTRAL_SIMILARITY
    return rescaled_cosine(query_vector, vector)


def vector_combined(vector: float, temporal: float) -> float:
    return clamp01(0.7 * vector + 0.3 * temporal)


def graph_combined(semantic: float, graph: float, temporal: float) -> float:
    return clamp01(0.3 * semantic + 0.5 * graph + 0.2 * temporal)


def graph_score(edge_weight: float, parent_score: float) -> float:
    return clamp01(edge_weight * parent_score)


def edge_confidence(rec: dict) -> float:
    """Edge weight on [0, 1] from whichever of confidence/probability/strength is set."""
    for key in ("confidence", "probability", "strength"):
        value = rec.get(key)
        if value is None:
            continue
        try:
            value = float(value)
        except (TypeError, ValueError):
            continue
        return clamp01(value / 100.0 if value > 1.0 else value)
    return 1.0
