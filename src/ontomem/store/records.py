"""Parsers for loosely typed query responses.

Each helper takes whatever the store returned and produces plain python
values, falling back to empty results instead of raising.
"""

from datetime import datetime

from .._util import cosine_similarity, parse_datetime, utcnow

LOGICAL_KEYS = (
    "implies_out", "implies_in",
    "because_out", "because_in",
    "contradicts_out", "contradicts_in",
    # optional, not every store schema returns these
    "supports_out", "supports_in",
    "refutes_out", "refutes_in",
    "relation_out", "relation_in",
)


def _as_list(value) -> list:
    if isinstance(value, list):
        return value
    if value is None:
        return []
    return [value]


def records_under(result, key: str) -> list:
    """Items stored under key in a dict response; a bare list is taken as-is."""
    if isinstance(result, dict):
        return _as_list(result.get(key))
    if isinstance(result, list):
        return result
    return []


def vector_hits(result) -> list[dict]:
    """Flatten a smartVectorSearchWithChunks response.

    Direct memory hits come first, then parents of matching chunks. A memory
    reached both ways is kept once, with its first occurrence.
    """
    if isinstance(result, list):
        groups = [result]
    elif isinstance(result, dict):
        groups = [_as_list(result.get("memories")), _as_list(result.get("parent_memories"))]
    else:
        return []
    seen: set[str] = set()
    hits: list[dict] = []
    for group in groups:
        for rec in group:
            if not isinstance(rec, dict):
                continue
            mid = rec.get("memory_id")
            if not mid or mid in seen:
                continue
            seen.add(mid)
            hits.append(rec)
    return hits


def hit_vector(hit: dict) -> list[float] | None:
    for key in ("vector", "embedding", "vector_data"):
        value = hit.get(key)
        if isinstance(value, list) and value:
            return value
    return None


def hit_cosine(query_vector: list[float], hit: dict) -> float:
    """Raw cosine between the query and a hit, falling back to the store score."""
    vector = hit_vector(hit)
    if vector is not None:
        return cosine_similarity(query_vector, vector)
    try:
        return float(hit.get("score", 0.0) or 0.0)
    except (TypeError, ValueError):
        return 0.0


def is_deleted(rec: dict) -> bool:
    return bool(rec.get("is_deleted", 0))


def is_expired(rec: dict, now: datetime | None = None) -> bool:
    until = parse_datetime(rec.get("valid_until"))
    if until is None:
        return False
    return until < (now or utcnow())


def is_searchable(rec: dict, now: datetime | None = None) -> bool:
    """Default searches skip soft-deleted and expired memories."""
    return not is_deleted(rec) and not is_expired(rec, now)


def logical_connections(result) -> dict[str, list[dict]]:
    data = result if isinstance(result, dict) else {}
    out: dict[str, list[dict]] = {}
    for key in LOGICAL_KEYS:
        out[key] = [r for r in _as_list(data.get(key)) if isinstance(r, dict)]
    return out


def deleted_count(result) -> int:
    if isinstance(result, dict):
        for key in ("deleted_count", "count", "deleted"):
            value = result.get(key)
            if isinstance(value, bool):
                return int(value)
            if isinstance(value, (int, float)):
                return int(value)
    if isinstance(result, bool):
        return int(result)
    if isinstance(result, (int, float)):
        return int(result)
    return 0


def as_bool(result, key: str = "success") -> bool:
    if isinstance(result, dict):
        if key in result:
            return bool(result[key])
        return bool(result)
    return bool(result)
