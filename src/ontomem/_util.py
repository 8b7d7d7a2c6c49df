import math
import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    return utcnow().isoformat()


def short_id(prefix: str) -> str:
    """e.g. short_id("mem") -> "mem_3f9a0c21b7de"."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def preview(text: str, limit: int = 80) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def parse_datetime(value) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        s = str(value).strip()
        if not s:
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Raw cosine in [-1, 1]. Mismatched or empty vectors give 0.0."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    na = math.sqrt(sum(x * x for x in a))
    nb = math.sqrt(sum(y * y for y in b))
    if na == 0.0 or nb == 0.0:
        return 0.0
    return max(-1.0, min(1.0, dot / (na * nb)))


def rescaled_cosine(a: list[float], b: list[float]) -> float:
    """Cosine mapped onto [0, 1] as (cos + 1) / 2."""
    if not a or not b or len(a) != len(b):
        return 0.0
    return max(0.0, min(1.0, (cosine_similarity(a, b) + 1.0) / 2.0))
