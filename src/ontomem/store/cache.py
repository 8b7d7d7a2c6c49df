"""In-process caches. Nothing here is persisted; caches start cold."""

from __future__ import annotations

import hashlib
import logging
import struct
import time
from collections import OrderedDict
from typing import Any

log = logging.getLogger("ontomem")


class LruTtlCache:
    """Bounded LRU with per-entry time-to-live.

    Reads reorder entries, so every access mutates state. Callers that share
    one across tasks guard it with a single asyncio.Lock.
    """

    def __init__(self, max_size: int = 1000, ttl: float = 300.0):
        self.max_size = max(1, max_size)
        self.ttl = ttl
        self._data: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.invalidations = 0

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def _expired(self, inserted_at: float) -> bool:
        return time.monotonic() - inserted_at >= self.ttl

    def get(self, key: str) -> Any | None:
        entry = self._data.get(key)
        if entry is None:
            self.misses += 1
            return None
        value, inserted_at = entry
        if self._expired(inserted_at):
            del self._data[key]
            self.evictions += 1
            self.misses += 1
            return None
        self._data.move_to_end(key)
        self.hits += 1
        return value

    def put(self, key: str, value: Any) -> None:
        if key in self._data:
            self._data.move_to_end(key)
        self._data[key] = (value, time.monotonic())
        while len(self._data) > self.max_size:
            self._data.popitem(last=False)
            self.evictions += 1

    def invalidate(self, key: str) -> bool:
        if self._data.pop(key, None) is not None:
            self.invalidations += 1
            return True
        return False

    def clear(self) -> None:
        self._data.clear()

    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def stats(self) -> dict:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "invalidations": self.invalidations,
            "size": len(self._data),
            "max_size": self.max_size,
            "hit_rate": self.hit_rate(),
        }


class EmbeddingCache:
    """Exact-text embedding cache. When full, the oldest insert is evicted."""

    def __init__(self, max_size: int = 1000, ttl: float = 3600.0):
        self.max_size = max(1, max_size)
        self.ttl = ttl
        self._data: dict[str, tuple[list[float], float]] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _key(text: str) -> str:
        return hashlib.sha256(text.encode()).hexdigest()

    def get(self, text: str) -> list[float] | None:
        key = self._key(text)
        entry = self._data.get(key)
        if entry is None:
            self.misses += 1
            return None
        vector, created_at = entry
        if time.monotonic() - created_at >= self.ttl:
            del self._data[key]
            self.misses += 1
            return None
        self.hits += 1
        return vector

    def put(self, text: str, vector: list[float]) -> None:
        key = self._key(text)
        if key not in self._data and len(self._data) >= self.max_size:
            oldest = min(self._data, key=lambda k: self._data[k][1])
            del self._data[oldest]
        self._data[key] = (vector, time.monotonic())

    def clear(self) -> None:
        self._data.clear()

    def stats(self) -> dict:
        total = self.hits + self.misses
        return {
            "hits": self.hits,
            "misses": self.misses,
            "size": len(self._data),
            "hit_rate": self.hits / total if total else 0.0,
        }


def make_key(*parts: Any) -> str:
    """sha256 over the parts. Float lists are hashed by their packed bytes."""
    h = hashlib.sha256()
    for part in parts:
        if isinstance(part, (list, tuple)) and all(isinstance(x, float) for x in part):
            h.update(struct.pack(f"<{len(part)}d", *part))
        else:
            h.update(repr(part).encode())
        h.update(b"\x00")
    return h.hexdigest()
