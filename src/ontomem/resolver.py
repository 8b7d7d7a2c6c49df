"""External memory_id -> internal store id resolution.

One LRU+TTL cache guarded by a single lock; reads take the lock too because
a hit reorders the LRU. Mutators call invalidate() themselves.
"""

import asyncio
import logging

from pydantic import BaseModel, Field

from .errors import (
    InvalidMemoryId,
    MemoryNotFound,
    NotFound,
    OmcError,
    PartialFailure,
    SingleFailure,
    TotalFailure,
)
from .store.cache import LruTtlCache
from .store.helix import HelixClient

log = logging.getLogger("ontomem")

DEFAULT_MAX_PARALLEL = 100
DEFAULT_RETRY_ATTEMPTS = 2
RETRY_BASE_DELAY = 0.1


def extract_internal_id(result) -> str | None:
    """Pull the internal id out of a getMemory/addMemory style response."""
    if not isinstance(result, dict):
        return None
    memory = result.get("memory", result)
    if isinstance(memory, list):
        memory = memory[0] if memory else None
    if not isinstance(memory, dict):
        return None
    internal = memory.get("id")
    return str(internal) if internal else None


class IdResolver:
    def __init__(self, client: HelixClient, cache_size: int = 1000, ttl: float = 300.0):
        self.client = client
        self._cache = LruTtlCache(cache_size, ttl)
        self._lock = asyncio.Lock()

    async def resolve(self, memory_id: str) -> str:
        if not memory_id or not memory_id.strip():
            raise InvalidMemoryId("memory_id is empty")

        async with self._lock:
            cached = self._cache.get(memory_id)
        if cached is not None:
            return cached

        try:
            result = await self.client.execute_query_no_retry(
                "getMemory", {"memory_id": memory_id},
            )
        except NotFound:
            raise MemoryNotFound(memory_id)

        internal = extract_internal_id(result)
        if internal is None:
            raise MemoryNotFound(memory_id)

        async with self._lock:
            self._cache.put(memory_id, internal)
        log.debug("resolved %s -> %s", memory_id, internal)
        return internal

    async def resolve_many(
        self, memory_ids: list[str], max_parallel: int = DEFAULT_MAX_PARALLEL,
    ) -> dict[str, str]:
        """Resolve ids concurrently without retries; misses are skipped."""
        batch = BatchResolver(self, max_parallel, retry_attempts=0)
        result = await batch.resolve_batch(memory_ids)
        return result.resolved

    async def remember(self, memory_id: str, internal_id: str) -> None:
        """Seed the cache right after a write so the next resolve is free."""
        async with self._lock:
            self._cache.put(memory_id, internal_id)

    async def invalidate(self, memory_id: str) -> bool:
        async with self._lock:
            return self._cache.invalidate(memory_id)

    async def clear(self) -> None:
        async with self._lock:
            self._cache.clear()

    def get_stats(self) -> dict:
        return self._cache.stats()


class BatchResult(BaseModel):
    resolved: dict[str, str] = Field(default_factory=dict)
    failed: list[tuple[str, str]] = Field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.resolved)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    def is_complete(self) -> bool:
        return not self.failed


class BatchResolver:
    def __init__(
        self,
        resolver: IdResolver,
        max_parallel: int = DEFAULT_MAX_PARALLEL,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_delay: float = RETRY_BASE_DELAY,
    ):
        self.resolver = resolver
        self.max_parallel = max(1, max_parallel)
        self.retry_attempts = max(0, retry_attempts)
        self.retry_delay = retry_delay

    async def _resolve_one(self, sem: asyncio.Semaphore, memory_id: str) -> str:
        async with sem:
            attempt = 0
            while True:
                try:
                    return await self.resolver.resolve(memory_id)
                except OmcError:
                    if attempt >= self.retry_attempts:
                        raise
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))
                    attempt += 1

    async def resolve_batch(
        self, memory_ids: list[str], fail_fast: bool = False, strict: bool = False,
    ) -> BatchResult:
        """Resolve many ids under a semaphore.

        fail_fast raises SingleFailure for the first id that could not be
        resolved. strict raises PartialFailure/TotalFailure instead of
        returning a result with a non-empty failed list.
        """
        unique = list(dict.fromkeys(memory_ids))
        result = BatchResult()
        if not unique:
            return result

        sem = asyncio.Semaphore(self.max_parallel)
        outcomes = await asyncio.gather(
            *(self._resolve_one(sem, mid) for mid in unique),
            return_exceptions=True,
        )

        for mid, outcome in zip(unique, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if fail_fast:
                    raise SingleFailure(mid, outcome)
                result.failed.append((mid, str(outcome)))
            else:
                result.resolved[mid] = outcome

        if result.failed:
            log.warning("batch resolve: %d ok, %d failed",
                        result.success_count, result.failure_count)
            if strict:
                if not result.resolved:
                    raise TotalFailure(len(unique))
                raise PartialFailure(result.success_count, result.failure_count)
        return result
