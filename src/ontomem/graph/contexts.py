import json
import logging

from .._util import now_iso, short_id
from ..errors import StoreError, ValidationError
from ..store.helix import HelixClient
from ..types import Context, Memory

log = logging.getLogger("ontomem")


def memory_context_names(memory: Memory) -> list[str]:
    """context_tags may be a JSON object (keys), a JSON list, or comma-separated."""
    raw = (memory.context_tags or "").strip()
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return [str(k).lower() for k in parsed]
    if isinstance(parsed, list):
        return [str(v).lower() for v in parsed]
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


def _context_from_record(rec: dict) -> Context:
    props = rec.get("properties") or {}
    if isinstance(props, str):
        try:
            props = json.loads(props) if props else {}
        except json.JSONDecodeError:
            props = {}
    return Context(
        context_id=rec.get("context_id", ""),
        name=rec.get("name", ""),
        properties=props if isinstance(props, dict) else {},
        created_at=rec.get("created_at", "") or "",
    )


class ContextManager:
    def __init__(self, client: HelixClient, cache_size: int = 100):
        self.client = client
        self.cache_size = max(1, cache_size)
        self._cache: dict[str, Context] = {}
        self._active: dict[str, list[str]] = {}

    def __repr__(self) -> str:
        return f"ContextManager(cached={len(self._cache)})"

    def _add_to_cache(self, context: Context) -> None:
        if context.context_id not in self._cache and len(self._cache) >= self.cache_size:
            oldest = min(self._cache, key=lambda k: self._cache[k].created_at)
            del self._cache[oldest]
        self._cache[context.context_id] = context

    async def warm_up_cache(self, user_id: str | None = None, limit: int = 50) -> int:
        params: dict = {"limit": limit}
        if user_id:
            params["user_id"] = user_id
        try:
            result = await self.client.execute_query("getRecentContexts", params)
        except StoreError as e:
            log.warning("context warm-up failed: %s", e)
            return 0
        records = result.get("contexts", []) if isinstance(result, dict) else result or []
        for rec in records:
            self._add_to_cache(_context_from_record(rec))
        return len(records)

    async def create_context(self, name: str, properties: dict | None = None) -> Context:
        name = name.strip()
        if not name:
            raise ValidationError("context name cannot be empty")
        context = Context(
            context_id=short_id("ctx"),
            name=name,
            properties=properties or {},
            created_at=now_iso(),
        )
        try:
            await self.client.execute_query("addContext", {
                "context_id": context.context_id,
                "name": context.name,
                "properties": json.dumps(context.properties),
                "created_at": context.created_at,
            })
        except StoreError as e:
            log.warning("context %s not persisted, cached only: %s", name, e)
        self._add_to_cache(context)
        return context

    async def get_context(self, context_id: str) -> Context | None:
        if context_id in self._cache:
            return self._cache[context_id]
        try:
            result = await self.client.execute_query("getContext", {"context_id": context_id})
        except StoreError:
            return None
        rec = result.get("context") if isinstance(result, dict) else None
        if not rec:
            return None
        context = _context_from_record(rec)
        self._add_to_cache(context)
        return context

    async def get_context_by_name(self, name: str) -> Context | None:
        wanted = name.strip().lower()
        for context in self._cache.values():
            if context.name.lower() == wanted:
                return context
        try:
            result = await self.client.execute_query("getContextByName", {"name": name.strip()})
        except StoreError:
            return None
        rec = result.get("context") if isinstance(result, dict) else None
        if not rec:
            return None
        context = _context_from_record(rec)
        self._add_to_cache(context)
        return context

    async def link_memory_to_context(self, memory_internal_id: str, context_id: str,
                                     priority: int = 50) -> bool:
        if not 0 <= priority <= 100:
            raise ValidationError(f"priority must be between 0 and 100, got {priority}")
        try:
            await self.client.execute_query("linkMemoryToContext", {
                "memory_id": memory_internal_id,
                "context_id": context_id,
                "priority": priority,
            })
        except StoreError as e:
            log.warning("linking memory to context %s failed: %s", context_id, e)
            return False
        return True

    def activate_context(self, user_id: str, context_id: str) -> bool:
        active = self._active.setdefault(user_id, [])
        if context_id not in active:
            active.append(context_id)
        log.info("activated context %s for %s", context_id, user_id)
        return True

    def deactivate_context(self, user_id: str, context_id: str) -> bool:
        active = self._active.get(user_id)
        if active is None:
            return False
        if context_id in active:
            active.remove(context_id)
        return True

    def get_active_contexts(self, user_id: str) -> list[str]:
        return list(self._active.get(user_id, []))

    def filter_by_context(self, memories: list[Memory], context_names: list[str],
                          match_all: bool = False) -> list[Memory]:
        if not context_names:
            return memories
        wanted = [c.lower() for c in context_names]
        out = []
        for memory in memories:
            have = memory_context_names(memory)
            ok = all(c in have for c in wanted) if match_all else any(c in have for c in wanted)
            if ok:
                out.append(memory)
        return out

    def context_relevance(self, memory: Memory, active_contexts: list[str]) -> float:
        if not active_contexts:
            return 1.0
        have = memory_context_names(memory)
        if not have:
            return 0.5
        matches = sum(1 for c in active_contexts if c.lower() in have)
        return matches / len(active_contexts)

    def cached_count(self) -> int:
        return len(self._cache)
