import json
import logging
from collections import OrderedDict

from .._util import short_id
from ..errors import NotFound, StoreError, ValidationError
from ..store.helix import HelixClient
from ..types import Entity, EntityEdgeType, EntityType

log = logging.getLogger("ontomem")


def _normalize_name(name: str) -> str:
    return name.strip().lower()


def _entity_from_record(rec: dict) -> Entity:
    """Store records keep properties and aliases as JSON strings."""
    props = rec.get("properties") or {}
    if isinstance(props, str):
        try:
            props = json.loads(props) if props else {}
        except json.JSONDecodeError:
            props = {}
    aliases = rec.get("aliases") or []
    if isinstance(aliases, str):
        try:
            aliases = json.loads(aliases) if aliases else []
        except json.JSONDecodeError:
            aliases = []
    return Entity(
        entity_id=rec.get("entity_id", ""),
        name=rec.get("name", ""),
        entity_type=EntityType.normalize(rec.get("entity_type")),
        properties=props if isinstance(props, dict) else {},
        aliases=[str(a) for a in aliases] if isinstance(aliases, list) else [],
    )


class EntityManager:
    """Canonical entity lookup. The in-process cache is the dedup authority."""

    def __init__(self, client: HelixClient, cache_size: int = 1000):
        self.client = client
        self.cache_size = max(1, cache_size)
        self._cache: OrderedDict[str, Entity] = OrderedDict()
        self._name_to_id: dict[str, str] = {}

    def __repr__(self) -> str:
        return f"EntityManager(cached_entities={len(self._cache)}, name_mappings={len(self._name_to_id)})"

    def _add_to_cache(self, entity: Entity) -> None:
        if entity.entity_id in self._cache:
            self._cache.move_to_end(entity.entity_id)
        elif len(self._cache) >= self.cache_size:
            _, evicted = self._cache.popitem(last=False)
            self._name_to_id.pop(_normalize_name(evicted.name), None)
        self._cache[entity.entity_id] = entity
        self._name_to_id[_normalize_name(entity.name)] = entity.entity_id

    def _cached_by_name(self, name: str) -> Entity | None:
        entity_id = self._name_to_id.get(_normalize_name(name))
        if entity_id is None:
            return None
        entity = self._cache.get(entity_id)
        if entity is not None:
            self._cache.move_to_end(entity_id)
        return entity

    async def create_entity(
        self, name: str, entity_type: str = "concept", properties: dict | None = None,
    ) -> Entity:
        name = name.strip()
        if not name:
            raise ValidationError("entity name cannot be empty")

        entity = Entity(
            entity_id=short_id("ent"),
            name=name,
            entity_type=EntityType.normalize(entity_type),
            properties=properties or {},
        )
        try:
            await self.client.execute_query("createEntity", {
                "entity_id": entity.entity_id,
                "name": entity.name,
                "entity_type": entity.entity_type,
                "properties": json.dumps(entity.properties),
                "aliases": "[]",
            })
            log.info("created entity %s (%s)", entity.name, entity.entity_type)
        except StoreError as e:
            log.warning("entity %s not persisted, cached only: %s", entity.name, e)

        self._add_to_cache(entity)
        return entity

    async def get_entity(self, entity_id: str) -> Entity | None:
        entity = self._cache.get(entity_id)
        if entity is not None:
            self._cache.move_to_end(entity_id)
            return entity
        try:
            result = await self.client.execute_query("getEntity", {"entity_id": entity_id})
        except NotFound:
            return None
        except StoreError as e:
            log.warning("entity lookup %s failed: %s", entity_id, e)
            return None
        rec = result.get("entity") if isinstance(result, dict) else None
        if not rec:
            return None
        entity = _entity_from_record(rec)
        self._add_to_cache(entity)
        return entity

    async def get_or_create_entity(
        self, name: str, entity_type: str = "concept", properties: dict | None = None,
    ) -> Entity:
        if not name or not name.strip():
            raise ValidationError("entity name cannot be empty")

        cached = self._cached_by_name(name)
        if cached is not None:
            return cached

        try:
            result = await self.client.execute_query("getEntityByName", {"name": name.strip()})
            rec = result.get("entity") if isinstance(result, dict) else None
            if rec:
                entity = _entity_from_record(rec)
                self._add_to_cache(entity)
                return entity
        except StoreError as e:
            log.debug("entity %s not in store: %s", name, e)

        return await self.create_entity(name, entity_type, properties)

    async def link_to_memory(
        self,
        entity_id: str,
        memory_internal_id: str,
        edge_type: EntityEdgeType = EntityEdgeType.extracted_entity,
        confidence: int = 80,
        salience: int = 50,
        sentiment: str = "neutral",
    ) -> None:
        if edge_type == EntityEdgeType.extracted_entity:
            await self.client.execute_query("linkExtractedEntity", {
                "memory_id": memory_internal_id,
                "entity_id": entity_id,
                "confidence": confidence,
                "method": "llm",
            })
        else:
            await self.client.execute_query("linkMentionsEntity", {
                "memory_id": memory_internal_id,
                "entity_id": entity_id,
                "salience": salience,
                "sentiment": sentiment,
            })
        log.debug("linked entity %s to memory %s (%s)", entity_id, memory_internal_id,
                  edge_type.value)

    async def entities_for_memory(self, memory_id: str) -> list[Entity]:
        try:
            result = await self.client.execute_query("getEntitiesForMemory", {"memory_id": memory_id})
        except StoreError as e:
            log.warning("entities for %s failed: %s", memory_id, e)
            return []
        entities = [_entity_from_record(r) for r in (result or {}).get("entities") or []]
        for entity in entities:
            self._add_to_cache(entity)
        return entities

    async def search_entities(self, query: str, limit: int = 10) -> list[Entity]:
        try:
            result = await self.client.execute_query("searchEntities", {"query": query, "limit": limit})
        except StoreError as e:
            log.warning("entity search failed: %s", e)
            return []
        entities = [_entity_from_record(r) for r in (result or {}).get("entities") or []]
        for entity in entities:
            self._add_to_cache(entity)
        return entities

    def cache_stats(self) -> dict:
        return {"cached_entities": len(self._cache), "name_mappings": len(self._name_to_id)}
