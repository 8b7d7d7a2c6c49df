import logging

from ..core import MemoryCore
from ..errors import NotFound
from ..store.records import LOGICAL_KEYS, logical_connections

log = logging.getLogger("ontomem")


def _date(created_at: str) -> str:
    return created_at[:10] if created_at else "?"


async def do_recall(
    core: MemoryCore,
    query: str,
    user_id: str | None = None,
    mode: str | None = None,
    limit: int | None = None,
) -> str:
    results = await core.search(query, user_id=user_id, mode=mode, limit=limit)
    if not results:
        return "No memories found matching that query."

    lines = []
    for r in results:
        via = f" via {r.edge_type} from {r.parent_id}" if r.source == "graph" else ""
        lines.append(
            f"[{r.memory_type or 'fact'}, score={r.combined_score:.2f}{via}] "
            f"({_date(r.created_at)}) {r.content}\n  id: {r.memory_id}"
        )
    return f"Found {len(results)} memories:\n\n" + "\n\n".join(lines)


async def do_recall_by_concept(
    core: MemoryCore,
    query: str,
    user_id: str | None = None,
    mode: str = "contextual",
    limit: int | None = None,
) -> str:
    results = await core.search_by_concept(query, user_id=user_id, mode=mode, limit=limit)
    if not results:
        return "No memories found for those concepts."

    lines = []
    for r in results:
        concepts = ", ".join(c.concept_id for c in r.matched_concepts) or "-"
        lines.append(
            f"[{r.memory_type or 'fact'}, score={r.final_score:.2f}, concepts={concepts}] "
            f"{r.content}\n  id: {r.memory_id}"
        )
    return f"Found {len(results)} memories:\n\n" + "\n\n".join(lines)


async def do_recall_chain(
    core: MemoryCore,
    query: str,
    user_id: str | None = None,
    preset: str | None = None,
    limit: int = 5,
) -> str:
    result = await core.search_chain(query, user_id=user_id, config=preset, limit=limit)
    if not result.chains:
        return "No reasoning chains found."
    header = (
        f"Found {result.total_chains} chains over {result.total_memories} memories "
        f"(deepest: {result.deepest_chain}):"
    )
    return header + "\n\n" + "\n\n".join(result.reasoning_trails())


async def do_get_memory(core: MemoryCore, memory_id: str) -> str:
    memory = await core.get(memory_id)
    if memory is None:
        return f"No memory found with id: {memory_id}"
    status = []
    if memory.is_deleted:
        status.append(f"deleted by {memory.deleted_by or '?'}")
    if memory.valid_until:
        status.append(f"valid until {memory.valid_until}")
    suffix = f" ({'; '.join(status)})" if status else ""
    return (
        f"[{memory.memory_type}] {memory.content}{suffix}\n"
        f"  id: {memory.memory_id}\n"
        f"  user: {memory.user_id}, certainty: {memory.certainty}, "
        f"importance: {memory.importance}, created: {memory.created_at}"
    )


async def do_memory_graph(core: MemoryCore, memory_id: str) -> str:
    try:
        raw = await core.client.execute_query("getMemoryLogicalConnections", {"memory_id": memory_id})
    except NotFound:
        return f"No memory found with id: {memory_id}"
    conns = logical_connections(raw)
    lines = []
    for key in LOGICAL_KEYS:
        for rec in conns[key]:
            label, _, direction = key.rpartition("_")
            arrow = "->" if direction == "out" else "<-"
            edge = "RELATES_TO" if label == "relation" else label.upper()
            lines.append(f"{arrow} {edge} {rec.get('memory_id', '?')}: {rec.get('content', '')}")
    if not lines:
        return f"{memory_id} has no reasoning links."
    return f"{memory_id} has {len(lines)} links:\n" + "\n".join(lines)
