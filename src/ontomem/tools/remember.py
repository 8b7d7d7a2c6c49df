import logging

from .._util import preview
from ..core import MemoryCore
from ..integration.decision import Operation
from ..types import MemoryType

log = logging.getLogger("ontomem")


async def do_remember(
    core: MemoryCore,
    content: str,
    user_id: str | None = None,
    memory_type: str = MemoryType.fact.value,
    certainty: int | None = None,
    importance: int | None = None,
    context_tags: str = "",
    extract: bool = True,
) -> str:
    if MemoryType.from_str(memory_type) is None:
        return (
            f"invalid memory type '{memory_type}'. "
            "use: fact, preference, goal, opinion, experience, achievement"
        )

    result = await core.add(
        content,
        user_id=user_id,
        memory_type=memory_type,
        certainty=certainty,
        importance=importance,
        context_tags=context_tags,
        extract=extract,
    )

    lines = []
    for m in result.memories:
        if m.operation == Operation.NOOP:
            lines.append(f"Already known: {preview(m.content)} (id: {m.memory_id})")
        elif not m.created:
            lines.append(f"Updated [{m.memory_id}]: {preview(m.content)}")
        else:
            extra = []
            if m.chunks_created:
                extra.append(f"{m.chunks_created} chunks")
            if m.edges_created:
                extra.append(f"{m.edges_created} links")
            if m.operation not in (Operation.ADD, Operation.NOOP):
                extra.append(m.operation.value.lower())
            suffix = f" [{', '.join(extra)}]" if extra else ""
            lines.append(f"Remembered [{m.memory_type}]: {preview(m.content)} (id: {m.memory_id}){suffix}")

    if not lines:
        return "Nothing to remember."
    if result.relations_created:
        lines.append(f"{result.relations_created} reasoning links between them.")
    if result.errors:
        log.warning("remember finished with %d non-fatal errors", len(result.errors))
    return "\n".join(lines)
