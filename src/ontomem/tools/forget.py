import logging

from ..core import MemoryCore
from ..errors import AlreadyDeleted, MemoryNotFound, NotFound
from ..evolution.deletion import DeletionStrategy

log = logging.getLogger("ontomem")


async def do_forget(
    core: MemoryCore,
    memory_id: str,
    reason: str,
    user_id: str | None = None,
    hard: bool = False,
) -> str:
    strategy = DeletionStrategy.hard if hard else DeletionStrategy.soft
    try:
        result = await core.delete(
            memory_id, strategy, deleted_by=user_id or core.config.default_user, reason=reason,
        )
    except (MemoryNotFound, NotFound):
        return f"No memory found with id: {memory_id}"
    except AlreadyDeleted:
        return f"Memory {memory_id} is already forgotten."

    if result.strategy == DeletionStrategy.hard:
        return f"Deleted permanently: {memory_id} ({result.edges_deleted} edges removed)."
    return f"Forgotten: {memory_id} (reason: {reason}). It can be restored."


async def do_restore(core: MemoryCore, memory_id: str, user_id: str | None = None) -> str:
    result = await core.undelete(memory_id, restored_by=user_id or core.config.default_user)
    return f"Restored: {result.memory_id}."
