from .forget import do_forget, do_restore
from .recall import (
    do_get_memory,
    do_memory_graph,
    do_recall,
    do_recall_by_concept,
    do_recall_chain,
)
from .remember import do_remember

__all__ = [
    "do_forget",
    "do_restore",
    "do_get_memory",
    "do_memory_graph",
    "do_recall",
    "do_recall_by_concept",
    "do_recall_chain",
    "do_remember",
]
