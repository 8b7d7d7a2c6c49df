from .crud import MemoryCrud, new_memory_id
from .users import UserLinker

__all__ = ["MemoryCrud", "UserLinker", "new_memory_id"]
