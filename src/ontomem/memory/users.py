import logging

from ..errors import NotFound
from ..store.helix import HelixClient

log = logging.getLogger("ontomem")


class UserLinker:
    """Users are created lazily the first time they own a memory."""

    def __init__(self, client: HelixClient):
        self.client = client
        self._known: set[str] = set()

    async def ensure_user(self, user_id: str, name: str | None = None) -> None:
        if user_id in self._known:
            return
        try:
            result = await self.client.execute_query("getUser", {"user_id": user_id})
            if isinstance(result, dict) and "user" in result:
                exists = bool(result["user"])
            else:
                exists = bool(result)
        except NotFound:
            exists = False
        if not exists:
            await self.client.execute_query("addUser", {
                "user_id": user_id,
                "name": name or f"User {user_id}",
            })
            log.info("created user %s", user_id)
        self._known.add(user_id)

    async def link_memory_to_user(self, user_id: str, memory_internal_id: str,
                                  context: str = "created") -> None:
        await self.client.execute_query("linkUserToMemory", {
            "user_id": user_id,
            "memory_id": memory_internal_id,
            "context": context,
        })
