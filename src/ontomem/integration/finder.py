import logging

from ..errors import StoreError
from ..store.helix import HelixClient
from ..store.records import hit_cosine, is_searchable, vector_hits
from .decision import SimilarMemory

log = logging.getLogger("ontomem")

DEFAULT_MAX_SIMILAR = 5
DEFAULT_SIMILARITY_THRESHOLD = 0.7


class SimilarMemoryFinder:
    def __init__(
        self,
        client: HelixClient,
        max_similar: int = DEFAULT_MAX_SIMILAR,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ):
        self.client = client
        self.max_similar = max(1, max_similar)
        self.similarity_threshold = similarity_threshold

    async def find(
        self,
        vector: list[float],
        user_id: str,
        exclude_memory_id: str | None = None,
    ) -> list[SimilarMemory]:
        """Top neighbors of `vector` owned by `user_id`, best first.

        Store errors yield an empty list; the caller then treats the memory
        as new.
        """
        try:
            result = await self.client.execute_query("smartVectorSearchWithChunks", {
                "query_vector": vector,
                "limit": self.max_similar * 2,
            })
        except StoreError as e:
            log.warning("similar memory search failed: %s", e)
            return []

        similar: list[SimilarMemory] = []
        for hit in vector_hits(result):
            mid = hit["memory_id"]
            if mid == exclude_memory_id:
                continue
            if user_id and hit.get("user_id") and hit["user_id"] != user_id:
                continue
            if not is_searchable(hit):
                continue
            score = hit_cosine(vector, hit)
            if score < self.similarity_threshold:
                continue
            similar.append(SimilarMemory(
                id=mid,
                content=hit.get("content", "") or "",
                score=score,
                created_at=hit.get("created_at", "") or "",
                user_id=hit.get("user_id", "") or "",
                internal_id=str(hit["id"]) if hit.get("id") else None,
            ))

        similar.sort(key=lambda s: s.score, reverse=True)
        return similar[: self.max_similar]
