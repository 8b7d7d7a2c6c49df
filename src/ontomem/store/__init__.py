from .cache import EmbeddingCache, LruTtlCache, make_key
from .helix import HelixClient

__all__ = ["HelixClient", "LruTtlCache", "EmbeddingCache", "make_key"]
