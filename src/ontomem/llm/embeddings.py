import logging

import httpx

from ..config import DEFAULT_OLLAMA_URL, EMBEDDING_TIMEOUT, EmbeddingConfig
from ..errors import BothProvidersFailed, ConfigError, EmbeddingError, EmptyText
from ..store.cache import EmbeddingCache

log = logging.getLogger("ontomem")


class EmbeddingProvider:
    name = "base"

    def __init__(self, model: str, url: str, timeout: float = EMBEDDING_TIMEOUT):
        self.model = model
        self.url = url.rstrip("/")
        self.timeout = timeout

    async def embed(self, text: str) -> list[float]:
        raise NotImplementedError


class OllamaEmbeddings(EmbeddingProvider):
    name = "ollama"

    async def embed(self, text: str) -> list[float]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.url}/api/embeddings",
                    json={"model": self.model, "prompt": text},
                )
        except httpx.HTTPError as e:
            raise EmbeddingError(f"ollama embeddings request failed: {e}") from e
        if resp.status_code != 200:
            log.error("ollama embeddings failed (%d): %s", resp.status_code, resp.text)
            raise EmbeddingError(f"ollama embeddings failed ({resp.status_code})")
        try:
            vector = resp.json().get("embedding")
        except (ValueError, AttributeError) as e:
            raise EmbeddingError(f"ollama returned an unreadable body: {e}") from e
        if not vector:
            raise EmbeddingError("ollama returned an empty embedding")
        return vector


class OpenAIEmbeddings(EmbeddingProvider):
    name = "openai"

    def __init__(self, model: str, url: str, api_key: str | None,
                 timeout: float = EMBEDDING_TIMEOUT):
        super().__init__(model, url, timeout)
        self.api_key = api_key

    async def embed(self, text: str) -> list[float]:
        headers = {"content-type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.url}/embeddings",
                    headers=headers,
                    json={"model": self.model, "input": text},
                )
        except httpx.HTTPError as e:
            raise EmbeddingError(f"openai embeddings request failed: {e}") from e
        if resp.status_code != 200:
            log.error("openai embeddings failed (%d): %s", resp.status_code, resp.text)
            raise EmbeddingError(f"openai embeddings failed ({resp.status_code})")
        try:
            return resp.json()["data"][0]["embedding"]
        except ValueError as e:
            raise EmbeddingError(f"openai returned an unreadable body: {e}") from e
        except (KeyError, IndexError, TypeError) as e:
            raise EmbeddingError("openai embeddings response had no data") from e


class EmbeddingGenerator:
    """Primary embedding provider with exact-text cache and local fallback."""

    def __init__(
        self,
        primary: EmbeddingProvider,
        cache: EmbeddingCache | None = None,
        fallback_url: str = DEFAULT_OLLAMA_URL,
        fallback_model: str = "nomic-embed-text",
        fallback_enabled: bool = True,
    ):
        self.primary = primary
        self.cache = cache if cache is not None else EmbeddingCache()
        self.fallback_url = fallback_url
        self.fallback_model = fallback_model
        # a local primary has nothing to fall back to
        self.fallback_enabled = fallback_enabled and not (
            isinstance(primary, OllamaEmbeddings) and primary.url == fallback_url.rstrip("/")
        )
        self._fallback: EmbeddingProvider | None = None
        self.using_fallback = False
        self.primary_failures = 0
        self.fallback_count = 0

    @property
    def model_name(self) -> str:
        if self.using_fallback:
            return self.fallback_model
        return self.primary.model

    def _get_fallback(self) -> EmbeddingProvider:
        if self._fallback is None:
            log.info("initializing fallback embeddings %s at %s",
                     self.fallback_model, self.fallback_url)
            self._fallback = OllamaEmbeddings(self.fallback_model, self.fallback_url)
        return self._fallback

    async def generate(self, text: str, use_cache: bool = True) -> list[float]:
        if not text or not text.strip():
            raise EmptyText()

        if use_cache:
            cached = self.cache.get(text)
            if cached is not None:
                return cached

        try:
            vector = await self.primary.embed(text)
            self.using_fallback = False
            self.primary_failures = 0
        except EmbeddingError as e:
            self.primary_failures += 1
            if not self.fallback_enabled:
                raise
            log.warning("primary embeddings %s failed, using fallback: %s",
                        self.primary.name, e)
            try:
                vector = await self._get_fallback().embed(text)
            except EmbeddingError as fe:
                raise BothProvidersFailed(e, fe) from fe
            self.using_fallback = True
            self.fallback_count += 1

        if use_cache:
            self.cache.put(text, vector)
        return vector

    def stats(self) -> dict:
        return {
            "using_fallback": self.using_fallback,
            "primary_failures": self.primary_failures,
            "fallback_count": self.fallback_count,
            "cache": self.cache.stats(),
        }


def create_embedder(config: EmbeddingConfig) -> EmbeddingGenerator:
    provider = config.provider.lower()
    if provider == "ollama":
        primary: EmbeddingProvider = OllamaEmbeddings(config.model, config.url)
    elif provider in ("openai", "openai-compatible", "openai_compatible"):
        primary = OpenAIEmbeddings(config.model, config.url, config.api_key)
    else:
        raise ConfigError(f"unknown embedding provider: {config.provider}")
    return EmbeddingGenerator(
        primary,
        cache=EmbeddingCache(config.cache_size, config.cache_ttl),
        fallback_url=config.fallback_url,
        fallback_model=config.fallback_model,
        fallback_enabled=config.fallback_enabled,
    )
