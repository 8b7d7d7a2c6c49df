import os
import logging

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .errors import ConfigError

load_dotenv()

log = logging.getLogger("ontomem")

DEFAULT_HELIX_HOST = "localhost"
DEFAULT_HELIX_PORT = 6969
DEFAULT_OLLAMA_URL = "http://localhost:11434"
CEREBRAS_URL = "https://api.cerebras.ai/v1"

LLM_TIMEOUT = 600.0
EMBEDDING_TIMEOUT = 30.0
STORE_TIMEOUT = 30.0

DEFAULT_CACHE_SIZE = 1000
DEFAULT_CACHE_TTL = 300.0


def _env(name: str, default: str = "") -> str:
    val = os.getenv(name, "")
    # unfilled .env templates use <placeholder> values
    if not val or val.startswith("<"):
        return default
    return val


def _env_int(name: str, default: int) -> int:
    val = _env(name)
    if not val:
        return default
    try:
        return int(val)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {val!r}")


def _env_float(name: str, default: float) -> float:
    val = _env(name)
    if not val:
        return default
    try:
        return float(val)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {val!r}")


def _env_bool(name: str, default: bool) -> bool:
    val = _env(name)
    if not val:
        return default
    return val.lower() in ("true", "1", "yes")


class HelixConfig(BaseModel):
    host: str = DEFAULT_HELIX_HOST
    port: int = DEFAULT_HELIX_PORT
    instance: str = "dev"
    timeout: float = STORE_TIMEOUT
    max_retries: int = 3

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


class LlmConfig(BaseModel):
    provider: str = "cerebras"
    model: str = "llama-3.3-70b"
    api_key: str | None = None
    base_url: str | None = None
    temperature: float = 0.3
    fallback_enabled: bool = True
    fallback_url: str = DEFAULT_OLLAMA_URL
    fallback_model: str = "llama3.2"


class EmbeddingConfig(BaseModel):
    provider: str = "ollama"
    model: str = "nomic-embed-text"
    url: str = DEFAULT_OLLAMA_URL
    api_key: str | None = None
    fallback_enabled: bool = True
    fallback_url: str = DEFAULT_OLLAMA_URL
    fallback_model: str = "nomic-embed-text"
    cache_size: int = DEFAULT_CACHE_SIZE
    cache_ttl: float = 3600.0


class SearchDefaults(BaseModel):
    limit: int = 10
    mode: str = "recent"
    certainty: int = 80
    importance: int = 50


class OmcConfig(BaseModel):
    helix: HelixConfig = Field(default_factory=HelixConfig)
    llm: LlmConfig = Field(default_factory=LlmConfig)
    embeddings: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    search: SearchDefaults = Field(default_factory=SearchDefaults)
    default_user: str = "default"

    @classmethod
    def from_env(cls) -> "OmcConfig":
        return cls(
            helix=get_helix_config(),
            llm=get_llm_config(),
            embeddings=get_embedding_config(),
            search=SearchDefaults(),
            default_user=_env("HELIX_DEFAULT_USER", "default"),
        )


def get_helix_config() -> HelixConfig:
    return HelixConfig(
        host=_env("HELIX_HOST", DEFAULT_HELIX_HOST),
        port=_env_int("HELIX_PORT", DEFAULT_HELIX_PORT),
        instance=_env("HELIX_INSTANCE", "dev"),
        timeout=_env_float("HELIX_TIMEOUT", STORE_TIMEOUT),
    )


def get_llm_config() -> LlmConfig:
    provider = _env("HELIX_LLM_PROVIDER", "cerebras").lower()
    api_key = _env("HELIX_LLM_API_KEY") or None
    if provider == "cerebras" and not api_key:
        log.debug("no HELIX_LLM_API_KEY set, cerebras calls will fall back to ollama")
    return LlmConfig(
        provider=provider,
        model=_env("HELIX_LLM_MODEL", "llama-3.3-70b"),
        api_key=api_key,
        base_url=_env("HELIX_LLM_BASE_URL") or None,
        temperature=_env_float("HELIX_LLM_TEMPERATURE", 0.3),
        fallback_enabled=_env_bool("HELIX_LLM_FALLBACK_ENABLED", True),
        fallback_url=_env("HELIX_LLM_FALLBACK_URL", DEFAULT_OLLAMA_URL),
        fallback_model=_env("HELIX_LLM_FALLBACK_MODEL", "llama3.2"),
    )


def get_embedding_config() -> EmbeddingConfig:
    return EmbeddingConfig(
        provider=_env("HELIX_EMBEDDING_PROVIDER", "ollama").lower(),
        model=_env("HELIX_EMBEDDING_MODEL", "nomic-embed-text"),
        url=_env("HELIX_EMBEDDING_URL", DEFAULT_OLLAMA_URL),
        api_key=_env("HELIX_EMBEDDING_API_KEY") or None,
        fallback_enabled=_env_bool("HELIX_EMBEDDING_FALLBACK_ENABLED", True),
        fallback_url=_env("HELIX_EMBEDDING_FALLBACK_URL", DEFAULT_OLLAMA_URL),
        fallback_model=_env("HELIX_EMBEDDING_FALLBACK_MODEL", "nomic-embed-text"),
    )


def get_log_level() -> str:
    return _env("ONTOMEM_LOG_LEVEL", "WARNING").upper()
