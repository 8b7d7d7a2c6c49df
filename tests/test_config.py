"""Tests for environment-driven configuration."""

import pytest

from ontomem.config import (
    DEFAULT_OLLAMA_URL,
    OmcConfig,
    get_embedding_config,
    get_helix_config,
    get_llm_config,
    get_log_level,
)
from ontomem.errors import ConfigError


class TestHelixConfig:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("HELIX_HOST", "helix.internal")
        monkeypatch.setenv("HELIX_PORT", "7000")
        monkeypatch.setenv("HELIX_TIMEOUT", "12.5")

        config = get_helix_config()

        assert config.base_url == "http://helix.internal:7000"
        assert config.timeout == 12.5

    def test_bad_port(self, monkeypatch):
        monkeypatch.setenv("HELIX_PORT", "sixty")
        with pytest.raises(ConfigError, match="HELIX_PORT"):
            get_helix_config()

    def test_placeholder_values_ignored(self, monkeypatch):
        monkeypatch.setenv("HELIX_HOST", "<your-helix-host>")
        assert get_helix_config().host == "localhost"


class TestLlmConfig:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("HELIX_LLM_PROVIDER", raising=False)
        monkeypatch.delenv("HELIX_LLM_MODEL", raising=False)

        config = get_llm_config()

        assert (config.provider, config.model) == ("cerebras", "llama-3.3-70b")
        assert config.api_key is None
        assert config.fallback_enabled is True
        assert config.fallback_url == DEFAULT_OLLAMA_URL

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("HELIX_LLM_PROVIDER", "OpenAI")
        monkeypatch.setenv("HELIX_LLM_BASE_URL", "https://llm.example.com/v1")
        monkeypatch.setenv("HELIX_LLM_API_KEY", "sk-test")
        monkeypatch.setenv("HELIX_LLM_FALLBACK_ENABLED", "no")
        monkeypatch.setenv("HELIX_LLM_TEMPERATURE", "0.7")

        config = get_llm_config()

        assert config.provider == "openai"
        assert config.base_url == "https://llm.example.com/v1"
        assert config.api_key == "sk-test"
        assert config.fallback_enabled is False
        assert config.temperature == 0.7

    def test_bad_temperature(self, monkeypatch):
        monkeypatch.setenv("HELIX_LLM_TEMPERATURE", "warm")
        with pytest.raises(ConfigError):
            get_llm_config()


class TestEmbeddingConfig:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("HELIX_EMBEDDING_PROVIDER", "OpenAI")
        monkeypatch.setenv("HELIX_EMBEDDING_MODEL", "text-embedding-3-small")
        monkeypatch.setenv("HELIX_EMBEDDING_FALLBACK_ENABLED", "1")

        config = get_embedding_config()

        assert config.provider == "openai"
        assert config.model == "text-embedding-3-small"
        assert config.fallback_enabled is True
        assert config.cache_size == 1000


class TestOmcConfig:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("HELIX_DEFAULT_USER", "alice")
        config = OmcConfig.from_env()
        assert config.default_user == "alice"
        assert config.search.mode == "recent"
        assert config.search.limit == 10

    def test_log_level(self, monkeypatch):
        monkeypatch.setenv("ONTOMEM_LOG_LEVEL", "debug")
        assert get_log_level() == "DEBUG"
        monkeypatch.delenv("ONTOMEM_LOG_LEVEL")
        assert get_log_level() == "WARNING"
