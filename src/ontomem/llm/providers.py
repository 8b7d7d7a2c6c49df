"""Chat-completion providers.

Every provider answers generate(system, user, response_format) with the
completion text and an LlmMetadata record. FallbackLlmProvider wraps a
primary with a local Ollama model that is created on first failure.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel

from ..config import CEREBRAS_URL, DEFAULT_OLLAMA_URL, LLM_TIMEOUT, LlmConfig
from ..errors import BothProvidersFailed, ConfigError, LlmError

log = logging.getLogger("ontomem")


class LlmMetadata(BaseModel):
    provider: str
    model: str
    base_url: str | None = None
    tokens_prompt: int | None = None
    tokens_completion: int | None = None
    tokens_total: int | None = None
    fallback_used: bool = False
    original_provider: str | None = None
    original_error: str | None = None


class LlmProvider:
    name = "base"

    def __init__(self, model: str, base_url: str, temperature: float = 0.3,
                 timeout: float = LLM_TIMEOUT):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.timeout = timeout

    @property
    def provider_name(self) -> str:
        return self.name

    @property
    def model_name(self) -> str:
        return self.model

    async def generate(
        self, system: str, user: str, response_format: str | None = None,
    ) -> tuple[str, LlmMetadata]:
        raise NotImplementedError


class OllamaProvider(LlmProvider):
    name = "ollama"

    def __init__(self, model: str = "llama3.2", base_url: str = DEFAULT_OLLAMA_URL,
                 temperature: float = 0.3, timeout: float = LLM_TIMEOUT):
        super().__init__(model, base_url, temperature, timeout)

    async def generate(self, system, user, response_format=None):
        body: dict = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "stream": False,
            "options": {"temperature": self.temperature},
        }
        if response_format == "json_object":
            body["format"] = "json"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(f"{self.base_url}/api/chat", json=body)
        except httpx.HTTPError as e:
            raise LlmError(f"ollama request failed: {e}") from e
        if resp.status_code != 200:
            log.error("ollama chat failed (%d): %s", resp.status_code, resp.text)
            raise LlmError(f"ollama chat failed ({resp.status_code})")
        try:
            data = resp.json()
            text = (data.get("message") or {}).get("content", "")
            prompt_tokens = data.get("prompt_eval_count")
            completion_tokens = data.get("eval_count")
        except (ValueError, AttributeError, TypeError) as e:
            raise LlmError(f"ollama returned an unreadable body: {e}") from e
        total = None
        if prompt_tokens is not None and completion_tokens is not None:
            total = prompt_tokens + completion_tokens
        return text, LlmMetadata(
            provider=self.name,
            model=self.model,
            base_url=self.base_url,
            tokens_prompt=prompt_tokens,
            tokens_completion=completion_tokens,
            tokens_total=total,
        )


class OpenAICompatibleProvider(LlmProvider):
    """Any /chat/completions endpoint with bearer auth."""

    name = "openai-compatible"

    def __init__(self, model: str, base_url: str, api_key: str | None,
                 temperature: float = 0.3, timeout: float = LLM_TIMEOUT):
        super().__init__(model, base_url, temperature, timeout)
        self.api_key = api_key

    async def generate(self, system, user, response_format=None):
        if not self.api_key:
            raise LlmError(f"{self.name}: no api key configured")
        body: dict = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": self.temperature,
        }
        if response_format:
            body["response_format"] = {"type": response_format}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "content-type": "application/json",
                    },
                    json=body,
                )
        except httpx.HTTPError as e:
            raise LlmError(f"{self.name} request failed: {e}") from e
        if resp.status_code != 200:
            log.error("%s chat failed (%d): %s", self.name, resp.status_code, resp.text)
            raise LlmError(f"{self.name} chat failed ({resp.status_code})")
        try:
            data = resp.json()
        except ValueError as e:
            raise LlmError(f"{self.name} returned an unreadable body: {e}") from e
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise LlmError(f"{self.name} returned no choices") from e
        usage = data.get("usage")
        if not isinstance(usage, dict):
            usage = {}
        return text, LlmMetadata(
            provider=self.name,
            model=self.model,
            base_url=self.base_url,
            tokens_prompt=usage.get("prompt_tokens"),
            tokens_completion=usage.get("completion_tokens"),
            tokens_total=usage.get("total_tokens"),
        )


class CerebrasProvider(OpenAICompatibleProvider):
    name = "cerebras"

    def __init__(self, model: str = "llama-3.3-70b", api_key: str | None = None,
                 base_url: str = CEREBRAS_URL, temperature: float = 0.3,
                 timeout: float = LLM_TIMEOUT):
        super().__init__(model, base_url, api_key, temperature, timeout)


class FallbackLlmProvider(LlmProvider):
    """Tries the primary on every call, the local fallback only when it fails."""

    def __init__(self, primary: LlmProvider, fallback_url: str = DEFAULT_OLLAMA_URL,
                 fallback_model: str = "llama3.2", enabled: bool = True):
        self.primary = primary
        self.fallback_url = fallback_url
        self.fallback_model = fallback_model
        self.enabled = enabled
        self._fallback: LlmProvider | None = None
        self.using_fallback = False
        self.primary_failures = 0
        self.fallback_count = 0

    @property
    def provider_name(self) -> str:
        if self.using_fallback:
            return "ollama (fallback)"
        return self.primary.provider_name

    @property
    def model_name(self) -> str:
        if self.using_fallback and self._fallback is not None:
            return self._fallback.model_name
        return self.primary.model_name

    def _get_fallback(self) -> LlmProvider:
        if self._fallback is None:
            log.info("initializing fallback llm %s at %s", self.fallback_model, self.fallback_url)
            self._fallback = OllamaProvider(self.fallback_model, self.fallback_url,
                                            self.primary.temperature)
        return self._fallback

    async def generate(self, system, user, response_format=None):
        try:
            text, meta = await self.primary.generate(system, user, response_format)
        except LlmError as e:
            self.primary_failures += 1
            if not self.enabled:
                raise
            log.warning("primary llm %s failed, using fallback: %s",
                        self.primary.provider_name, e)
            try:
                text, meta = await self._get_fallback().generate(system, user, response_format)
            except LlmError as fe:
                log.error("fallback llm failed too: %s", fe)
                raise BothProvidersFailed(e, fe) from fe
            self.using_fallback = True
            self.fallback_count += 1
            meta.fallback_used = True
            meta.original_provider = self.primary.provider_name
            meta.original_error = str(e)
            return text, meta

        self.using_fallback = False
        self.primary_failures = 0
        return text, meta

    def reset_fallback_state(self) -> None:
        self.using_fallback = False
        self.primary_failures = 0
        self.fallback_count = 0

    def stats(self) -> dict:
        return {
            "using_fallback": self.using_fallback,
            "primary_failures": self.primary_failures,
            "fallback_count": self.fallback_count,
        }


def create_llm_provider(config: LlmConfig) -> LlmProvider:
    provider = config.provider.lower()
    if provider == "cerebras":
        primary: LlmProvider = CerebrasProvider(
            config.model, config.api_key, config.base_url or CEREBRAS_URL,
            config.temperature,
        )
    elif provider == "ollama":
        primary = OllamaProvider(config.model, config.base_url or DEFAULT_OLLAMA_URL,
                                 config.temperature)
    elif provider in ("openai", "openai-compatible", "openai_compatible"):
        if not config.base_url:
            raise ConfigError("HELIX_LLM_BASE_URL is required for openai-compatible")
        primary = OpenAICompatibleProvider(config.model, config.base_url,
                                           config.api_key, config.temperature)
    else:
        raise ConfigError(f"unknown llm provider: {config.provider}")

    if provider == "ollama" or not config.fallback_enabled:
        return primary
    return FallbackLlmProvider(primary, config.fallback_url, config.fallback_model)
