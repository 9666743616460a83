"""Provider adapters for the LLM backends behind the generation pipeline."""
import asyncio
import json
import math
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from core.config import MAX_CONTEXT_CEILING, MAX_TOKENS_CEILING, ModelSpec
from core.errors import (
    BackendError,
    ProviderError,
    ProviderTimeoutError,
    ResponseShapeError,
    truncate,
)
from core.logging import logger


class ProviderConfig(BaseModel):
    """Per-call knobs. The ceilings hold no matter what the caller asks for."""
    timeout: float = Field(30.0, gt=0)
    max_tokens: int = Field(1024, ge=1, le=MAX_TOKENS_CEILING)
    max_context: int = Field(4096, ge=1, le=MAX_CONTEXT_CEILING)
    temperature: float = Field(0.3, ge=0, le=2)


def estimate_tokens(text: str) -> int:
    """Rough token count (4 characters per token) for backends that omit usage."""
    return math.ceil(len(text) / 4) if text else 0


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def of(cls, prompt_tokens: Optional[int], completion_tokens: Optional[int],
           prompt: str = "", text: str = "") -> "TokenUsage":
        prompt_tokens = prompt_tokens if isinstance(prompt_tokens, int) else estimate_tokens(prompt)
        completion_tokens = completion_tokens if isinstance(completion_tokens, int) else estimate_tokens(text)
        return cls(prompt_tokens, completion_tokens, prompt_tokens + completion_tokens)

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class ProviderResponse:
    """Raw backend text plus the concrete model that produced it."""
    text: str
    model: str
    usage: TokenUsage


class BaseProvider(ABC):
    """Base class for generation backends.

    Subclasses implement ``_generate``; ``call`` adds the deadline and maps
    failures onto the provider error taxonomy. Providers never retry.
    """

    name = "base"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        default_model: Optional[str] = None,
        catalog: Optional[List[ModelSpec]] = None,
        probe_timeout: float = 2.0,
    ):
        self.api_key = api_key
        self.base_url = (base_url or "").rstrip("/")
        self.default_model = default_model or ""
        self.catalog = list(catalog or [])
        self.probe_timeout = probe_timeout

    def get_model_name(self) -> str:
        return self.default_model

    async def call(self, prompt: str, model_name: str, config: ProviderConfig) -> ProviderResponse:
        model_name = model_name or self.default_model
        logger.info(f"Calling {self.name} model={model_name} max_tokens={config.max_tokens}")
        try:
            return await asyncio.wait_for(
                self._generate(prompt, model_name, config), timeout=config.timeout
            )
        except ProviderError:
            raise
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(
                f"{self.name} did not answer within {config.timeout}s",
                {"provider": self.name, "model": model_name},
            ) from e

    @abstractmethod
    async def _generate(self, prompt: str, model_name: str, config: ProviderConfig) -> ProviderResponse:
        """One request against the backend."""
        pass

    @abstractmethod
    async def is_available(self) -> bool:
        """Cheap reachability check. Must not raise."""
        pass

    async def _post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        config: ProviderConfig,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    url,
                    headers=headers or {"Content-Type": "application/json"},
                    json=payload,
                    timeout=config.timeout,
                )
            except httpx.TimeoutException as e:
                raise ProviderTimeoutError(
                    f"{self.name} request timed out: {e}", {"provider": self.name}
                ) from e
            except httpx.HTTPError as e:
                logger.error(f"{self.name} API error: {e}")
                raise BackendError(
                    f"{self.name} unreachable: {e}", {"provider": self.name}
                ) from e

        if response.status_code >= 400:
            logger.error(f"{self.name} API returned HTTP {response.status_code}")
            raise BackendError(
                f"{self.name} returned HTTP {response.status_code}",
                {"provider": self.name, "status": response.status_code, "body": truncate(response.text)},
            )
        try:
            data = response.json()
        except ValueError as e:
            raise ResponseShapeError(
                f"{self.name} returned a non-JSON body",
                {"provider": self.name, "body": truncate(response.text)},
            ) from e
        if not isinstance(data, dict):
            raise ResponseShapeError(f"{self.name} returned a non-object body", {"provider": self.name})
        return data

    def _shape_error(self, field: str, data: Dict[str, Any]) -> ResponseShapeError:
        return ResponseShapeError(
            f"{self.name} response has no usable '{field}' field",
            {"provider": self.name, "field": field, "body": truncate(json.dumps(data, default=str))},
        )


class OllamaProvider(BaseProvider):
    """Ollama local model provider."""

    name = "ollama"

    def __init__(self, base_url: Optional[str] = None, default_model: Optional[str] = None, **kwargs):
        # Ollama doesn't need an API key
        kwargs.pop("api_key", None)
        super().__init__(
            api_key=None,
            base_url=base_url or "http://localhost:11434",
            default_model=default_model or "phi3:mini",
            **kwargs,
        )

    async def _generate(self, prompt: str, model_name: str, config: ProviderConfig) -> ProviderResponse:
        payload = {
            "model": model_name,
            "prompt": prompt,
            "stream": False,
            "options": {
                "num_predict": config.max_tokens,
                "num_ctx": config.max_context,
                "temperature": config.temperature,
            },
        }
        data = await self._post_json(f"{self.base_url}/api/generate", payload, config)
        text = data.get("response")
        if not isinstance(text, str):
            raise self._shape_error("response", data)
        usage = TokenUsage.of(data.get("prompt_eval_count"), data.get("eval_count"), prompt, text)
        return ProviderResponse(text=text, model=data.get("model") or model_name, usage=usage)

    async def is_available(self) -> bool:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(f"{self.base_url}/api/tags", timeout=self.probe_timeout)
            return response.status_code == 200
        except Exception as e:
            logger.debug(f"Ollama probe failed: {e}")
            return False


class OpenAIProvider(BaseProvider):
    """OpenAI-compatible chat completions provider."""

    name = "openai"

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 default_model: Optional[str] = None, **kwargs):
        super().__init__(
            api_key=api_key,
            base_url=base_url or "https://api.openai.com/v1",
            default_model=default_model or "gpt-4o-mini",
            **kwargs,
        )

    async def _generate(self, prompt: str, model_name: str, config: ProviderConfig) -> ProviderResponse:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": model_name,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "stream": False,
        }
        data = await self._post_json(f"{self.base_url}/chat/completions", payload, config, headers)
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise self._shape_error("choices[0].message.content", data) from None
        if not isinstance(text, str):
            raise self._shape_error("choices[0].message.content", data)
        usage_data = data.get("usage") or {}
        usage = TokenUsage.of(usage_data.get("prompt_tokens"), usage_data.get("completion_tokens"), prompt, text)
        return ProviderResponse(text=text, model=data.get("model") or model_name, usage=usage)

    async def is_available(self) -> bool:
        return bool(self.api_key)


class AnthropicProvider(BaseProvider):
    """Anthropic messages API provider."""

    name = "anthropic"

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 default_model: Optional[str] = None, **kwargs):
        super().__init__(
            api_key=api_key,
            base_url=base_url or "https://api.anthropic.com/v1",
            default_model=default_model or "claude-3-haiku-20240307",
            **kwargs,
        )

    async def _generate(self, prompt: str, model_name: str, config: ProviderConfig) -> ProviderResponse:
        headers = {
            "x-api-key": self.api_key or "",
            "anthropic-version": "2023-06-01",
            "Content-Type": "application/json",
        }
        payload = {
            "model": model_name,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "stream": False,
        }
        data = await self._post_json(f"{self.base_url}/messages", payload, config, headers)
        try:
            text = data["content"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise self._shape_error("content[0].text", data) from None
        if not isinstance(text, str):
            raise self._shape_error("content[0].text", data)
        usage_data = data.get("usage") or {}
        usage = TokenUsage.of(usage_data.get("input_tokens"), usage_data.get("output_tokens"), prompt, text)
        return ProviderResponse(text=text, model=data.get("model") or model_name, usage=usage)

    async def is_available(self) -> bool:
        return bool(self.api_key)


def default_mock_output(prompt: str) -> Dict[str, Any]:
    """A contract-valid payload derived only from the prompt."""
    title = prompt.splitlines()[0][:80] if prompt else ""
    return {
        "confidence": 0.9,
        "ui": {
            "layout": {"type": "stack", "direction": "vertical"},
            "components": [{"type": "text", "props": {"text": title}}],
        },
    }


class MockProvider(BaseProvider):
    """Deterministic offline backend; last resort when nothing else answers.

    ``responder(prompt, model)`` may return a str (sent as-is), any other
    JSON value (serialized), or raise to simulate a failing backend.
    """

    name = "mock"

    def __init__(self, responder: Optional[Callable[[str, str], Any]] = None,
                 default_model: Optional[str] = None, available: bool = True, **kwargs):
        kwargs.pop("api_key", None)
        kwargs.pop("base_url", None)
        super().__init__(default_model=default_model or "mock-ui", **kwargs)
        self.responder = responder or (lambda prompt, model: default_mock_output(prompt))
        self.available = available
        self.calls = 0

    async def _generate(self, prompt: str, model_name: str, config: ProviderConfig) -> ProviderResponse:
        self.calls += 1
        result = self.responder(prompt, model_name)
        if asyncio.iscoroutine(result):
            result = await result
        text = result if isinstance(result, str) else json.dumps(result)
        return ProviderResponse(text=text, model=model_name, usage=TokenUsage.of(None, None, prompt, text))

    async def is_available(self) -> bool:
        return self.available


# Provider factory
def create_provider(provider_type: str, **kwargs) -> BaseProvider:
    """Create a provider instance by type."""
    providers = {
        "ollama": OllamaProvider,
        "openai": OpenAIProvider,
        "anthropic": AnthropicProvider,
        "mock": MockProvider,
    }

    provider_class = providers.get(provider_type.lower())
    if not provider_class:
        raise ValueError(f"Unknown provider type: {provider_type}")

    return provider_class(**kwargs)
