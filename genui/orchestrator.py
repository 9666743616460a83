"""Generation pipeline façade.

Request -> key -> cache -> (hit | provider call with retry -> validation ->
cache write) -> result. Each step runs strictly after the previous one; only
validated results reach the cache.
"""
import asyncio
import copy
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from core.config import MEMORY_CEILING_GB, RuntimeConfig, RuntimeConfigStore
from core.errors import CacheError, GenUIError, RequestValidationError, truncate
from core.logging import logger
from core.monitoring import PipelineMetrics

from genui.adapters.cache import CacheStore
from genui.adapters.keys import KeyDeriver, canonical_json
from genui.adapters.providers import BaseProvider, ProviderConfig, TokenUsage
from genui.adapters.registry import ProviderRegistry
from genui.adapters.router import RetryPolicy, call_with_retry
from genui.adapters.validation import Invalid, OutputValidator


class GenerationState(str, Enum):
    START = "start"
    KEY_DERIVED = "key_derived"
    CACHE_CHECKED = "cache_checked"
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    PROVIDER_SELECTED = "provider_selected"
    CALLING = "calling"
    RETRYING = "retrying"
    VALIDATED = "validated"
    CACHED = "cached"
    DONE = "done"
    FAILED = "failed"


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (dict, list, tuple)):
        return len(value) == 0
    return False


@dataclass(frozen=True)
class GenerationRequest:
    input: Any
    intent: str
    model: Optional[str] = None
    provider: Optional[str] = None

    def validate(self) -> None:
        if _is_blank(self.input):
            raise RequestValidationError("Field 'input' must not be empty", {"field": "input"})
        if not isinstance(self.intent, str) or not self.intent.strip():
            raise RequestValidationError("Field 'intent' must be a non-empty string", {"field": "intent"})
        if self.model is not None and (not isinstance(self.model, str) or not self.model.strip()):
            raise RequestValidationError("Field 'model' must be a non-empty string", {"field": "model"})
        if self.provider is not None and (not isinstance(self.provider, str) or not self.provider.strip()):
            raise RequestValidationError("Field 'provider' must be a non-empty string", {"field": "provider"})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenerationRequest":
        if not isinstance(data, dict):
            raise RequestValidationError("Request body must be an object")
        return cls(
            input=data.get("input"),
            intent=data.get("intent"),
            model=data.get("model"),
            provider=data.get("provider"),
        )


@dataclass(frozen=True)
class GenerationResult:
    output: Dict[str, Any]
    model: str
    provider: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    cached: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "output": copy.deepcopy(self.output),
            "model": self.model,
            "provider": self.provider,
            "usage": self.usage.to_dict(),
            "cached": self.cached,
        }


def serialize_input(input_payload: Any) -> str:
    return input_payload.strip() if isinstance(input_payload, str) else canonical_json(input_payload)


def build_prompt(intent: str, input_payload: Any) -> str:
    return f"{intent.strip()}\n\nInput: {serialize_input(input_payload)}"


class GenerationOrchestrator:
    """Ties cache, provider registry, retry and validation together.

    All collaborators are injected; nothing is shared between instances.
    """

    def __init__(
        self,
        cache: CacheStore,
        registry: ProviderRegistry,
        config_store: Optional[RuntimeConfigStore] = None,
        validator: Optional[OutputValidator] = None,
        key_deriver: Optional[KeyDeriver] = None,
        retry_policy: Optional[RetryPolicy] = None,
        provider_config: Optional[ProviderConfig] = None,
        memory_budget_gb: float = MEMORY_CEILING_GB,
        single_flight: bool = False,
        metrics: Optional[PipelineMetrics] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
        state_listener: Optional[Callable[[GenerationState], None]] = None,
    ):
        self.cache = cache
        self.registry = registry
        self.config_store = config_store or RuntimeConfigStore()
        self.validator = validator or OutputValidator()
        self.key_deriver = key_deriver or KeyDeriver()
        self.retry_policy = retry_policy or RetryPolicy()
        self.provider_config = provider_config or ProviderConfig()
        self.memory_budget_gb = memory_budget_gb
        self.single_flight = single_flight
        self.metrics = metrics or PipelineMetrics()
        self._sleep = sleep
        self._state_listener = state_listener
        self._inflight: Dict[str, "asyncio.Task[GenerationResult]"] = {}

    def _enter(self, state: GenerationState) -> None:
        logger.debug(f"Generation state -> {state.value}")
        if self._state_listener is not None:
            self._state_listener(state)

    def apply_runtime_config(self) -> RuntimeConfig:
        """Push changed runtime limits into the cache and return them.

        A cache that rejects the new limits keeps its old ones; generation
        goes on regardless.
        """
        runtime = self.config_store.get()
        limits = (runtime.cache.max_size, runtime.cache.ttl_seconds)

        def push() -> None:
            if limits != (self.cache.max_size, self.cache.ttl_seconds):
                self.cache.configure(*limits)

        try:
            self._cache_call("configure", push)
        except CacheError as e:
            logger.error(f"{e.message}, keeping previous cache limits")
        return runtime

    def key_for(self, request: GenerationRequest, selector: Optional[str] = None) -> str:
        """Cache key of `request`; the model component carries the backend route.

        Requests forced onto different backends never share an entry. Requests
        left to availability probing share one per logical model.
        """
        selector = (selector or request.model or self.config_store.get().active_model).strip()
        route = request.provider.strip().lower() if request.provider else self.registry.default
        model = f"{selector}@{route}" if route else selector
        return self.key_deriver.derive(replace(request, model=model))

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        started = time.perf_counter()
        self._enter(GenerationState.START)
        try:
            result = await self._generate(request)
        except Exception as e:
            self._enter(GenerationState.FAILED)
            self.metrics.record_generation("failed", time.perf_counter() - started)
            logger.warning(f"Generation failed ({type(e).__name__}): {truncate(str(e))}")
            raise
        self._enter(GenerationState.DONE)
        self.metrics.record_generation("hit" if result.cached else "miss", time.perf_counter() - started)
        return result

    async def _generate(self, request: GenerationRequest) -> GenerationResult:
        request.validate()
        runtime = self.apply_runtime_config()
        selector = (request.model or runtime.active_model).strip()

        key = self.key_for(request, selector)
        self._enter(GenerationState.KEY_DERIVED)
        logger.info(
            f"Generate model={selector} intent={truncate(request.intent, 100)} "
            f"input={truncate(serialize_input(request.input), 100)}"
        )

        hit = self._cache_get(key)
        self._enter(GenerationState.CACHE_CHECKED)
        if hit is not None:
            self._enter(GenerationState.CACHE_HIT)
            logger.info(f"Cache hit for key {key[:12]}")
            return replace(hit, output=copy.deepcopy(hit.output), cached=True)
        self._enter(GenerationState.CACHE_MISS)

        if not self.single_flight:
            return await self._produce(request, key, selector, runtime)

        task = self._inflight.get(key)
        if task is not None:
            logger.info(f"Joining in-flight generation for key {key[:12]}")
            return await task
        task = asyncio.ensure_future(self._produce(request, key, selector, runtime))
        self._inflight[key] = task
        try:
            return await task
        finally:
            if self._inflight.get(key) is task:
                del self._inflight[key]

    @staticmethod
    def _cache_call(action: str, operation: Callable[..., Any], *args: Any) -> Any:
        try:
            return operation(*args)
        except CacheError:
            raise
        except Exception as e:
            raise CacheError(
                f"Cache {action} failed: {truncate(str(e))}",
                {"action": action, "cause": type(e).__name__},
            ) from e

    def _cache_get(self, key: str) -> Optional[GenerationResult]:
        try:
            return self._cache_call("read", self.cache.get, key)
        except CacheError as e:
            logger.error(f"{e.message}, continuing as miss")
            return None

    def _cache_set(self, key: str, result: GenerationResult) -> bool:
        try:
            self._cache_call("write", self.cache.set, key, result)
            return True
        except CacheError as e:
            logger.error(f"{e.message}, returning uncached result")
            return False

    async def _select_provider(self, request: GenerationRequest) -> Tuple[BaseProvider, str]:
        if request.provider:
            name = request.provider.strip().lower()
            return self.registry.resolve(name), name
        if self.registry.default:
            return self.registry.resolve(), self.registry.default
        return await self.registry.resolve_best_available()

    async def _produce(
        self,
        request: GenerationRequest,
        key: str,
        selector: str,
        runtime: RuntimeConfig,
    ) -> GenerationResult:
        provider, name = await self._select_provider(request)
        model = self.registry.resolve_model(provider, selector, self.memory_budget_gb)
        self._enter(GenerationState.PROVIDER_SELECTED)

        config = self.provider_config.model_copy(update={"max_tokens": runtime.max_tokens})
        prompt = build_prompt(request.intent, request.input)

        def on_retry(attempt: int, error: Exception, delay: float) -> None:
            self.metrics.record_provider_call(name, "retry")
            self._enter(GenerationState.RETRYING)

        self._enter(GenerationState.CALLING)
        try:
            response = await call_with_retry(
                provider, prompt, model, config, self.retry_policy, sleep=self._sleep, on_retry=on_retry
            )
        except GenUIError:
            self.metrics.record_provider_call(name, "error")
            raise
        self.metrics.record_provider_call(name, "ok")

        outcome = self.validator.validate(response.text)
        if isinstance(outcome, Invalid):
            logger.warning(f"Output of {name}/{response.model} rejected at '{outcome.field}'")
            raise outcome.error
        self._enter(GenerationState.VALIDATED)

        result = GenerationResult(
            output=outcome.output.payload,
            model=response.model,
            provider=name,
            usage=response.usage,
        )
        if self._cache_set(key, result):
            self._enter(GenerationState.CACHED)
        return replace(result, output=copy.deepcopy(result.output))
