"""Builds a fully wired GenerationOrchestrator from AppSettings."""
from pathlib import Path
from typing import Dict, List, Optional

from core.config import AppSettings, ModelSpec, RuntimeConfigStore, get_settings, load_model_catalog
from core.errors import ConfigError
from core.logging import logger
from core.monitoring import PipelineMetrics

from genui.adapters.cache import CacheStore
from genui.adapters.keys import KeyDeriver
from genui.adapters.providers import ProviderConfig, create_provider
from genui.adapters.registry import ProviderRegistry
from genui.adapters.router import RetryPolicy
from genui.orchestrator import GenerationOrchestrator


def _load_catalog(settings: AppSettings) -> Dict[str, List[ModelSpec]]:
    if settings.GENUI_CONFIG_PATH:
        return load_model_catalog(Path(settings.GENUI_CONFIG_PATH))
    try:
        return load_model_catalog()
    except ConfigError as e:
        logger.warning(f"No model catalog loaded, logical sizes map to default models: {e}")
        return {}


def build_registry(settings: AppSettings, catalog: Optional[Dict[str, List[ModelSpec]]] = None) -> ProviderRegistry:
    catalog = _load_catalog(settings) if catalog is None else catalog
    registry = ProviderRegistry(
        default=settings.AI_PROVIDER,
        priority=settings.provider_priority(),
        probe_timeout=settings.PROBE_TIMEOUT_SECONDS,
    )
    registry.register("ollama", create_provider(
        "ollama",
        base_url=settings.OLLAMA_HOST,
        default_model=settings.OLLAMA_MODEL,
        catalog=catalog.get("ollama"),
        probe_timeout=settings.PROBE_TIMEOUT_SECONDS,
    ))
    registry.register("openai", create_provider(
        "openai",
        api_key=settings.OPENAI_API_KEY,
        base_url=settings.OPENAI_BASE_URL,
        default_model=settings.OPENAI_MODEL,
        catalog=catalog.get("openai"),
    ))
    registry.register("anthropic", create_provider(
        "anthropic",
        api_key=settings.ANTHROPIC_API_KEY,
        base_url=settings.ANTHROPIC_BASE_URL,
        default_model=settings.ANTHROPIC_MODEL,
        catalog=catalog.get("anthropic"),
    ))
    registry.register("mock", create_provider("mock", catalog=catalog.get("mock")))
    if settings.AI_PROVIDER and settings.AI_PROVIDER not in registry:
        raise ConfigError(
            f"AI_PROVIDER '{settings.AI_PROVIDER}' is not a known provider",
            {"registered": registry.names()},
        )
    return registry


def build_orchestrator(
    settings: Optional[AppSettings] = None,
    config_store: Optional[RuntimeConfigStore] = None,
    registry: Optional[ProviderRegistry] = None,
    metrics: Optional[PipelineMetrics] = None,
) -> GenerationOrchestrator:
    settings = settings or get_settings()
    config_store = config_store or RuntimeConfigStore()
    runtime = config_store.get()

    orchestrator = GenerationOrchestrator(
        cache=CacheStore(max_size=runtime.cache.max_size, ttl_seconds=runtime.cache.ttl_seconds),
        registry=registry or build_registry(settings),
        config_store=config_store,
        key_deriver=KeyDeriver(settings.PIPELINE_VERSION),
        retry_policy=RetryPolicy(
            attempts=settings.RETRY_ATTEMPTS,
            base_delay=settings.RETRY_BASE_DELAY_SECONDS,
            max_delay=settings.RETRY_MAX_DELAY_SECONDS,
        ),
        provider_config=ProviderConfig(
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            max_tokens=runtime.max_tokens,
            max_context=settings.MAX_CONTEXT,
            temperature=settings.TEMPERATURE,
        ),
        memory_budget_gb=settings.MEMORY_BUDGET_GB,
        single_flight=settings.SINGLE_FLIGHT,
        metrics=metrics,
    )
    logger.info(
        f"Pipeline ready: providers={orchestrator.registry.names()} "
        f"default={settings.AI_PROVIDER or 'auto'} version={settings.PIPELINE_VERSION}"
    )
    return orchestrator
