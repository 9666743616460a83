import logging
import re
import threading
import time
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.errors import ConfigError

# --- Base Path ---
BASE_DIR = Path(__file__).resolve().parent.parent
logger = logging.getLogger(__name__)

# --- Hard ceilings (independent of caller input) ---
MAX_TOKENS_CEILING = 4096
MAX_CONTEXT_CEILING = 4096
CACHE_TTL_MIN_SECONDS = 1.0
CACHE_TTL_MAX_SECONDS = 24 * 60 * 60.0
CACHE_MAX_SIZE_CEILING = 10_000
MEMORY_CEILING_GB = 2.0

ModelSize = Literal["small", "large"]
LOGICAL_SIZES = ("small", "large")

# --- Environment-based Settings ---

class AppSettings(BaseSettings):
    """
    Process settings loaded from environment variables.
    The .env file is loaded automatically by pydantic-settings.
    """
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    # --- General & Core ---
    LOG_LEVEL: str = Field("INFO", description="Log level for the application (e.g., DEBUG, INFO, WARNING, ERROR)")
    GENUI_CONFIG_PATH: Optional[str] = Field(None, description="Optional: Path to a model catalog YAML file.")
    PIPELINE_VERSION: str = Field("v1.0", description="Version tag mixed into every cache key.")

    # --- Provider selection ---
    AI_PROVIDER: Optional[str] = Field(None, description="Explicit backend name (ollama, openai, anthropic, mock). Empty = probe.")
    PROVIDER_PRIORITY: str = Field("ollama,openai,anthropic,mock", description="Probe order used when AI_PROVIDER is empty.")
    PROBE_TIMEOUT_SECONDS: float = Field(2.0, gt=0, description="Upper bound for a single availability probe.")

    # --- Ollama / Local LLMs ---
    OLLAMA_HOST: str = Field("http://localhost:11434", description="The full URL of your Ollama server.")
    OLLAMA_MODEL: str = Field("phi3:mini", description="Default local model.")

    # --- Cloud backends ---
    OPENAI_API_KEY: Optional[str] = Field(None)
    OPENAI_BASE_URL: str = Field("https://api.openai.com/v1")
    OPENAI_MODEL: str = Field("gpt-4o-mini")
    ANTHROPIC_API_KEY: Optional[str] = Field(None)
    ANTHROPIC_BASE_URL: str = Field("https://api.anthropic.com/v1")
    ANTHROPIC_MODEL: str = Field("claude-3-haiku-20240307")

    # --- Call limits ---
    PROVIDER_TIMEOUT_SECONDS: float = Field(30.0, gt=0)
    MAX_CONTEXT: int = Field(4096, ge=1, le=MAX_CONTEXT_CEILING)
    TEMPERATURE: float = Field(0.3, ge=0, le=2)
    MEMORY_BUDGET_GB: float = Field(MEMORY_CEILING_GB, gt=0, le=MEMORY_CEILING_GB)

    # --- Retry / Resilience ---
    RETRY_ATTEMPTS: int = Field(2, ge=0)
    RETRY_BASE_DELAY_SECONDS: float = Field(1.0, ge=0)
    RETRY_MAX_DELAY_SECONDS: float = Field(10.0, gt=0)

    SINGLE_FLIGHT: bool = Field(False, description="Coalesce concurrent identical cache misses.")

    @field_validator("AI_PROVIDER")
    @classmethod
    def _normalize_provider(cls, v: Optional[str]) -> Optional[str]:
        v = (v or "").strip().lower()
        return v or None

    def provider_priority(self) -> List[str]:
        return [p.strip().lower() for p in self.PROVIDER_PRIORITY.split(",") if p.strip()]

# --- YAML-based Configuration Models ---

_MEMORY_RE = re.compile(r"(\d+(?:\.\d+)?)\s*([KMGT]?B)?", re.IGNORECASE)
_UNIT_TO_GB = {"KB": 1 / (1024 * 1024), "MB": 1 / 1024, "GB": 1.0, "TB": 1024.0}


def parse_memory_gb(value: Any) -> float:
    """Parse a declared footprint such as '~800MB' or '~1.2GB' into GB."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    match = _MEMORY_RE.search(str(value))
    if not match:
        return 0.0
    unit = (match.group(2) or "GB").upper()
    return float(match.group(1)) * _UNIT_TO_GB.get(unit, 1.0)


class ModelSpec(BaseModel):
    name: str
    display_name: Optional[str] = None
    memory_usage: Optional[str] = None
    recommended: bool = False
    size: Optional[ModelSize] = None
    context_length: Optional[int] = None
    description: Optional[str] = None

    @property
    def memory_gb(self) -> float:
        return parse_memory_gb(self.memory_usage)


def load_model_catalog(path: Optional[Path] = None) -> Dict[str, List[ModelSpec]]:
    """Loads the per-provider model catalog YAML and validates each entry."""
    config_path = Path(path) if path else BASE_DIR / 'configs' / 'models.yml'
    if not config_path.exists():
        raise ConfigError(f"Model catalog '{config_path.name}' not found in {config_path.parent}",
                          {"path": str(config_path)})
    with open(config_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError("Model catalog must map provider names to model lists", {"path": str(config_path)})
    try:
        return {
            str(provider).lower(): [ModelSpec.model_validate(entry) for entry in (entries or [])]
            for provider, entries in data.items()
        }
    except ValidationError as e:
        raise ConfigError(f"Invalid model catalog: {e}", {"path": str(config_path)}) from e

# --- Runtime (control-plane) configuration ---

class CacheSettings(BaseModel):
    ttl_seconds: float = Field(300.0, ge=CACHE_TTL_MIN_SECONDS, le=CACHE_TTL_MAX_SECONDS)
    max_size: int = Field(100, ge=1, le=CACHE_MAX_SIZE_CEILING)


class UISettings(BaseModel):
    confidence_threshold: float = Field(0.5, ge=0, le=1)


class RuntimeConfig(BaseModel):
    """Values the control plane may change while the process runs."""
    active_model: ModelSize = "small"
    max_tokens: int = Field(1024, ge=1, le=MAX_TOKENS_CEILING)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    ui: UISettings = Field(default_factory=UISettings)
    last_updated: float = Field(default_factory=time.time)
    version: int = 1


class RuntimeConfigStore:
    """
    Holds the current RuntimeConfig. Readers get copies; every accepted
    update is validated against the fixed limits and bumps `version`.
    """

    def __init__(self, initial: Optional[RuntimeConfig] = None):
        self._config = initial or RuntimeConfig()
        self._lock = threading.Lock()

    def get(self) -> RuntimeConfig:
        with self._lock:
            return self._config.model_copy(deep=True)

    def update(self, **changes: Any) -> RuntimeConfig:
        changes.pop("version", None)
        changes.pop("last_updated", None)
        with self._lock:
            merged = self._config.model_dump()
            for key, value in changes.items():
                if key not in merged:
                    raise ConfigError(f"Unknown runtime config field: {key}", {"field": key})
                if isinstance(value, dict) and isinstance(merged[key], dict):
                    merged[key] = {**merged[key], **value}
                else:
                    merged[key] = value
            merged["version"] = self._config.version + 1
            merged["last_updated"] = time.time()
            try:
                new_config = RuntimeConfig.model_validate(merged)
            except ValidationError as e:
                raise ConfigError(
                    "Invalid runtime config update",
                    {"errors": [
                        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                        for err in e.errors()
                    ]},
                ) from e
            self._config = new_config
        logger.info(f"Runtime config updated to version {new_config.version}")
        return new_config.model_copy(deep=True)

    def reset(self) -> RuntimeConfig:
        with self._lock:
            self._config = RuntimeConfig()
        logger.info("Runtime config reset to defaults")
        return self.get()

    def status(self) -> Dict[str, Any]:
        config = self.get()
        return {
            "config": config.model_dump(),
            "is_valid": True,
            "version": config.version,
            "last_updated": config.last_updated,
        }

# --- Global Settings Accessor ---

@lru_cache
def get_settings() -> AppSettings:
    """
    Returns the cached AppSettings instance.
    Only the wiring edge (genui.bootstrap) should call this; pipeline
    components receive their settings explicitly.
    """
    return AppSettings()
