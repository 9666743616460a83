"""Adapters layer: key derivation, caching, providers, retry and validation.

The orchestrator composes these; each sub-module can also be used alone.
"""

from __future__ import annotations

from .cache import CacheStats, CacheStore
from .keys import KeyDeriver, derive_key
from .providers import BaseProvider, ProviderConfig, ProviderResponse, TokenUsage, create_provider
from .registry import ProviderRegistry
from .router import RetryPolicy, call_with_retry
from .validation import Invalid, OutputValidator, Valid, ValidatedOutput

__all__ = [
    "CacheStats",
    "CacheStore",
    "KeyDeriver",
    "derive_key",
    "BaseProvider",
    "ProviderConfig",
    "ProviderResponse",
    "TokenUsage",
    "create_provider",
    "ProviderRegistry",
    "RetryPolicy",
    "call_with_retry",
    "Invalid",
    "OutputValidator",
    "Valid",
    "ValidatedOutput",
]
