"""Provider registry: named backends, availability probing and model selection."""
import asyncio
from typing import Dict, List, Optional, Tuple

from core.config import LOGICAL_SIZES, MEMORY_CEILING_GB, ModelSpec
from core.errors import NoModelAvailableError, ProviderUnavailableError, UnknownProviderError
from core.logging import logger

from .providers import BaseProvider

LOCAL_PROVIDERS = ("ollama",)
FALLBACK_PROVIDER = "mock"


class ProviderRegistry:
    """Holds the Provider instances of one pipeline.

    The map is written during wiring and read afterwards; nothing here
    keeps per-request state.
    """

    def __init__(
        self,
        default: Optional[str] = None,
        priority: Optional[List[str]] = None,
        probe_timeout: float = 2.0,
    ):
        self._providers: Dict[str, BaseProvider] = {}
        self.default = default
        self.priority = [p.lower() for p in (priority or [])]
        self.probe_timeout = probe_timeout

    def register(self, name: str, provider: BaseProvider) -> None:
        name = name.lower()
        if name in self._providers:
            logger.info(f"Replacing provider '{name}'")
        self._providers[name] = provider

    def unregister(self, name: str) -> None:
        self._providers.pop(name.lower(), None)

    def names(self) -> List[str]:
        return list(self._providers)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._providers

    def resolve(self, name: Optional[str] = None) -> BaseProvider:
        """Named provider, or the configured default when name is omitted."""
        target = (name or self.default or "").lower()
        if not target:
            raise UnknownProviderError("No provider name given and no default configured")
        provider = self._providers.get(target)
        if provider is None:
            raise UnknownProviderError(
                f"Provider '{target}' is not registered",
                {"provider": target, "registered": self.names()},
            )
        return provider

    # ------------------------------------------------------------------
    def probe_order(self) -> List[str]:
        """Local backends first, then cloud in configured preference, mock last."""
        registered = [n for n in self._providers if n != FALLBACK_PROVIDER]
        preferred = [n for n in self.priority if n in registered]
        rest = [n for n in registered if n not in preferred]
        ordered = preferred + rest
        local = [n for n in ordered if n in LOCAL_PROVIDERS]
        remote = [n for n in ordered if n not in LOCAL_PROVIDERS]
        tail = [FALLBACK_PROVIDER] if FALLBACK_PROVIDER in self._providers else []
        return local + remote + tail

    async def _probe(self, name: str) -> bool:
        try:
            return bool(await asyncio.wait_for(
                self._providers[name].is_available(), timeout=self.probe_timeout
            ))
        except asyncio.TimeoutError:
            logger.warning(f"Availability probe for '{name}' exceeded {self.probe_timeout}s")
            return False
        except Exception as e:
            logger.warning(f"Availability probe for '{name}' failed: {e}")
            return False

    async def resolve_best_available(self) -> Tuple[BaseProvider, str]:
        for name in self.probe_order():
            if await self._probe(name):
                logger.info(f"Selected provider '{name}' by availability")
                return self._providers[name], name
        raise ProviderUnavailableError(
            "No registered provider is available", {"probed": self.probe_order()}
        )

    async def availability(self) -> Dict[str, bool]:
        names = self.probe_order()
        results = await asyncio.gather(*(self._probe(n) for n in names))
        return dict(zip(names, results))

    # ------------------------------------------------------------------
    @staticmethod
    def resolve_model(
        provider: BaseProvider,
        selector: Optional[str],
        memory_budget_gb: float = MEMORY_CEILING_GB,
    ) -> str:
        """Map a logical size or concrete name onto a concrete model.

        Logical sizes pick the best catalog model inside the memory budget:
        recommended first, then lower footprint. The catalog `size` tag splits
        small from large.
        """
        catalog: List[ModelSpec] = provider.catalog
        if not selector:
            return provider.get_model_name()

        if selector in LOGICAL_SIZES:
            if not catalog:
                return provider.get_model_name()
            candidates = [
                m for m in catalog
                if m.memory_gb <= memory_budget_gb and (m.size is None or m.size == selector)
            ]
            if not candidates:
                raise NoModelAvailableError(
                    f"No '{selector}' model of {provider.name} fits {memory_budget_gb}GB",
                    {"provider": provider.name, "selector": selector, "budget_gb": memory_budget_gb},
                )
            best = sorted(candidates, key=lambda m: (not m.recommended, m.memory_gb))[0]
            logger.debug(f"Resolved '{selector}' to {best.name} ({best.memory_usage})")
            return best.name

        if not catalog:
            return selector
        spec = next((m for m in catalog if m.name == selector), None)
        if spec is None:
            raise NoModelAvailableError(
                f"Model '{selector}' is not in the {provider.name} catalog",
                {"provider": provider.name, "selector": selector},
            )
        if spec.memory_gb > memory_budget_gb:
            raise NoModelAvailableError(
                f"Model '{selector}' needs {spec.memory_usage}, budget is {memory_budget_gb}GB",
                {"provider": provider.name, "selector": selector, "budget_gb": memory_budget_gb},
            )
        return selector
