import logging
from datetime import datetime
from typing import Any, Dict, Optional

import prometheus_client as prom

logger = logging.getLogger(__name__)


class PipelineMetrics:
    """
    Prometheus counters for the generation pipeline.
    Each instance owns its CollectorRegistry so several orchestrators
    (and test runs) never collide on metric names.
    """

    def __init__(self, registry: Optional[prom.CollectorRegistry] = None):
        self.registry = registry or prom.CollectorRegistry()
        self.start_time = datetime.now()
        self.metrics = {
            'generations': prom.Counter(
                'genui_generations_total', 'Finished generation requests', ['outcome'],
                registry=self.registry,
            ),
            'provider_calls': prom.Counter(
                'genui_provider_calls_total', 'Provider invocations', ['provider', 'outcome'],
                registry=self.registry,
            ),
            'latency': prom.Histogram(
                'genui_generation_latency_seconds', 'End-to-end generation latency',
                registry=self.registry,
            ),
        }

    def record_generation(self, outcome: str, duration: Optional[float] = None):
        """outcome is one of: hit, miss, failed."""
        self.metrics['generations'].labels(outcome=outcome).inc()
        if duration is not None:
            self.metrics['latency'].observe(duration)

    def record_provider_call(self, provider: str, outcome: str):
        self.metrics['provider_calls'].labels(provider=provider, outcome=outcome).inc()

    def value(self, name: str, **labels) -> float:
        """Current sample value, 0.0 when the series has not been touched yet."""
        result = self.registry.get_sample_value(name, labels or None)
        return result or 0.0

    def export(self) -> bytes:
        return prom.generate_latest(self.registry)

    def health_check(self, cache_stats: Optional[Dict[str, Any]] = None,
                     providers: Optional[Dict[str, bool]] = None) -> Dict[str, Any]:
        """Returns a health summary; degraded when no provider is available."""
        providers = providers or {}
        status = 'OK' if not providers or any(providers.values()) else 'DEGRADED'
        return {
            'status': status,
            'uptime_seconds': (datetime.now() - self.start_time).total_seconds(),
            'providers': providers,
            'cache': cache_stats or {},
        }
