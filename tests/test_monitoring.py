from core.monitoring import PipelineMetrics


def test_metrics_are_isolated_per_instance():
    first, second = PipelineMetrics(), PipelineMetrics()
    first.record_generation("hit", 0.01)
    assert first.value("genui_generations_total", outcome="hit") == 1
    assert second.value("genui_generations_total", outcome="hit") == 0


def test_provider_call_counter():
    metrics = PipelineMetrics()
    metrics.record_provider_call("ollama", "ok")
    metrics.record_provider_call("ollama", "ok")
    metrics.record_provider_call("ollama", "error")
    assert metrics.value("genui_provider_calls_total", provider="ollama", outcome="ok") == 2
    assert metrics.value("genui_provider_calls_total", provider="ollama", outcome="error") == 1


def test_latency_histogram():
    metrics = PipelineMetrics()
    metrics.record_generation("miss", 0.2)
    metrics.record_generation("failed")
    assert metrics.value("genui_generation_latency_seconds_count") == 1


def test_health_check():
    metrics = PipelineMetrics()
    assert metrics.health_check()["status"] == "OK"
    assert metrics.health_check(providers={"ollama": False, "mock": True})["status"] == "OK"
    degraded = metrics.health_check(cache_stats={"size": 0}, providers={"ollama": False})
    assert degraded["status"] == "DEGRADED"
    assert degraded["cache"] == {"size": 0}
    assert degraded["uptime_seconds"] >= 0
