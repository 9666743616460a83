"""Tests for wiring the pipeline from settings and for the CLI entry point."""
import json
from unittest.mock import patch

import pytest

from core.config import AppSettings, RuntimeConfigStore
from core.errors import ConfigError
from genui.__main__ import main
from genui.adapters.providers import AnthropicProvider, MockProvider, OllamaProvider, OpenAIProvider
from genui.bootstrap import build_orchestrator, build_registry


@pytest.fixture
def settings():
    return AppSettings(
        _env_file=None,
        AI_PROVIDER="mock",
        OPENAI_API_KEY="sk-test",
        RETRY_ATTEMPTS=4,
        RETRY_BASE_DELAY_SECONDS=0.5,
        PROVIDER_TIMEOUT_SECONDS=12,
        PIPELINE_VERSION="v9",
        SINGLE_FLIGHT=True,
    )


class TestBootstrap:

    def test_registry_holds_every_backend(self, settings):
        registry = build_registry(settings)
        assert registry.default == "mock"
        assert isinstance(registry.resolve("ollama"), OllamaProvider)
        assert isinstance(registry.resolve("openai"), OpenAIProvider)
        assert isinstance(registry.resolve("anthropic"), AnthropicProvider)
        assert isinstance(registry.resolve("mock"), MockProvider)
        assert registry.resolve("openai").api_key == "sk-test"
        assert registry.resolve("ollama").catalog

    def test_unknown_ai_provider(self, settings):
        settings.AI_PROVIDER = "nope"
        with pytest.raises(ConfigError):
            build_registry(settings)

    def test_explicit_catalog_path_must_exist(self, settings, tmp_path):
        settings.GENUI_CONFIG_PATH = str(tmp_path / "missing.yml")
        with pytest.raises(ConfigError):
            build_registry(settings)

    def test_orchestrator_uses_settings(self, settings):
        store = RuntimeConfigStore()
        store.update(cache={"max_size": 7})
        orchestrator = build_orchestrator(settings, config_store=store)

        assert orchestrator.config_store is store
        assert orchestrator.cache.max_size == 7
        assert orchestrator.retry_policy.attempts == 4
        assert orchestrator.retry_policy.base_delay == 0.5
        assert orchestrator.provider_config.timeout == 12
        assert orchestrator.key_deriver.version == "v9"
        assert orchestrator.single_flight is True

    @pytest.mark.asyncio
    async def test_end_to_end_with_mock_backend(self, settings):
        from genui.orchestrator import GenerationRequest

        orchestrator = build_orchestrator(settings)
        result = await orchestrator.generate(GenerationRequest(input="x", intent="Build a card"))

        assert result.provider == "mock"
        assert result.output["ui"]["components"][0]["props"]["text"] == "Build a card"


class TestCli:

    def test_prints_result(self, settings, capsys):
        with patch("genui.__main__.build_orchestrator", return_value=build_orchestrator(settings)):
            code = main(["a signup form", "--intent", "Build a form"])

        assert code == 0
        out = capsys.readouterr().out
        body = json.loads(out[out.index("{\n"):])
        assert body["provider"] == "mock"
        assert body["cached"] is False

    def test_json_input(self, settings, capsys):
        with patch("genui.__main__.build_orchestrator", return_value=build_orchestrator(settings)):
            code = main(['{"fields": ["email"]}', "--intent", "Build a form", "--json-input"])
        assert code == 0

    def test_invalid_json_input(self, capsys):
        assert main(["{oops", "--intent", "Build", "--json-input"]) == 2
        assert "not valid JSON" in capsys.readouterr().err

    def test_pipeline_error_is_reported(self, settings, capsys):
        with patch("genui.__main__.build_orchestrator", return_value=build_orchestrator(settings)):
            code = main(["x", "--intent", "   "])

        assert code == 2
        assert json.loads(capsys.readouterr().err)["type"] == "RequestValidationError"
