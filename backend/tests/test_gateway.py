import asyncio
from types import SimpleNamespace

import pytest

from lingua.core.llm.errors import (
    PermanentEngineError,
    TransientEngineError,
    classify_exception,
    parse_retry_after,
)
from lingua.core.llm.gateway import EngineAdapter, EngineRegistry, LiteLLMEngine
from lingua.core.llm.runtime_config import EngineConfig

from tests.helpers import APIConnectionError, ProviderError, ScriptedEngine, Timeout, make_registry


# =============================================================================
# Classification
# =============================================================================


def test_rate_limit_is_transient_with_hint():
    error = classify_exception(
        ProviderError(429, headers={"retry-after-ms": "1500"}), engine="gemini-fl"
    )

    assert isinstance(error, TransientEngineError)
    assert error.kind == "rate_limited"
    assert error.retry_after == 1.5
    assert error.engine == "gemini-fl"


@pytest.mark.parametrize("status", [500, 502, 503, 504])
def test_server_errors_are_transient(status):
    error = classify_exception(ProviderError(status))
    assert error.transient is True
    assert error.kind == "server_error"


@pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
def test_client_errors_are_permanent(status):
    error = classify_exception(ProviderError(status))
    assert isinstance(error, PermanentEngineError)
    assert error.status == status


def test_timeouts_and_connection_drops_are_transient():
    assert classify_exception(asyncio.TimeoutError()).kind == "timeout"
    assert classify_exception(Timeout("slow")).kind == "timeout"
    assert classify_exception(APIConnectionError("reset")).kind == "connection"


def test_unknown_exception_is_permanent():
    assert isinstance(classify_exception(ValueError("bad")), PermanentEngineError)


def test_classified_errors_pass_through():
    original = TransientEngineError("x")
    assert classify_exception(original, engine="gpt-4o") is original
    assert original.engine == "gpt-4o"


def test_parse_retry_after():
    assert parse_retry_after({"retry-after-ms": "1500"}) == 1.5
    assert parse_retry_after({"retry-after": "3"}) == 3.0
    assert parse_retry_after({"Retry-After": "2"}) == 2.0
    assert parse_retry_after({"retry-after": "soon"}) is None
    assert parse_retry_after(None) is None


# =============================================================================
# Registry and adapter
# =============================================================================


def test_registry_requires_fallback():
    with pytest.raises(ValueError):
        EngineRegistry([ScriptedEngine("gpt-4o")], stable_fallback="gemini-fl")


def test_registry_unknown_engine_is_permanent():
    registry = make_registry(ScriptedEngine("gemini-fl"))

    assert "gemini-fl" in registry
    with pytest.raises(PermanentEngineError) as exc_info:
        registry.get("nope")
    assert exc_info.value.kind == "unknown_engine"


def test_registry_from_models():
    registry = EngineRegistry.from_models(
        {"gemini-fl": "gemini/gemini-2.5-flash-lite", "gpt-4o": "openai/gpt-4o"},
        stable_fallback="gemini-fl",
        api_keys={"gpt-4o": "sk-test"},
    )

    engine = registry.get("gpt-4o")
    assert isinstance(engine, LiteLLMEngine)
    assert engine.config.api_key == "sk-test"
    assert registry.stable_fallback == "gemini-fl"


def test_engine_config_kwargs():
    config = EngineConfig(name="local", model="ollama/llama3", base_url="http://localhost:11434")
    kwargs = config.to_litellm_kwargs(0.25)

    assert kwargs["temperature"] == 0.25
    assert kwargs["api_base"] == "http://localhost:11434"
    assert "api_key" not in kwargs
    assert config.provider == "ollama"


@pytest.mark.asyncio
async def test_litellm_engine_returns_message_content(monkeypatch):
    captured = {}

    async def fake_acompletion(**kwargs):
        captured.update(kwargs)
        message = SimpleNamespace(content="<result>[\"ok\"]</result>")
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    monkeypatch.setattr("lingua.core.llm.gateway.acompletion", fake_acompletion)
    engine = LiteLLMEngine(EngineConfig(name="gpt-4o", model="openai/gpt-4o"))

    text = await engine.complete("Translate", 0.3)

    assert text == '<result>["ok"]</result>'
    assert captured["model"] == "openai/gpt-4o"
    assert captured["messages"][-1] == {"role": "user", "content": "Translate"}


@pytest.mark.asyncio
async def test_adapter_returns_response_and_records_metrics(metrics):
    adapter = EngineAdapter(make_registry(ScriptedEngine("gemini-fl", ["hello"])), metrics=metrics)

    response = await adapter.call("gemini-fl", "prompt", 0.3, 1000)

    assert response.raw_text == "hello"
    assert response.engine_name == "gemini-fl"
    assert metrics.sample("lingua_engine_calls_total", {"engine": "gemini-fl", "status": "ok"}) == 1


@pytest.mark.asyncio
async def test_adapter_classifies_provider_errors(metrics):
    engine = ScriptedEngine("gemini-fl", [ProviderError(503)])
    adapter = EngineAdapter(make_registry(engine), metrics=metrics)

    with pytest.raises(TransientEngineError) as exc_info:
        await adapter.call("gemini-fl", "prompt", 0.3, 1000)

    assert exc_info.value.status == 503
    assert isinstance(exc_info.value.__cause__, ProviderError)
    assert metrics.sample(
        "lingua_engine_calls_total", {"engine": "gemini-fl", "status": "transient"}
    ) == 1


@pytest.mark.asyncio
async def test_adapter_times_out_slow_engines():
    adapter = EngineAdapter(make_registry(ScriptedEngine("gemini-fl", ["late"], delay=1.0)))

    with pytest.raises(TransientEngineError) as exc_info:
        await adapter.call("gemini-fl", "prompt", 0.3, 10)

    assert exc_info.value.kind == "timeout"


@pytest.mark.asyncio
async def test_adapter_per_engine_limit():
    in_flight = 0
    peak = 0

    class CountingEngine(ScriptedEngine):
        async def complete(self, prompt, temperature):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return "ok"

    adapter = EngineAdapter(make_registry(CountingEngine("gemini-fl")), per_engine_limit=2)
    await asyncio.gather(*(adapter.call("gemini-fl", "p", 0.3, 1000) for _ in range(6)))

    assert peak == 2
