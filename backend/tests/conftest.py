"""Shared fixtures: isolated metrics, no-op sleeps and a dispatcher over fake engines."""

import random

import pytest

from lingua.core.llm.dispatcher import RetryingDispatcher, wait_retry_after_or_backoff
from lingua.core.llm.gateway import EngineAdapter
from lingua.core.metrics import PipelineMetrics

from tests.helpers import SleepRecorder, make_registry


@pytest.fixture(autouse=True)
def isolate_lingua_env(monkeypatch):
    """Keep developer LINGUA/engine settings out of tests."""
    for var in ("BATCH_TOKENS", "ROUTER_QE_THRESHOLD", "ROUTER_QE_ENABLED", "PRIMARY_ENGINE"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def metrics():
    return PipelineMetrics()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def build_dispatcher(metrics, sleeper, rng):
    """Factory: dispatcher over the given fake engines."""

    def _build(*engines, fallback="gemini-fl"):
        registry = make_registry(*engines, fallback=fallback)
        adapter = EngineAdapter(registry, metrics=metrics)
        return RetryingDispatcher(
            adapter,
            wait=wait_retry_after_or_backoff(rng=rng),
            sleep=sleeper,
            metrics=metrics,
        )

    return _build
