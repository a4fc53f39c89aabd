"""Engine gateway for unified provider access.

This module provides the abstract ``Engine`` interface, a LiteLLM-backed
implementation, a registry of named engines resolved once at startup, and
the ``EngineAdapter`` that wraps every call in a timeout and classifies
failures. Nothing above the adapter knows about transports.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Mapping, Optional

from litellm import acompletion

from ..metrics import PipelineMetrics
from ..translation.models.response import EngineResponse
from .errors import ClassifiedEngineError, PermanentEngineError, classify_exception
from .runtime_config import EngineConfig

logger = logging.getLogger(__name__)


class Engine(ABC):
    """A named text-generation capability."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry name, e.g. ``gemini-fl``."""
        pass

    @abstractmethod
    async def complete(self, prompt: str, temperature: float) -> str:
        """Send one rendered prompt and return the raw text.

        Provider exceptions propagate unchanged; the adapter classifies them.
        """
        pass


class LiteLLMEngine(Engine):
    """Engine backed by ``litellm.acompletion``."""

    def __init__(self, config: EngineConfig):
        self._config = config
        logger.info(
            f"[Engine] Initialized: name={config.name}, model={config.model}, "
            f"base_url={config.base_url}"
        )

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> EngineConfig:
        return self._config

    async def complete(self, prompt: str, temperature: float) -> str:
        kwargs = self._config.to_litellm_kwargs(temperature)
        kwargs["messages"] = self._config.messages_for(prompt)

        response = await acompletion(**kwargs)
        return response.choices[0].message.content or ""


class EngineRegistry:
    """Named engines plus the designated stable fallback."""

    def __init__(self, engines: Iterable[Engine], stable_fallback: str):
        self._engines: Dict[str, Engine] = {}
        for engine in engines:
            self._engines[engine.name] = engine
        if stable_fallback not in self._engines:
            raise ValueError(
                f"Stable fallback engine {stable_fallback!r} is not registered. "
                f"Available: {sorted(self._engines)}"
            )
        self._stable_fallback = stable_fallback

    @property
    def stable_fallback(self) -> str:
        return self._stable_fallback

    def names(self) -> List[str]:
        return list(self._engines.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._engines

    def get(self, name: str) -> Engine:
        engine = self._engines.get(name)
        if engine is None:
            raise PermanentEngineError(
                f"Unknown engine: {name}. Available: {self.names()}",
                engine=name,
                kind="unknown_engine",
            )
        return engine

    @classmethod
    def from_models(
        cls,
        models: Mapping[str, str],
        stable_fallback: str,
        api_keys: Optional[Mapping[str, Optional[str]]] = None,
        base_urls: Optional[Mapping[str, str]] = None,
    ) -> "EngineRegistry":
        """Create LiteLLM engines from a ``name -> model`` mapping."""
        api_keys = api_keys or {}
        base_urls = base_urls or {}
        engines = [
            LiteLLMEngine(
                EngineConfig(
                    name=name,
                    model=model,
                    api_key=api_keys.get(name),
                    base_url=base_urls.get(name),
                )
            )
            for name, model in models.items()
        ]
        return cls(engines, stable_fallback=stable_fallback)


class EngineAdapter:
    """Uniform, timed and classified access to registered engines.

    Optionally caps concurrent calls per engine across all workers.
    """

    def __init__(
        self,
        registry: EngineRegistry,
        metrics: Optional[PipelineMetrics] = None,
        per_engine_limit: Optional[int] = None,
    ):
        self.registry = registry
        self.metrics = metrics
        self._limits: Dict[str, asyncio.Semaphore] = {}
        if per_engine_limit:
            self._limits = {
                name: asyncio.Semaphore(per_engine_limit) for name in registry.names()
            }

    @property
    def stable_fallback(self) -> str:
        return self.registry.stable_fallback

    async def call(
        self,
        engine_name: str,
        prompt: str,
        temperature: float,
        timeout_ms: int,
    ) -> EngineResponse:
        """Run one engine call under a timeout.

        Raises:
            ClassifiedEngineError: transient or permanent, never a raw provider error
        """
        engine = self.registry.get(engine_name)
        start_time = time.perf_counter()

        try:
            limit = self._limits.get(engine_name)
            if limit is not None:
                async with limit:
                    text = await asyncio.wait_for(
                        engine.complete(prompt, temperature), timeout_ms / 1000.0
                    )
            else:
                text = await asyncio.wait_for(
                    engine.complete(prompt, temperature), timeout_ms / 1000.0
                )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error: ClassifiedEngineError = classify_exception(e, engine=engine_name)
            latency_ms = int((time.perf_counter() - start_time) * 1000)
            self._record(engine_name, "transient" if error.transient else "permanent", latency_ms)
            logger.warning(
                f"[Engine] Call failed: engine={engine_name}, kind={error.kind}, "
                f"status={error.status}, latency={latency_ms}ms, error={e}"
            )
            if error is e:
                raise
            raise error from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        self._record(engine_name, "ok", latency_ms)
        logger.info(
            f"[Engine] Call ok: engine={engine_name}, temperature={temperature}, "
            f"latency={latency_ms}ms, chars={len(text)}"
        )
        return EngineResponse(raw_text=text, engine_name=engine_name, latency_ms=latency_ms)

    def _record(self, engine_name: str, status: str, latency_ms: int) -> None:
        if self.metrics is not None:
            self.metrics.record_engine_call(engine_name, status, latency_ms / 1000.0)
