"""Main translation pipeline orchestrator.

This module provides the TranslationPipeline class that coordinates
all pipeline components for end-to-end batch translation.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, fields
from typing import Awaitable, Callable, Optional, Sequence

from ....config import Settings, settings as default_settings
from ...llm.dispatcher import RetryingDispatcher, wait_retry_after_or_backoff
from ...llm.gateway import EngineAdapter, EngineRegistry
from ...metrics import PipelineMetrics
from ...prompts import PromptRegistry
from ..models.result import BatchResult, PipelineOutput
from ..models.segment import Batch, Segment, StyleParams
from ..router import decide_engine, should_collaborate
from .assembler import ResultAssembler
from .chunk_planner import ChunkPlanner
from .escalation import EscalationOrchestrator
from .output_processor import ResponseParser
from .prompt_engine import PromptEngine
from .quality import QualityGate
from .sanitizer import InvariantSanitizer
from .worker_pool import WorkerPool

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    """Configuration for translation pipeline."""

    # Planning
    max_tokens_per_batch: int = 7000
    overhead_tokens: int = 1200
    output_factor: float = 1.15
    max_items_per_batch: int = 250
    micro_batch_subtitles: bool = True

    # Concurrency
    batch_concurrency: int = 4
    subtitle_concurrency: int = 2
    engine_call_limit: Optional[int] = None

    # Engine calls
    max_attempts: int = 3
    timeout_ms: int = 300_000
    backoff_base_s: float = 0.6
    backoff_cap_s: float = 12.0
    max_retry_after_s: float = 60.0

    # Routing and escalation
    primary_engine: str = "auto"
    allow_pro: bool = True
    repair_engine: str = "gemini-2p"
    secondary_engine: str = "gpt-4o"
    arbiter_engine: str = "gemini-2p"
    quality_enabled: bool = True
    quality_threshold: float = 0.72
    committee_enabled: bool = True

    # Prompting
    injection_cap: int = 12000

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None, **overrides) -> "PipelineConfig":
        """Build a config from Settings, with per-run overrides.

        Args:
            source: Settings instance (defaults to the module-level settings)
            **overrides: Any PipelineConfig field

        Returns:
            PipelineConfig
        """
        s = source or default_settings
        values = dict(
            max_tokens_per_batch=s.batch_tokens,
            overhead_tokens=s.batch_overhead_tokens,
            output_factor=s.batch_output_factor,
            max_items_per_batch=s.batch_max_items,
            batch_concurrency=s.batch_concurrency,
            subtitle_concurrency=s.subtitle_concurrency,
            engine_call_limit=s.engine_call_limit,
            max_attempts=s.max_attempts,
            timeout_ms=s.engine_timeout_ms,
            backoff_base_s=s.backoff_base_s,
            backoff_cap_s=s.backoff_cap_s,
            max_retry_after_s=s.max_retry_after_s,
            primary_engine=s.primary_engine,
            allow_pro=s.allow_pro,
            repair_engine=s.repair_engine,
            secondary_engine=s.secondary_engine,
            arbiter_engine=s.arbiter_engine,
            quality_enabled=s.router_qe_enabled,
            quality_threshold=s.router_qe_threshold,
            committee_enabled=s.router_committee_enabled,
            injection_cap=s.injection_cap,
        )
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown pipeline config option(s): {sorted(unknown)}")
        values.update(overrides)
        return cls(**values)


class TranslationPipeline:
    """Main orchestrator for the translation pipeline.

    Coordinates the flow:
    Segments -> ChunkPlanner -> WorkerPool -> per batch
    (PromptEngine -> Router -> EscalationOrchestrator) -> ResultAssembler

    Supports:
    - Token-budgeted batching with subtitle micro-batches
    - Retries with stable-engine fallback
    - First-pass review with repair, or committee of two with arbiter
    - Cooperative cancellation through an asyncio.Event
    """

    def __init__(
        self,
        engines: EngineRegistry,
        config: Optional[PipelineConfig] = None,
        *,
        metrics: Optional[PipelineMetrics] = None,
        prompt_registry: Optional[PromptRegistry] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        """Initialize translation pipeline.

        Args:
            engines: Registry of named engines with a stable fallback
            config: Pipeline configuration
            metrics: Prometheus metrics sink (a private registry is created if omitted)
            prompt_registry: Style templates (built-in templates if omitted)
            sleep: Backoff sleep, injectable for tests
            rng: Jitter source, injectable for tests
        """
        self.config = config or PipelineConfig()
        self.engines = engines
        self.metrics = metrics or PipelineMetrics()

        self.adapter = EngineAdapter(
            engines,
            metrics=self.metrics,
            per_engine_limit=self.config.engine_call_limit,
        )
        self.dispatcher = RetryingDispatcher(
            self.adapter,
            wait=wait_retry_after_or_backoff(
                base=self.config.backoff_base_s,
                cap=self.config.backoff_cap_s,
                max_retry_after=self.config.max_retry_after_s,
                rng=rng,
            ),
            sleep=sleep,
            metrics=self.metrics,
        )
        self.planner = ChunkPlanner(
            max_tokens_per_batch=self.config.max_tokens_per_batch,
            overhead_tokens=self.config.overhead_tokens,
            output_factor=self.config.output_factor,
            max_items_per_batch=self.config.max_items_per_batch,
            micro_batch_subtitles=self.config.micro_batch_subtitles,
        )
        self.prompt_engine = PromptEngine(prompt_registry, injection_cap=self.config.injection_cap)
        self.orchestrator = EscalationOrchestrator(
            self.dispatcher,
            self.prompt_engine,
            parser=ResponseParser(),
            sanitizer=InvariantSanitizer(),
            quality_gate=QualityGate(
                threshold=self.config.quality_threshold,
                enabled=self.config.quality_enabled,
            ),
            repair_engine=self.config.repair_engine,
            secondary_engine=self.config.secondary_engine,
            arbiter_engine=self.config.arbiter_engine,
            timeout_ms=self.config.timeout_ms,
            max_attempts=self.config.max_attempts,
            metrics=self.metrics,
        )
        self.assembler = ResultAssembler()

    async def translate(
        self,
        segments: Sequence[Segment],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PipelineOutput:
        """Execute the full pipeline over indexed segments.

        Args:
            segments: Segments with indices 0..n-1, in order
            cancel_event: Set it to stop dispatching new batches

        Returns:
            PipelineOutput with one entry per segment; ``None`` marks failures

        Raises:
            ValueError: If segment indices are not exactly 0..n-1 in order
        """
        for position, segment in enumerate(segments):
            if segment.index != position:
                raise ValueError(
                    f"Segment at position {position} has index {segment.index}; "
                    f"indices must be 0..{len(segments) - 1} in order"
                )

        batches = self.planner.plan(segments)
        concurrency = self._concurrency_for(batches)
        pool = WorkerPool(concurrency, metrics=self.metrics)
        run = await pool.run(batches, self._process_batch, cancel_event)

        output = self.assembler.build_output(run.results, len(segments), cancelled=run.cancelled)
        logger.info(
            f"[Pipeline] Finished {len(segments)} segment(s) in {len(batches)} batch(es): "
            f"{output.outcome_counts}, cancelled={output.cancelled}"
        )
        return output

    async def translate_texts(
        self,
        texts: Sequence[str],
        style: StyleParams,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PipelineOutput:
        """Translate plain strings that share one style."""
        segments = [Segment(index=i, source_text=text, style=style) for i, text in enumerate(texts)]
        return await self.translate(segments, cancel_event)

    def preview(self, texts: Sequence[str], style: StyleParams) -> dict:
        """Preview the plan and first prompt without making engine calls.

        Returns:
            Preview dictionary with batch layout, routing and the first prompt
        """
        segments = [Segment(index=i, source_text=text, style=style) for i, text in enumerate(texts)]
        batches = self.planner.plan(segments)
        first = batches[0] if batches else None
        decision = self._route(first) if first else None
        return {
            "batches": [
                {"batch_id": b.batch_id, "size": len(b), "projected_tokens": b.projected_tokens}
                for b in batches
            ],
            "engine": decision.engine if decision else None,
            "reason": decision.reason if decision else None,
            "risk": decision.risk if decision else None,
            "temperature": self.prompt_engine.temperature_for(style),
            "prompt": self.prompt_engine.build_batch_prompt(first.sources, style) if first else "",
        }

    async def _process_batch(self, batch: Batch) -> BatchResult:
        style = batch.style
        prompt = self.prompt_engine.build_batch_prompt(batch.sources, style)
        temperature = self.prompt_engine.temperature_for(style)

        decision = self._route(batch)
        committee = should_collaborate(
            decision.risk, style.mode, committee_enabled=self.config.committee_enabled
        )
        self.metrics.record_router_decision(decision.engine, decision.reason)
        logger.info(
            f"[Pipeline] batch={batch.batch_id} size={len(batch)} engine={decision.engine} "
            f"reason={decision.reason} risk={decision.risk} temperature={temperature} "
            f"committee={committee}"
        )

        return await self.orchestrator.process_batch(
            batch,
            prompt,
            primary_engine=decision.engine,
            temperature=temperature,
            committee=committee,
        )

    def _route(self, batch: Batch):
        decision = decide_engine(
            "\n".join(batch.sources),
            batch.style,
            is_batch=len(batch) > 1,
            allow_pro=self.config.allow_pro,
            preferred=self.config.primary_engine,
        )
        if decision.engine not in self.engines:
            logger.warning(
                f"[Pipeline] Routed engine {decision.engine} is not registered; "
                f"using {self.engines.stable_fallback}"
            )
            decision = decision.model_copy(
                update={
                    "engine": self.engines.stable_fallback,
                    "reason": f"{decision.reason}+unregistered",
                }
            )
        return decision

    def _concurrency_for(self, batches: Sequence[Batch]) -> int:
        if batches and all(batch.style.is_subtitle_like for batch in batches):
            return self.config.subtitle_concurrency
        return self.config.batch_concurrency


class PipelineFactory:
    """Factory for creating translation pipelines."""

    @staticmethod
    def create(
        source: Optional[Settings] = None,
        metrics: Optional[PipelineMetrics] = None,
        **overrides,
    ) -> TranslationPipeline:
        """Create a pipeline with LiteLLM engines from settings.

        Args:
            source: Settings instance (defaults to the module-level settings)
            metrics: Optional shared metrics sink
            **overrides: PipelineConfig overrides

        Returns:
            Configured TranslationPipeline
        """
        s = source or default_settings
        engines = EngineRegistry.from_models(
            s.engine_models,
            stable_fallback=s.fallback_engine,
            api_keys={name: s.api_key_for(model) for name, model in s.engine_models.items()},
        )
        config = PipelineConfig.from_settings(s, **overrides)
        return TranslationPipeline(engines, config, metrics=metrics)
