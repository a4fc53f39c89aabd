"""Multi-engine translation dispatch pipeline."""

from .core.llm.errors import (
    ClassifiedEngineError,
    LinguaError,
    PermanentEngineError,
    TransientEngineError,
)
from .core.llm.gateway import Engine, EngineRegistry, LiteLLMEngine
from .core.metrics import PipelineMetrics
from .core.translation.models import (
    Outcome,
    PipelineOutput,
    Segment,
    StyleParams,
    TranslationResult,
)
from .core.translation.pipeline import PipelineConfig, PipelineFactory, TranslationPipeline

__all__ = [
    "TranslationPipeline",
    "PipelineConfig",
    "PipelineFactory",
    "Segment",
    "StyleParams",
    "PipelineOutput",
    "TranslationResult",
    "Outcome",
    "Engine",
    "EngineRegistry",
    "LiteLLMEngine",
    "PipelineMetrics",
    "LinguaError",
    "ClassifiedEngineError",
    "TransientEngineError",
    "PermanentEngineError",
]
