"""Translation pipeline data models.

This module provides structured data models for the translation pipeline,
ensuring type safety and clear contracts between components.
"""

from .segment import Batch, Segment, StyleParams
from .response import DispatchResult, EngineRequest, EngineResponse, EscalationRecord
from .result import (
    BatchResult,
    ItemState,
    Outcome,
    PipelineOutput,
    TranslationResult,
)

__all__ = [
    # Input models
    "StyleParams",
    "Segment",
    "Batch",
    # Engine call models
    "EngineRequest",
    "EngineResponse",
    "EscalationRecord",
    "DispatchResult",
    # Result models
    "ItemState",
    "Outcome",
    "TranslationResult",
    "BatchResult",
    "PipelineOutput",
]
