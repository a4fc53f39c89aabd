"""Translation package.

This package provides the translation pipeline and its routing.

Architecture:
- models/: Data models (Segment, Batch, DispatchResult, TranslationResult, etc.)
- router.py: Risk scoring and primary-engine routing
- pipeline/: Pipeline components (ChunkPlanner, ResponseParser, etc.)

The pipeline package depends on the engine gateway, which itself imports
the models from here, so it is not re-exported at this level.
"""

from .models import (
    # Input models
    StyleParams,
    Segment,
    Batch,
    # Engine call models
    EngineRequest,
    EngineResponse,
    EscalationRecord,
    DispatchResult,
    # Result models
    ItemState,
    Outcome,
    TranslationResult,
    BatchResult,
    PipelineOutput,
)
from .router import RoutingDecision, decide_engine, risk_score, should_collaborate

__all__ = [
    # Models
    "StyleParams",
    "Segment",
    "Batch",
    "EngineRequest",
    "EngineResponse",
    "EscalationRecord",
    "DispatchResult",
    "ItemState",
    "Outcome",
    "TranslationResult",
    "BatchResult",
    "PipelineOutput",
    # Routing
    "RoutingDecision",
    "decide_engine",
    "risk_score",
    "should_collaborate",
]
