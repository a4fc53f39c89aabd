"""Engine access package.

This package provides:
- Classified engine errors (transient vs permanent)
- Engine runtime configuration for LiteLLM
- EngineRegistry / EngineAdapter (lingua.core.llm.gateway)
- RetryingDispatcher with stable fallback (lingua.core.llm.dispatcher)

The gateway and dispatcher depend on the translation models, so they are
imported from their modules rather than re-exported here.
"""

from .errors import (
    ClassifiedEngineError,
    LinguaError,
    MalformedResponseError,
    PermanentEngineError,
    TransientEngineError,
    classify_exception,
)
from .runtime_config import EngineConfig

__all__ = [
    "LinguaError",
    "ClassifiedEngineError",
    "TransientEngineError",
    "PermanentEngineError",
    "MalformedResponseError",
    "classify_exception",
    "EngineConfig",
]
