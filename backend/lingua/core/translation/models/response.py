"""Engine request/response models.

Provider-agnostic representation of one engine call attempt and of the
dispatcher's final verdict for a prompt.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ...llm.errors import ClassifiedEngineError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EngineRequest(BaseModel):
    """One call attempt against a named engine."""

    batch_id: Optional[int] = Field(default=None, description="Batch the prompt belongs to")
    rendered_prompt: str = Field(..., description="Fully rendered prompt text")
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    engine_name: str = Field(..., description="Registry name of the engine")
    timeout_ms: int = Field(default=300_000, gt=0)
    attempt_number: int = Field(default=1, ge=1)


class EngineResponse(BaseModel):
    """Raw text returned by an engine call."""

    raw_text: str = Field(default="", description="Unprocessed engine output")
    engine_name: str = Field(..., description="Engine that produced the text")
    latency_ms: int = Field(default=0, description="Call latency in milliseconds")
    error_kind: Optional[str] = Field(default=None, description="Set when the call failed")
    timestamp: datetime = Field(default_factory=_utcnow)


class EscalationRecord(BaseModel):
    """Append-only trace entry for every engine switch."""

    model_config = ConfigDict(frozen=True)

    from_engine: str
    to_engine: str
    reason: str
    timestamp: datetime = Field(default_factory=_utcnow)


class DispatchResult(BaseModel):
    """Outcome of dispatching one prompt: either text or a classified error.

    The dispatcher never raises for classified engine failures; callers
    inspect ``ok`` and decide what to do with ``error``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    text: Optional[str] = None
    engine_name: str
    attempt_number: int = 0
    latency_ms: int = 0
    escalations: List[EscalationRecord] = Field(default_factory=list)
    error: Optional[ClassifiedEngineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.text is not None

    def unwrap(self) -> str:
        """Return the text, or raise the carried classified error."""
        if self.error is not None:
            raise self.error
        return self.text or ""
