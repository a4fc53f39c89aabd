"""Translation result models.

This module defines the per-item output of the pipeline, including the
quality score, the escalation trace and the escalation state machine.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ...llm.errors import ClassifiedEngineError
from .response import EscalationRecord


class ItemState(str, Enum):
    """Escalation state machine for a single item."""

    DRAFT = "draft"
    QUALITY_CHECKED = "quality_checked"
    ACCEPTED = "accepted"
    REPAIRED = "repaired"
    COMMITTEE_FINALIZED = "committee_finalized"
    FAILED = "failed"
    DELIVERED = "delivered"


class Outcome(str, Enum):
    """Which path produced the delivered text."""

    ACCEPTED = "accepted"
    REPAIRED = "repaired"
    COMMITTEE_FINALIZED = "committee_finalized"
    FAILED = "failed"


class TranslationResult(BaseModel):
    """Final processed output for one segment."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    index: int = Field(..., description="Original segment index")
    target_text: Optional[str] = Field(
        default=None, description="Delivered text; None when the item failed"
    )
    quality_score: float = Field(default=0.0, ge=0.0, le=1.0)
    reasons: List[str] = Field(default_factory=list, description="Quality gate findings")
    escalation_trace: List[EscalationRecord] = Field(default_factory=list)
    outcome: Outcome = Field(default=Outcome.ACCEPTED)
    state: ItemState = Field(default=ItemState.DELIVERED)
    history: List[ItemState] = Field(
        default_factory=list, description="States visited before the terminal one"
    )
    engine_name: Optional[str] = Field(default=None, description="Engine that produced the text")
    error: Optional[ClassifiedEngineError] = Field(default=None)

    @property
    def failed(self) -> bool:
        return self.state == ItemState.FAILED

    @classmethod
    def failure(
        cls,
        index: int,
        error: Optional[ClassifiedEngineError],
        *,
        history: Optional[List[ItemState]] = None,
        trace: Optional[List[EscalationRecord]] = None,
    ) -> "TranslationResult":
        """Build the explicit failure marker for an index."""
        return cls(
            index=index,
            target_text=None,
            quality_score=0.0,
            outcome=Outcome.FAILED,
            state=ItemState.FAILED,
            history=list(history or []),
            escalation_trace=list(trace or []),
            error=error,
        )


class BatchResult(BaseModel):
    """All item results for one batch, in batch order."""

    batch_id: int
    results: List[TranslationResult] = Field(default_factory=list)
    was_repaired: bool = Field(
        default=False, description="Parser had to fix the engine payload"
    )


class PipelineOutput(BaseModel):
    """Assembled output of a pipeline run."""

    texts: List[Optional[str]] = Field(
        default_factory=list, description="One entry per input; None marks a failed index"
    )
    results: List[TranslationResult] = Field(default_factory=list)
    cancelled: bool = Field(default=False)

    @property
    def failed_indices(self) -> List[int]:
        return [i for i, text in enumerate(self.texts) if text is None]

    @property
    def outcome_counts(self) -> Dict[str, int]:
        counts = {outcome.value: 0 for outcome in Outcome}
        for result in self.results:
            counts[result.outcome.value] += 1
        return counts

    @property
    def complete(self) -> bool:
        return not self.failed_indices
