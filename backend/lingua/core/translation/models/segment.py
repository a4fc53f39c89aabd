"""Segment and batch models.

Segments are produced by the caller (a document segmenter, a subtitle
parser, a UI) and stay read-only for the whole pipeline run. Batches are
cut from them by the chunk planner.
"""

from typing import Any, Dict, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

SUBTITLE_MODES = frozenset({"dubbing"})
SUBTITLE_SUB_STYLES = frozenset({"subtitling", "dialogue"})


class StyleParams(BaseModel):
    """Style and target-language specification shared by a request."""

    model_config = ConfigDict(frozen=True)

    mode: str = Field(default="", description="Style family, e.g. formal, dubbing")
    sub_style: str = Field(default="", description="Sub-style within the mode")
    target_language: str = Field(default="", description="Target language name or code")
    rephrase: bool = Field(
        default=False, description="Rephrase in the source language instead of translating"
    )
    injections: Optional[Union[str, Dict[str, Any]]] = Field(
        default=None, description="Brand kit / glossary / phrasebook block"
    )

    @property
    def is_subtitle_like(self) -> bool:
        """Spoken-line styles where 1:1 cue fidelity matters most."""
        return (
            self.mode.strip().lower() in SUBTITLE_MODES
            or self.sub_style.strip().lower() in SUBTITLE_SUB_STYLES
        )


class Segment(BaseModel):
    """One indexed unit of source text."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0, description="Position in the caller's ordered list")
    source_text: str = Field(default="", description="Text to translate")
    style: StyleParams = Field(default_factory=StyleParams)


class Batch(BaseModel):
    """Contiguous, order-preserving group of segments sent in one engine call."""

    model_config = ConfigDict(frozen=True)

    batch_id: int = Field(..., description="Sequence number assigned by the planner")
    segments: Tuple[Segment, ...] = Field(..., min_length=1)
    input_tokens: int = Field(default=0, description="Estimated input tokens of all items")
    projected_tokens: int = Field(
        default=0, description="Overhead + input + projected output tokens"
    )

    def __len__(self) -> int:
        return len(self.segments)

    @property
    def indices(self) -> Tuple[int, ...]:
        return tuple(s.index for s in self.segments)

    @property
    def sources(self) -> Tuple[str, ...]:
        return tuple(s.source_text for s in self.segments)

    @property
    def style(self) -> StyleParams:
        return self.segments[0].style
