"""Engine routing.

Scores how risky a request is from its text and style, picks the primary
engine, and decides whether the committee-of-two path is worth its cost.
All functions here are pure.
"""

import logging
import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .models.segment import StyleParams

logger = logging.getLogger(__name__)

FLASH_ENGINE = "gemini-fl"
PRO_ENGINE = "gemini-2p"

HARD_MODES = frozenset({"legal", "technical", "medical", "corporate", "journalistic"})
HIGH_CONTEXT_MODES = frozenset({"dubbing", "dialogue", "subtitling"})
CREATIVE_MODES = frozenset({"marketing", "creative", "entertainment"})
TERMINOLOGY_MODES = frozenset({"legal", "medical"})
TERMINOLOGY_SUB_STYLE_HINTS = (
    "contracts",
    "terms",
    "privacy",
    "compliance",
    "constitutional",
    "clinical",
    "patient",
    "research",
)

TOUGH_TARGET_PATTERN = re.compile(r"zh|ja|ar|ru", re.IGNORECASE)
DIGIT_PATTERN = re.compile(r"\d")

COLLABORATION_RISK = 0.65
LONG_OR_COMPLEX_RISK = 0.55


class RoutingDecision(BaseModel):
    """Primary engine choice for one request."""

    model_config = ConfigDict(frozen=True)

    engine: str = Field(..., description="Registry name of the primary engine")
    reason: str = Field(..., description="Short machine-readable reason")
    risk: float = Field(default=0.0, ge=0.0, le=1.0)


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _length_score(length: int) -> float:
    if length > 2800:
        return 1.0
    if length > 1200:
        return 0.7
    if length > 400:
        return 0.45
    if length > 120:
        return 0.25
    return 0.1


def is_hard_mode(mode: str) -> bool:
    return _norm(mode) in HARD_MODES


def is_high_context(mode: str, sub_style: str = "") -> bool:
    return _norm(mode) in HIGH_CONTEXT_MODES or _norm(sub_style) in HIGH_CONTEXT_MODES


def is_terminology_heavy(mode: str, sub_style: str = "") -> bool:
    if _norm(mode) in TERMINOLOGY_MODES:
        return True
    sub = _norm(sub_style)
    return any(hint in sub for hint in TERMINOLOGY_SUB_STYLE_HINTS)


def risk_score(text: str, style: StyleParams) -> float:
    """Heuristic risk in [0, 1] for a request's text and style.

    Args:
        text: Concatenated source text of the request
        style: Style parameters

    Returns:
        Risk rounded to 3 decimals
    """
    text = text or ""
    score = _length_score(len(text))

    if len(DIGIT_PATTERN.findall(text)) >= 3:
        score += 0.12
    if "..." in text or "…" in text:
        score += 0.08
    if "\n" in text:
        score += 0.12

    if is_hard_mode(style.mode):
        score += 0.28
    if is_high_context(style.mode, style.sub_style):
        score += 0.22
    if is_terminology_heavy(style.mode, style.sub_style):
        score += 0.3
    if _norm(style.mode) in CREATIVE_MODES:
        score += 0.10
    if style.injections:
        score += 0.10
    if TOUGH_TARGET_PATTERN.search(style.target_language or ""):
        score += 0.05

    return round(min(1.0, score), 3)


def decide_engine(
    text: str,
    style: StyleParams,
    *,
    is_batch: bool = False,
    allow_pro: bool = True,
    preferred: Optional[str] = None,
) -> RoutingDecision:
    """Pick the primary engine for a request.

    Args:
        text: Concatenated source text
        style: Style parameters
        is_batch: Request carries more than one item
        allow_pro: Whether the slower pro engine may be chosen
        preferred: Explicit engine preference; ``auto`` or None lets the router decide

    Returns:
        RoutingDecision with engine, reason and risk
    """
    risk = risk_score(text, style)

    if preferred and _norm(preferred) != "auto":
        return RoutingDecision(engine=preferred, reason=f"forced:{preferred}", risk=risk)

    if is_batch:
        if allow_pro:
            return RoutingDecision(engine=PRO_ENGINE, reason="batch+pro", risk=risk)
        return RoutingDecision(engine=FLASH_ENGINE, reason="batch_default", risk=risk)

    if style.rephrase:
        return RoutingDecision(engine=FLASH_ENGINE, reason="rephrase_speed", risk=risk)

    if is_hard_mode(style.mode) or is_high_context(style.mode, style.sub_style):
        if allow_pro:
            return RoutingDecision(engine=PRO_ENGINE, reason="hard_mode", risk=risk)
        return RoutingDecision(engine=FLASH_ENGINE, reason="hard_mode+pro_disabled", risk=risk)

    if risk >= LONG_OR_COMPLEX_RISK:
        return RoutingDecision(engine=FLASH_ENGINE, reason="long_or_complex", risk=risk)

    if _norm(style.mode) in CREATIVE_MODES and _norm(style.target_language).startswith("en"):
        return RoutingDecision(engine=FLASH_ENGINE, reason="creative_en", risk=risk)

    return RoutingDecision(engine=FLASH_ENGINE, reason="fast_default", risk=risk)


def should_collaborate(risk: float, mode: str, *, committee_enabled: bool = True) -> bool:
    """Whether a request is worth the committee-of-two path."""
    if not committee_enabled:
        return False
    return risk >= COLLABORATION_RISK or _norm(mode) in HIGH_CONTEXT_MODES
