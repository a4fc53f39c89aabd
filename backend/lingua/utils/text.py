"""Text helpers for log-safe previews of engine payloads."""

import re
from typing import Optional

BREAK_CHARS = frozenset(" \n\t,.!?;:-。，、")
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def safe_truncate(text: Optional[str], max_chars: int, suffix: str = "...") -> str:
    """Truncate text, preferring a nearby word boundary.

    Looks back up to 20 characters for a space or punctuation mark so the
    cut does not land mid-word.

    Args:
        text: Text to truncate
        max_chars: Maximum characters (excluding suffix)
        suffix: Suffix to append if truncated (default "...")

    Returns:
        Truncated text with suffix if needed
    """
    if not text or len(text) <= max_chars:
        return text or ""

    truncated = text[:max_chars]
    for back in range(1, min(20, max_chars - 1) + 1):
        if truncated[-back] in BREAK_CHARS:
            truncated = truncated[: max_chars - back + 1].rstrip()
            break
    return truncated + suffix


def preview(text: Optional[str], max_chars: int = 120) -> str:
    """Single-line, control-character-free preview for log messages."""
    if not text:
        return ""
    text = CONTROL_CHARS.sub("", text)
    text = re.sub(r"\s+", " ", text).strip()
    return safe_truncate(text, max_chars)
