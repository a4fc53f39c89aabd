"""Source-aware invariant sanitizer.

Engines are not trusted to keep punctuation, numerals, capitalization or
multi-speaker line structure intact. The sanitizer compares each candidate
with its source and repairs those invariants with an ordered list of pure
passes over the candidate's lines.

Passes are line-aligned: line ``i`` of the candidate is compared with
line ``i`` of the source. Only separator normalization may change the
line count, and only to match the source's dialogue dash lines.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SanitizeContext:
    """Source side of a sanitize call."""

    source: str
    target_language: str = ""
    source_lines: List[str] = field(default_factory=list)

    @classmethod
    def build(cls, source: Optional[str], target_language: Optional[str]) -> "SanitizeContext":
        source = source or ""
        return cls(
            source=source,
            target_language=target_language or "",
            source_lines=source.splitlines(),
        )

    @property
    def english_target(self) -> bool:
        return self.target_language.strip().lower().startswith("en")

    def source_line(self, index: int) -> Optional[str]:
        if index < len(self.source_lines):
            return self.source_lines[index].strip()
        return None


Pass = Callable[[List[str], SanitizeContext], List[str]]


# =============================================================================
# Helpers
# =============================================================================

SENTENCE_BOUNDARY = re.compile(r"([.!?…][\"'”’)\]]*)\s+")
TERMINAL_AT_END = re.compile(r"[.!?…？！。][\"'”’)\]]*\s*$")
LINE_LEAD = re.compile(r"^(\s*(?:-\s*)?[\"'“‘(\[]*)(\S)")
NUMBER_PATTERN = re.compile(r"\d+(?:[.,]\d+)?")
QUESTION_END = re.compile(r"[?？]\s*$")
WH_WORDS = re.compile(
    r"\b(who|what|when|where|why|how|which|whom|whose"
    r"|como|quem|que|quando|onde|por que|qual)\b",
    re.IGNORECASE,
)
ELLIPSIS_END = re.compile(r"(\.\.\.|…)\s*$")
SINGLE_PERIOD_END = re.compile(r"(?<!\.)\.\s*$")

BULLET_AT_LINE_START = re.compile(r"(^|\n)[ \t]*[-•◦‣▪][ \t]+")
SPACED_DASH = re.compile(r"[ \t]+[–—-]+[ \t]+")
LETTER_DASH_LETTER = re.compile(r"([^\W\d_])[–—]([^\W\d_])")

INVERTED_QUESTIONS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"^\s*(Have|Has)\s+you\b", re.IGNORECASE), "You have"),
    (re.compile(r"^\s*Had\s+you\b", re.IGNORECASE), "You had"),
    (re.compile(r"^\s*Are\s+you\b", re.IGNORECASE), "You are"),
    (re.compile(r"^\s*Were\s+you\b", re.IGNORECASE), "You were"),
    (re.compile(r"^\s*(Do|Does)\s+you\b", re.IGNORECASE), "You do"),
    (re.compile(r"^\s*Did\s+you\b", re.IGNORECASE), "You did"),
    (re.compile(r"^\s*Will\s+you\b", re.IGNORECASE), "You will"),
    (re.compile(r"^\s*Would\s+you\b", re.IGNORECASE), "You would"),
    (re.compile(r"^\s*Should\s+you\b", re.IGNORECASE), "You should"),
    (re.compile(r"^\s*Could\s+you\b", re.IGNORECASE), "You could"),
    (re.compile(r"^\s*Can\s+you\b", re.IGNORECASE), "You can"),
    (re.compile(r"^\s*Must\s+you\b", re.IGNORECASE), "You must"),
)

EN_UNITS = (
    "zero", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine",
    "ten", "eleven", "twelve", "thirteen", "fourteen", "fifteen", "sixteen",
    "seventeen", "eighteen", "nineteen",
)
EN_TENS = {
    20: "twenty", 30: "thirty", 40: "forty", 50: "fifty",
    60: "sixty", 70: "seventy", 80: "eighty", 90: "ninety",
}


def split_sentences(text: str) -> List[str]:
    """Split on whitespace that follows terminal punctuation (and closing quotes)."""
    parts: List[str] = []
    start = 0
    for match in SENTENCE_BOUNDARY.finditer(text):
        parts.append(text[start : match.end(1)])
        start = match.end()
    parts.append(text[start:])
    return [part.strip() for part in parts if part.strip()]


def spell_english(n: int) -> Optional[str]:
    """English words for 0-99, e.g. 42 -> ``forty-two``."""
    if n < 0 or n > 99:
        return None
    if n < 20:
        return EN_UNITS[n]
    tens, ones = (n // 10) * 10, n % 10
    return EN_TENS[tens] + (f"-{EN_UNITS[ones]}" if ones else "")


def dash_line_count(text: str) -> int:
    return sum(1 for line in text.splitlines() if line.strip().startswith("-"))


def _ensure_dash(line: str) -> str:
    line = line.strip()
    if not line or line.startswith("-"):
        return line
    return f"- {line}"


def _join(lines: Sequence[str]) -> str:
    return "\n".join(lines)


# =============================================================================
# Passes
# =============================================================================


def clean_markup(lines: List[str], ctx: SanitizeContext) -> List[str]:
    """Drop stray result tags and collapse runs of whitespace within each line.

    Blank lines are kept so later passes stay aligned with the source.
    """
    out = []
    for line in lines:
        line = re.sub(r"</?result>", "", line.rstrip("\r"), flags=re.IGNORECASE)
        out.append(re.sub(r"[ \t]{2,}", " ", line).strip())
    return out


def _resplit_dialogue(lines: List[str], expected: int) -> List[str]:
    """Force exactly ``expected`` dash-prefixed lines.

    Tried in order: the candidate's own dash lines (continuation lines are
    folded into the dash line above, leading plain lines into the first
    dash line), a sentence split, the candidate's non-empty lines, a split
    on " - ", and finally the merged text in the first line padded with
    empty lines.
    """
    non_empty = [line.strip() for line in lines if line.strip()]

    if sum(1 for line in non_empty if line.startswith("-")) == expected:
        merged: List[str] = []
        lead: List[str] = []
        for line in non_empty:
            if line.startswith("-"):
                if lead:
                    line = "- " + " ".join(lead + [line.lstrip("-").strip()])
                    lead = []
                merged.append(line)
            elif merged:
                merged[-1] = f"{merged[-1]} {line}"
            else:
                # text before the first dash belongs to the first speaker
                lead.append(line)
        if len(merged) == expected:
            return [_ensure_dash(line) for line in merged]

    text = _join(non_empty)
    sentences = split_sentences(text)
    if len(sentences) == expected:
        return [_ensure_dash(part) for part in sentences]

    if len(non_empty) == expected:
        return [_ensure_dash(line) for line in non_empty]

    pieces = [piece.strip() for piece in re.split(r"\s-\s", text) if piece.strip()]
    if len(pieces) == expected:
        return [_ensure_dash(piece) for piece in pieces]

    logger.warning(
        f"[Sanitizer] Could not resplit dialogue into {expected} lines; "
        f"keeping merged text in the first line"
    )
    padded = [""] * expected
    padded[0] = _ensure_dash(" ".join(non_empty))
    return padded


def normalize_separators(lines: List[str], ctx: SanitizeContext) -> List[str]:
    """Keep dialogue dashes for multi-speaker sources, strip separators otherwise."""
    expected = dash_line_count(ctx.source)
    if expected >= 2:
        return _resplit_dialogue(lines, expected)

    text = _join(lines)
    text = BULLET_AT_LINE_START.sub(r"\1", text)
    text = SPACED_DASH.sub(", ", text)
    text = LETTER_DASH_LETTER.sub(r"\1, \2", text)
    text = re.sub(r"[ \t]+,", ",", text)
    text = re.sub(r",[ \t]*,", ", ", text)
    return text.split("\n")


def capitalize_after_terminals(lines: List[str], ctx: SanitizeContext) -> List[str]:
    """Uppercase the first letter of a line when the previous line ends a sentence."""
    out = list(lines)
    for i in range(1, len(out)):
        if not TERMINAL_AT_END.search(out[i - 1].strip()):
            continue
        match = LINE_LEAD.match(out[i])
        if match and match.group(2).islower():
            out[i] = match.group(1) + match.group(2).upper() + out[i][match.end() :]
    return out


def restore_numerals(lines: List[str], ctx: SanitizeContext) -> List[str]:
    """Rewrite spelled-out 0-99 back to digits when the source line used digits."""
    if not ctx.english_target:
        return lines

    out = list(lines)
    for i, line in enumerate(out):
        source = ctx.source_line(i)
        if not source or re.search(r"\d", line):
            continue
        for raw in NUMBER_PATTERN.findall(source):
            digits = re.sub(r"\D", "", raw)
            if not digits:
                continue
            n = int(digits)
            spelled = spell_english(n)
            if spelled is None:
                continue
            pattern = r"\b" + spelled.replace("-", r"[-\s]?") + r"\b"
            line = re.sub(pattern, str(n), line, flags=re.IGNORECASE)
        out[i] = line
    return out


def stabilize_mood(lines: List[str], ctx: SanitizeContext) -> List[str]:
    """Turn "Have you ...?" back into "You have ..." when the source is a statement."""
    if not ctx.english_target:
        return lines

    out = list(lines)
    for i, line in enumerate(out):
        source = ctx.source_line(i)
        if source is None or QUESTION_END.search(source) or WH_WORDS.search(source):
            continue
        if not QUESTION_END.search(line):
            continue
        for pattern, replacement in INVERTED_QUESTIONS:
            if pattern.search(line):
                fixed = pattern.sub(replacement, line.strip(), count=1)
                out[i] = QUESTION_END.sub(".", fixed)
                break
    return out


def restore_terminal_punctuation(lines: List[str], ctx: SanitizeContext) -> List[str]:
    """Put back a source line's ellipsis or exclamation that became a period."""
    out = list(lines)
    for i, line in enumerate(out):
        source = ctx.source_line(i)
        if not source:
            continue
        if ELLIPSIS_END.search(source) and not ELLIPSIS_END.search(line):
            out[i] = SINGLE_PERIOD_END.sub("...", line.rstrip())
        elif source.endswith("!") and SINGLE_PERIOD_END.search(line):
            out[i] = SINGLE_PERIOD_END.sub("!", line.rstrip())
    return out


def clean_punctuation(lines: List[str], ctx: SanitizeContext) -> List[str]:
    """Collapse doubled marks and repair a trailing two-dot ellipsis."""
    out = []
    for line in lines:
        line = re.sub(r"\?{2,}", "?", line)
        line = re.sub(r"!{2,}", "!", line)
        line = re.sub(r"\.{4,}", "...", line)
        line = re.sub(r"([^.])\.\.$", r"\1...", line)
        out.append(line)
    return out


DEFAULT_PASSES: Tuple[Tuple[str, Pass], ...] = (
    ("markup", clean_markup),
    ("separators", normalize_separators),
    ("capitalization", capitalize_after_terminals),
    ("numerals", restore_numerals),
    ("mood", stabilize_mood),
    ("terminal_punctuation", restore_terminal_punctuation),
    ("punctuation", clean_punctuation),
)


class InvariantSanitizer:
    """Runs the ordered passes over a candidate.

    Each pass is a pure ``(lines, ctx) -> lines`` function, so passes can
    be tested, reordered or replaced independently.
    """

    def __init__(self, passes: Sequence[Tuple[str, Pass]] = DEFAULT_PASSES):
        self.passes = tuple(passes)

    def sanitize(self, candidate: Optional[str], source: Optional[str], target_language: str = "") -> str:
        """Repair a candidate against its source.

        Args:
            candidate: Engine output for one item
            source: Source text of the same item
            target_language: Target language name or code

        Returns:
            Sanitized text; empty candidates are returned unchanged
        """
        if not candidate:
            return candidate or ""

        ctx = SanitizeContext.build(source, target_language)
        lines = candidate.split("\n")
        for _name, transform in self.passes:
            lines = transform(lines, ctx)
        return _join(lines)

    def sanitize_many(
        self,
        candidates: Sequence[str],
        sources: Sequence[str],
        target_language: str = "",
    ) -> List[str]:
        """Sanitize index-aligned candidates against their sources."""
        return [
            self.sanitize(candidate, source, target_language)
            for candidate, source in zip(candidates, sources)
        ]
