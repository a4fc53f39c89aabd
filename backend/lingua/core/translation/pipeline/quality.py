"""Heuristic quality gate.

Cheap, engine-free scoring of a sanitized candidate against its source.
The score only looks at things a translation must not change: numbers,
question marks and ellipses.
"""

import re
from typing import List, Tuple

NUMBER_PATTERN = re.compile(r"\d+(?:[.,]\d+)?")
ELLIPSIS_PATTERN = re.compile(r"\.\.\.|…")

BASE_SCORE = 0.95
PENALTIES = {
    "numeric_mismatch": 0.25,
    "question_punct_mismatch": 0.15,
    "ellipsis_missing": 0.10,
}
DEFAULT_THRESHOLD = 0.72


class QualityGate:
    """Scores candidates and compares them with a threshold."""

    def __init__(self, threshold: float = DEFAULT_THRESHOLD, enabled: bool = True):
        self.threshold = threshold
        self.enabled = enabled

    def score(self, source: str, candidate: str) -> Tuple[float, List[str]]:
        """Score a candidate.

        Args:
            source: Source text
            candidate: Sanitized candidate

        Returns:
            Tuple of (score in [0, 1], reasons in penalty order)
        """
        source = source or ""
        candidate = candidate or ""
        reasons: List[str] = []

        if len(NUMBER_PATTERN.findall(source)) != len(NUMBER_PATTERN.findall(candidate)):
            reasons.append("numeric_mismatch")
        if source.count("?") != candidate.count("?"):
            reasons.append("question_punct_mismatch")
        if ELLIPSIS_PATTERN.search(source) and not ELLIPSIS_PATTERN.search(candidate):
            reasons.append("ellipsis_missing")

        score = BASE_SCORE - sum(PENALTIES[reason] for reason in reasons)
        return round(max(0.0, min(1.0, score)), 4), reasons

    def passes(self, score: float) -> bool:
        """Whether a score clears the threshold; always true when disabled."""
        return not self.enabled or score >= self.threshold
