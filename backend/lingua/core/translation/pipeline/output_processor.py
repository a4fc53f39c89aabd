"""Response parser for structured engine output.

This module turns raw engine text into exactly ``expected_length`` strings.
Engines are asked for a JSON array inside ``<result>`` tags; when they
wrap it in chatter, code fences or skip the array entirely, the parser
recovers what it can and flags the result as repaired.
"""

import json
import logging
import re
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from lingua.utils.text import preview

from ...llm.errors import MalformedResponseError

logger = logging.getLogger(__name__)

RESULT_TAG_PATTERN = re.compile(r"<result>(.*?)</result>", re.IGNORECASE | re.DOTALL)
RESULT_TAG_STRIP = re.compile(r"</?result>", re.IGNORECASE)
FENCE_OPEN = re.compile(r"^```(?:json)?", re.IGNORECASE)
FENCE_CLOSE = re.compile(r"```$")
LINE_BREAK = re.compile(r"\r?\n")


def extract_tagged(raw: Optional[str]) -> str:
    """Body of the first ``<result>...</result>`` block, or the raw text.

    Stray result tags are removed and the body is stripped.
    """
    raw = raw or ""
    match = RESULT_TAG_PATTERN.search(raw)
    body = match.group(1) if match else raw
    return RESULT_TAG_STRIP.sub("", body).strip()


def _strip_fences(text: str) -> str:
    text = FENCE_OPEN.sub("", text.strip(), count=1)
    return FENCE_CLOSE.sub("", text).strip()


def _slice_array(text: str) -> str:
    first = text.find("[")
    last = text.rfind("]")
    if first != -1 and last > first:
        return text[first : last + 1]
    return text


def _load_array(text: str) -> List[Any]:
    """Strict JSON array parse.

    Raises:
        MalformedResponseError: If the text is not valid JSON or not an array
    """
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, ValueError) as e:
        raise MalformedResponseError(f"Invalid JSON: {e}") from e
    if not isinstance(value, list):
        raise MalformedResponseError(f"Expected a JSON array, got {type(value).__name__}")
    return value


def _to_text(item: Any) -> str:
    if item is None:
        return ""
    if isinstance(item, str):
        return item
    if isinstance(item, (dict, list)):
        return json.dumps(item, ensure_ascii=False)
    return str(item)


class ParsedResponse(BaseModel):
    """Parser output: exactly ``expected_length`` strings."""

    items: List[str] = Field(default_factory=list)
    was_repaired: bool = Field(
        default=False,
        description="Strict parse failed or the item count had to be fixed",
    )


class ResponseParser:
    """Parses raw engine text into an index-aligned list of strings.

    Steps:
    1. Take the ``<result>`` payload if present
    2. Strip markdown code fences
    3. Cut to the first ``[`` ... last ``]``
    4. Strict JSON array parse
    5. On failure, fall back to non-empty lines
    6. Truncate or pad with ``""`` to the expected length

    Never raises.
    """

    def parse(self, raw_text: Optional[str], expected_length: int) -> ParsedResponse:
        """Parse an engine payload.

        Args:
            raw_text: Raw engine output
            expected_length: Number of items the batch sent

        Returns:
            ParsedResponse with exactly ``expected_length`` items
        """
        text = _strip_fences(extract_tagged(raw_text))
        text = _slice_array(text)

        repaired = False
        try:
            values = _load_array(text)
        except MalformedResponseError as e:
            logger.warning(
                f"[Parser] Strict parse failed ({e}); falling back to line split: {preview(text)!r}"
            )
            values = [line.strip() for line in LINE_BREAK.split(text) if line.strip()]
            repaired = True

        items = [_to_text(value) for value in values]

        if len(items) != expected_length:
            logger.warning(
                f"[Parser] Item count mismatch: got {len(items)}, expected {expected_length}"
            )
            repaired = True
            items = items[:expected_length]
            items.extend([""] * (expected_length - len(items)))

        return ParsedResponse(items=items, was_repaired=repaired)

    def parse_single(self, raw_text: Optional[str]) -> str:
        """Plain text from a single-item (non-array) response."""
        return extract_tagged(raw_text)
