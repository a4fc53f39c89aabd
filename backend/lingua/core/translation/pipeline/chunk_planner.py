"""Token-budgeted batch planning.

This module cuts an ordered list of segments into contiguous batches whose
projected request cost (prompt overhead + input + expected output) stays
under a ceiling.
"""

import logging
import math
from typing import List, Optional, Sequence

from ..models.segment import Batch, Segment

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4


def estimate_tokens(text: Optional[str]) -> int:
    """Estimate token count for text.

    Uses ~4 characters per token, which is close enough for budgeting
    mixed Latin text.

    Args:
        text: Text to estimate

    Returns:
        Estimated token count, 0 for empty text
    """
    return math.ceil(len(text or "") / CHARS_PER_TOKEN)


class ChunkPlanner:
    """Greedy, order-preserving bin packer.

    A batch is closed before adding the next segment when it is non-empty
    and either already holds ``max_items_per_batch`` segments or adding
    the segment would push the projected cost over
    ``max_tokens_per_batch``. A single segment that is over budget on its
    own still becomes a singleton batch, so no input is ever dropped.
    """

    def __init__(
        self,
        max_tokens_per_batch: int = 7000,
        overhead_tokens: int = 1200,
        output_factor: float = 1.15,
        max_items_per_batch: int = 250,
        micro_batch_subtitles: bool = True,
    ):
        if max_items_per_batch < 1:
            raise ValueError("max_items_per_batch must be at least 1")
        self.max_tokens_per_batch = max_tokens_per_batch
        self.overhead_tokens = overhead_tokens
        self.output_factor = output_factor
        self.max_items_per_batch = max_items_per_batch
        self.micro_batch_subtitles = micro_batch_subtitles

    def projected_cost(self, input_tokens: int) -> int:
        """Overhead + input + projected output for a batch input size."""
        return (
            self.overhead_tokens
            + input_tokens
            + math.ceil(input_tokens * self.output_factor)
        )

    def plan(self, segments: Sequence[Segment]) -> List[Batch]:
        """Split segments into batches, in original order.

        Segments whose style is subtitle-like are planned one per batch when
        ``micro_batch_subtitles`` is on. A change of style also closes the
        current batch, since one prompt carries one style.

        Args:
            segments: Ordered segments

        Returns:
            Batches with sequential ids; concatenating their segments
            reproduces the input exactly
        """
        batches: List[Batch] = []
        current: List[Segment] = []
        current_tokens = 0

        def close() -> None:
            nonlocal current, current_tokens
            if current:
                batches.append(
                    Batch(
                        batch_id=len(batches),
                        segments=tuple(current),
                        input_tokens=current_tokens,
                        projected_tokens=self.projected_cost(current_tokens),
                    )
                )
            current = []
            current_tokens = 0

        for segment in segments:
            tokens = estimate_tokens(segment.source_text)
            singleton = self.micro_batch_subtitles and segment.style.is_subtitle_like

            if current and (
                singleton
                or len(current) >= self.max_items_per_batch
                or current[0].style != segment.style
                or self.projected_cost(current_tokens + tokens) > self.max_tokens_per_batch
            ):
                close()

            current.append(segment)
            current_tokens += tokens

            if singleton:
                close()

        close()

        for batch in batches:
            if batch.projected_tokens > self.max_tokens_per_batch:
                logger.warning(
                    f"[Planner] Batch {batch.batch_id} holds one oversized segment "
                    f"(index {batch.indices[0]}, ~{batch.projected_tokens} tokens projected)"
                )

        logger.info(
            f"[Planner] Planned {len(batches)} batch(es) for {len(segments)} segment(s), "
            f"max_tokens={self.max_tokens_per_batch}, max_items={self.max_items_per_batch}"
        )
        return batches
