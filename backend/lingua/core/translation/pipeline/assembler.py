"""Result assembler.

Merges batch results back into the caller's original order. Results are
placed by segment index only, never by completion order, and any index
without a delivered text holds ``None``.
"""

import logging
from typing import Dict, Iterable, List, Optional

from ..models.result import BatchResult, PipelineOutput, TranslationResult

logger = logging.getLogger(__name__)


class ResultAssembler:
    """Index-keyed merge of batch results."""

    def assemble(self, batch_results: Iterable[BatchResult], expected_length: int) -> List[Optional[str]]:
        """Texts in original order, ``None`` for failed or missing indices.

        Args:
            batch_results: Completed batches, in any order
            expected_length: Number of input segments

        Returns:
            List of exactly ``expected_length`` entries
        """
        by_index = self._index(batch_results, expected_length)
        return [
            by_index[i].target_text if i in by_index and not by_index[i].failed else None
            for i in range(expected_length)
        ]

    def build_output(
        self,
        batch_results: Iterable[BatchResult],
        expected_length: int,
        cancelled: bool = False,
    ) -> PipelineOutput:
        """Full output with per-item results; missing indices get failure markers."""
        batch_results = list(batch_results)
        by_index = self._index(batch_results, expected_length)
        results = [
            by_index[i] if i in by_index else TranslationResult.failure(i, None)
            for i in range(expected_length)
        ]
        texts = self.assemble(batch_results, expected_length)

        missing = expected_length - len(by_index)
        if missing:
            logger.warning(f"[Assembler] {missing} of {expected_length} index(es) have no result")

        return PipelineOutput(texts=texts, results=results, cancelled=cancelled)

    @staticmethod
    def _index(batch_results: Iterable[BatchResult], expected_length: int) -> Dict[int, TranslationResult]:
        by_index: Dict[int, TranslationResult] = {}
        for batch in batch_results:
            for result in batch.results:
                if not 0 <= result.index < expected_length:
                    logger.warning(
                        f"[Assembler] Dropping result for out-of-range index {result.index} "
                        f"(batch {batch.batch_id})"
                    )
                    continue
                if result.index in by_index:
                    logger.warning(f"[Assembler] Duplicate result for index {result.index}")
                by_index[result.index] = result
        return by_index
