"""Bounded asyncio worker pool for batches.

Workers pull batches from a shared queue and each owns its batch end to
end. A batch that raises unexpectedly is logged and turned into failure
markers for its items; sibling batches keep running. Setting the cancel
event stops workers from taking new batches, while batches already in
flight finish (or time out) and are still returned.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from ...llm.errors import PermanentEngineError
from ...metrics import PipelineMetrics
from ..models.result import BatchResult, Outcome, TranslationResult
from ..models.segment import Batch

logger = logging.getLogger(__name__)

BatchHandler = Callable[[Batch], Awaitable[BatchResult]]


@dataclass
class PoolRun:
    """What a pool run produced."""

    results: List[BatchResult] = field(default_factory=list)
    skipped: List[Batch] = field(default_factory=list)
    cancelled: bool = False


class WorkerPool:
    """Runs a batch handler over batches with at most ``concurrency`` in flight."""

    def __init__(self, concurrency: int = 4, metrics: Optional[PipelineMetrics] = None):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self.metrics = metrics

    async def run(
        self,
        batches: Sequence[Batch],
        handler: BatchHandler,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PoolRun:
        """Process all batches, or as many as the cancel event allows.

        Args:
            batches: Planned batches
            handler: Coroutine function processing one batch
            cancel_event: Set it to stop taking new batches

        Returns:
            PoolRun with completed results, batches never started, and
            whether the run was cancelled
        """
        cancel_event = cancel_event or asyncio.Event()
        queue: asyncio.Queue = asyncio.Queue()
        for batch in batches:
            queue.put_nowait(batch)

        completed: Dict[int, BatchResult] = {}
        worker_count = min(self.concurrency, len(batches))
        logger.info(
            f"[WorkerPool] Starting {worker_count} worker(s) for {len(batches)} batch(es)"
        )

        workers = [
            asyncio.create_task(self._worker_loop(n, queue, handler, completed, cancel_event))
            for n in range(worker_count)
        ]
        try:
            await asyncio.gather(*workers)
        except asyncio.CancelledError:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

        skipped: List[Batch] = []
        while not queue.empty():
            skipped.append(queue.get_nowait())

        if skipped:
            logger.warning(
                f"[WorkerPool] Cancelled with {len(skipped)} batch(es) not started"
            )

        return PoolRun(
            results=[completed[batch_id] for batch_id in sorted(completed)],
            skipped=skipped,
            cancelled=cancel_event.is_set(),
        )

    async def _worker_loop(
        self,
        worker_id: int,
        queue: asyncio.Queue,
        handler: BatchHandler,
        completed: Dict[int, BatchResult],
        cancel_event: asyncio.Event,
    ) -> None:
        while not cancel_event.is_set():
            try:
                batch: Batch = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            try:
                completed[batch.batch_id] = await handler(batch)
            except Exception as e:
                logger.exception(
                    f"[WorkerPool] worker={worker_id} batch={batch.batch_id} failed unexpectedly"
                )
                completed[batch.batch_id] = self._failed_batch(batch, e)
            finally:
                queue.task_done()

    def _failed_batch(self, batch: Batch, exc: Exception) -> BatchResult:
        error = PermanentEngineError(f"{type(exc).__name__}: {exc}", kind="unexpected")
        if self.metrics is not None:
            for _ in batch.segments:
                self.metrics.record_outcome(Outcome.FAILED.value)
        return BatchResult(
            batch_id=batch.batch_id,
            results=[TranslationResult.failure(segment.index, error) for segment in batch.segments],
        )
