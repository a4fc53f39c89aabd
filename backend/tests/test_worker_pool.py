import asyncio

import pytest

from lingua.core.llm.errors import PermanentEngineError
from lingua.core.translation.models import BatchResult, Outcome, TranslationResult
from lingua.core.translation.pipeline.worker_pool import WorkerPool

from tests.helpers import make_batch


def _batches(count, size=2):
    return [
        make_batch([f"text {n * size + i}" for i in range(size)], batch_id=n, start=n * size)
        for n in range(count)
    ]


def _echo_result(batch):
    return BatchResult(
        batch_id=batch.batch_id,
        results=[
            TranslationResult(index=s.index, target_text=s.source_text.upper())
            for s in batch.segments
        ],
    )


@pytest.mark.asyncio
async def test_runs_every_batch_with_bounded_concurrency():
    in_flight = 0
    peak = 0

    async def handler(batch):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return _echo_result(batch)

    run = await WorkerPool(concurrency=2).run(_batches(6), handler)

    assert peak == 2
    assert [r.batch_id for r in run.results] == list(range(6))
    assert run.skipped == []
    assert run.cancelled is False


@pytest.mark.asyncio
async def test_results_are_sorted_by_batch_id():
    async def handler(batch):
        await asyncio.sleep(0.02 if batch.batch_id == 0 else 0)
        return _echo_result(batch)

    run = await WorkerPool(concurrency=3).run(_batches(3), handler)

    assert [r.batch_id for r in run.results] == [0, 1, 2]


@pytest.mark.asyncio
async def test_unexpected_exception_is_isolated(metrics):
    async def handler(batch):
        if batch.batch_id == 1:
            raise RuntimeError("boom")
        return _echo_result(batch)

    run = await WorkerPool(concurrency=2, metrics=metrics).run(_batches(3), handler)

    failed = run.results[1]
    assert [r.index for r in failed.results] == [2, 3]
    assert all(r.failed and r.outcome == Outcome.FAILED for r in failed.results)
    error = failed.results[0].error
    assert isinstance(error, PermanentEngineError)
    assert error.kind == "unexpected"
    assert "boom" in str(error)
    assert run.results[0].results[0].target_text == "TEXT 0"
    assert run.results[2].results[0].target_text == "TEXT 4"
    assert metrics.sample("lingua_outcomes_total", {"outcome": "failed"}) == 2


@pytest.mark.asyncio
async def test_cancel_stops_new_batches():
    cancel = asyncio.Event()

    async def handler(batch):
        cancel.set()
        return _echo_result(batch)

    batches = _batches(5)
    run = await WorkerPool(concurrency=1).run(batches, handler, cancel_event=cancel)

    assert [r.batch_id for r in run.results] == [0]
    assert [b.batch_id for b in run.skipped] == [1, 2, 3, 4]
    assert run.cancelled is True


@pytest.mark.asyncio
async def test_cancel_before_start_runs_nothing():
    cancel = asyncio.Event()
    cancel.set()
    calls = []

    async def handler(batch):
        calls.append(batch.batch_id)
        return _echo_result(batch)

    run = await WorkerPool().run(_batches(3), handler, cancel_event=cancel)

    assert calls == []
    assert run.results == []
    assert len(run.skipped) == 3


@pytest.mark.asyncio
async def test_empty_run():
    async def handler(batch):
        raise AssertionError("not called")

    run = await WorkerPool().run([], handler)

    assert run.results == [] and run.skipped == []


def test_concurrency_must_be_positive():
    with pytest.raises(ValueError):
        WorkerPool(concurrency=0)
