from lingua.core.translation.models import BatchResult, Outcome, TranslationResult
from lingua.core.translation.pipeline.assembler import ResultAssembler


def _ok(index, text):
    return TranslationResult(index=index, target_text=text)


def test_out_of_order_batches_are_placed_by_index():
    batches = [
        BatchResult(batch_id=1, results=[_ok(2, "c"), _ok(3, "d")]),
        BatchResult(batch_id=0, results=[_ok(0, "a"), _ok(1, "b")]),
    ]

    assert ResultAssembler().assemble(batches, 4) == ["a", "b", "c", "d"]


def test_failed_and_missing_indices_are_none():
    batches = [
        BatchResult(batch_id=0, results=[_ok(0, "a"), TranslationResult.failure(1, None)]),
    ]

    output = ResultAssembler().build_output(batches, 3)

    assert output.texts == ["a", None, None]
    assert output.failed_indices == [1, 2]
    assert output.complete is False
    assert output.results[2].outcome == Outcome.FAILED
    assert output.outcome_counts["failed"] == 2
    assert output.outcome_counts["accepted"] == 1


def test_out_of_range_results_are_dropped():
    batches = [BatchResult(batch_id=0, results=[_ok(0, "a"), _ok(5, "stray")])]

    output = ResultAssembler().build_output(batches, 1)

    assert output.texts == ["a"]
    assert output.complete is True
    assert len(output.results) == 1


def test_cancelled_flag_is_carried():
    output = ResultAssembler().build_output([], 2, cancelled=True)

    assert output.cancelled is True
    assert output.texts == [None, None]
