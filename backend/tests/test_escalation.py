import pytest

from lingua.core.llm.errors import PermanentEngineError
from lingua.core.translation.models import ItemState, Outcome
from lingua.core.translation.pipeline.escalation import EscalationOrchestrator
from lingua.core.translation.pipeline.prompt_engine import PromptEngine
from lingua.core.translation.pipeline.quality import QualityGate

from tests.helpers import ProviderError, ScriptedEngine, arbiter_sources, make_batch, result_payload


@pytest.fixture
def build_orchestrator(build_dispatcher, metrics):
    def _build(*engines, **kwargs):
        options = dict(
            repair_engine="gemini-2p",
            secondary_engine="gpt-4o",
            arbiter_engine="judge",
            timeout_ms=1000,
            max_attempts=2,
            metrics=metrics,
        )
        options.update(kwargs)
        return EscalationOrchestrator(build_dispatcher(*engines), PromptEngine(), **options)

    return _build


async def _run(orchestrator, batch, *, primary="gemini-fl", committee=False):
    prompt = orchestrator.prompt_engine.build_batch_prompt(batch.sources, batch.style)
    return await orchestrator.process_batch(
        batch, prompt, primary_engine=primary, temperature=0.3, committee=committee
    )


# =============================================================================
# First-pass review
# =============================================================================


@pytest.mark.asyncio
async def test_clean_draft_is_accepted(build_orchestrator, metrics):
    primary = ScriptedEngine("gemini-fl", [result_payload(["Bonjour", "Bonne nuit"])])
    repair = ScriptedEngine("gemini-2p")
    orchestrator = build_orchestrator(primary, repair)

    result = await _run(orchestrator, make_batch(["Hello", "Good night"]))

    assert [r.target_text for r in result.results] == ["Bonjour", "Bonne nuit"]
    assert [r.index for r in result.results] == [0, 1]
    first = result.results[0]
    assert first.outcome == Outcome.ACCEPTED
    assert first.state == ItemState.DELIVERED
    assert first.history == [ItemState.DRAFT, ItemState.QUALITY_CHECKED, ItemState.ACCEPTED]
    assert first.quality_score == 0.95
    assert first.engine_name == "gemini-fl"
    assert repair.calls == []
    assert metrics.sample("lingua_outcomes_total", {"outcome": "accepted"}) == 2
    assert metrics.sample(
        "lingua_collab_steps_total", {"step": "review_pass", "outcome": "accepted"}
    ) == 2
    assert metrics.sample("lingua_qe_score_count") == 2


@pytest.mark.asyncio
async def test_low_quality_item_is_repaired(build_orchestrator, metrics):
    primary = ScriptedEngine("gemini-fl", [result_payload(["two apples", "Bonjour"])])
    repair = ScriptedEngine("gemini-2p", [result_payload(["2 pommes ?", "Salut"])])
    orchestrator = build_orchestrator(primary, repair)

    result = await _run(orchestrator, make_batch(["2 apples?", "Hello"]))
    repaired, untouched = result.results

    assert repaired.outcome == Outcome.REPAIRED
    assert repaired.target_text == "2 pommes ?"
    assert repaired.quality_score == 0.95
    assert repaired.engine_name == "gemini-2p"
    assert repaired.history[-1] == ItemState.REPAIRED
    assert [(r.from_engine, r.to_engine, r.reason) for r in repaired.escalation_trace] == [
        ("gemini-fl", "gemini-2p", "numeric_mismatch")
    ]

    assert untouched.outcome == Outcome.ACCEPTED
    assert untouched.target_text == "Bonjour"
    assert untouched.escalation_trace == []

    assert repair.temperatures == [0.25]
    assert metrics.sample(
        "lingua_router_escalations_total",
        {"from_engine": "gemini-fl", "to_engine": "gemini-2p", "reason": "numeric_mismatch"},
    ) == 1
    assert metrics.sample("lingua_collab_steps_total", {"step": "repair", "outcome": "repaired"}) == 1


@pytest.mark.asyncio
async def test_failed_repair_marks_only_escalated_items(build_orchestrator, metrics):
    primary = ScriptedEngine("gemini-fl", [result_payload(["two apples", "Bonjour"])])
    repair = ScriptedEngine("gemini-2p", [ProviderError(400)])
    orchestrator = build_orchestrator(primary, repair)

    result = await _run(orchestrator, make_batch(["2 apples?", "Hello"]))
    failed, accepted = result.results

    assert failed.failed
    assert failed.target_text is None
    assert failed.outcome == Outcome.FAILED
    assert isinstance(failed.error, PermanentEngineError)
    assert failed.escalation_trace[0].reason == "numeric_mismatch"
    assert accepted.target_text == "Bonjour"
    assert metrics.sample("lingua_collab_steps_total", {"step": "repair", "outcome": "failed"}) == 1
    assert metrics.sample("lingua_outcomes_total", {"outcome": "failed"}) == 1


@pytest.mark.asyncio
async def test_empty_repair_keeps_draft(build_orchestrator):
    primary = ScriptedEngine("gemini-fl", [result_payload(["two apples", "Bonjour"])])
    repair = ScriptedEngine("gemini-2p", [result_payload(["", "Salut"])])
    orchestrator = build_orchestrator(primary, repair)

    result = await _run(orchestrator, make_batch(["2 apples?", "Hello"]))
    kept = result.results[0]

    assert kept.outcome == Outcome.ACCEPTED
    assert kept.target_text == "two apples"
    assert "repair_empty" in kept.reasons
    assert kept.quality_score == 0.55


@pytest.mark.asyncio
async def test_failed_draft_fails_the_batch(build_orchestrator, metrics):
    primary = ScriptedEngine("gemini-fl", [ProviderError(401)])
    orchestrator = build_orchestrator(primary, ScriptedEngine("gemini-2p"))

    result = await _run(orchestrator, make_batch(["Hello", "Bye"]))

    assert all(r.failed for r in result.results)
    assert all(r.history == [ItemState.DRAFT] for r in result.results)
    assert metrics.sample("lingua_outcomes_total", {"outcome": "failed"}) == 2


@pytest.mark.asyncio
async def test_disabled_quality_gate_accepts_everything(build_orchestrator):
    primary = ScriptedEngine("gemini-fl", [result_payload(["two apples"])])
    repair = ScriptedEngine("gemini-2p")
    orchestrator = build_orchestrator(primary, repair, quality_gate=QualityGate(enabled=False))

    result = await _run(orchestrator, make_batch(["2 apples?"]))

    assert result.results[0].outcome == Outcome.ACCEPTED
    assert result.results[0].quality_score == 0.55
    assert repair.calls == []


@pytest.mark.asyncio
async def test_malformed_draft_is_flagged(build_orchestrator, metrics):
    primary = ScriptedEngine("gemini-fl", ['Sure! ["Bonjour"] done'])
    orchestrator = build_orchestrator(primary, ScriptedEngine("gemini-2p"))

    result = await _run(orchestrator, make_batch(["Hello"]))

    assert result.results[0].target_text == "Bonjour"
    assert result.was_repaired is False

    primary.script.append('<result>["Bonjour", "extra"]</result>')
    result = await _run(orchestrator, make_batch(["Hello"]))

    assert result.was_repaired is True
    assert metrics.sample("lingua_parse_repairs_total") == 1


# =============================================================================
# Committee of two
# =============================================================================


def _committee_engines(secondary_step=None, judge_step=None):
    primary = ScriptedEngine("gemini-2p", [result_payload(["Salut", "Au revoir"])])
    secondary = ScriptedEngine("gpt-4o", [secondary_step or result_payload(["Bonjour", "Adieu"])])
    judge = ScriptedEngine("judge", [judge_step or result_payload(["Bonjour", ""])])
    fallback = ScriptedEngine("gemini-fl")
    return primary, secondary, judge, fallback


@pytest.mark.asyncio
async def test_committee_arbiter_finalizes(build_orchestrator, metrics):
    primary, secondary, judge, fallback = _committee_engines()
    orchestrator = build_orchestrator(primary, secondary, judge, fallback)

    result = await _run(orchestrator, make_batch(["Hi", "Bye"]), primary="gemini-2p", committee=True)

    assert [r.target_text for r in result.results] == ["Bonjour", "Au revoir"]
    assert all(r.outcome == Outcome.COMMITTEE_FINALIZED for r in result.results)
    assert result.results[0].history == [
        ItemState.DRAFT,
        ItemState.QUALITY_CHECKED,
        ItemState.COMMITTEE_FINALIZED,
    ]
    assert result.results[0].engine_name == "judge"
    last = result.results[0].escalation_trace[-1]
    assert (last.from_engine, last.to_engine, last.reason) == ("gemini-2p", "judge", "committee_arbiter")

    arbiter_prompt, arbiter_temperature = judge.calls[0]
    assert arbiter_sources(arbiter_prompt) == ["Hi", "Bye"]
    assert "Adieu" in arbiter_prompt and "Au revoir" in arbiter_prompt
    assert arbiter_temperature == 0.25
    assert fallback.calls == []
    assert metrics.sample(
        "lingua_collab_steps_total", {"step": "committee2", "outcome": "finalized"}
    ) == 2
    assert metrics.sample("lingua_outcomes_total", {"outcome": "committee_finalized"}) == 2


@pytest.mark.asyncio
async def test_committee_degrades_to_review(build_orchestrator, metrics):
    primary, secondary, judge, _ = _committee_engines(secondary_step=ProviderError(401))
    orchestrator = build_orchestrator(primary, secondary, judge, ScriptedEngine("gemini-fl"))

    result = await _run(orchestrator, make_batch(["Hi", "Bye"]), primary="gemini-2p", committee=True)

    assert [r.target_text for r in result.results] == ["Salut", "Au revoir"]
    assert all(r.outcome == Outcome.ACCEPTED for r in result.results)
    assert judge.calls == []
    assert metrics.sample(
        "lingua_collab_steps_total", {"step": "committee2", "outcome": "degraded"}
    ) == 2


@pytest.mark.asyncio
async def test_committee_both_drafts_failing(build_orchestrator, metrics):
    primary = ScriptedEngine("gemini-2p", [ProviderError(401)])
    secondary = ScriptedEngine("gpt-4o", [ProviderError(403)])
    judge = ScriptedEngine("judge")
    orchestrator = build_orchestrator(primary, secondary, judge, ScriptedEngine("gemini-fl"))

    result = await _run(orchestrator, make_batch(["Hi"]), primary="gemini-2p", committee=True)

    assert result.results[0].failed
    assert judge.calls == []
    assert metrics.sample("lingua_collab_steps_total", {"step": "committee2", "outcome": "failed"}) == 1


@pytest.mark.asyncio
async def test_committee_arbiter_failure(build_orchestrator):
    primary, secondary, judge, _ = _committee_engines(judge_step=ProviderError(400))
    orchestrator = build_orchestrator(primary, secondary, judge, ScriptedEngine("gemini-fl"))

    result = await _run(orchestrator, make_batch(["Hi", "Bye"]), primary="gemini-2p", committee=True)

    assert all(r.failed for r in result.results)
    assert result.results[0].escalation_trace[-1].reason == "committee_arbiter"


@pytest.mark.asyncio
async def test_committee_secondary_differs_from_primary(build_orchestrator):
    primary = ScriptedEngine("gpt-4o", [result_payload(["Salut"])])
    repair = ScriptedEngine("gemini-2p", [result_payload(["Bonjour"])])
    judge = ScriptedEngine("judge", [result_payload(["Bonjour"])])
    orchestrator = build_orchestrator(primary, repair, judge, ScriptedEngine("gemini-fl"))

    result = await _run(orchestrator, make_batch(["Hi"]), primary="gpt-4o", committee=True)

    assert len(primary.calls) == 1
    assert len(repair.calls) == 1
    assert result.results[0].target_text == "Bonjour"
