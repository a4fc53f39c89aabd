"""Escalation orchestrator.

Drives one batch through the item state machine:

    Draft -> QualityChecked -> {Accepted | Repaired | CommitteeFinalized | Failed} -> Delivered

Two flows are supported:
- First-pass review: the primary engine drafts, items below the quality
  threshold are re-dispatched once to the repair engine.
- Committee of two: primary and secondary engines draft concurrently and
  an arbiter engine picks or synthesizes the final text per index.

Every engine call goes through the RetryingDispatcher, so fallback to the
stable engine happens below this layer. A dispatch that still fails marks
the affected items Failed; nothing here raises for engine errors.
"""

import asyncio
import logging
from typing import List, Optional, Sequence

from ...llm.dispatcher import RetryingDispatcher, reduced_temperature
from ...metrics import PipelineMetrics
from ..models.response import DispatchResult, EscalationRecord
from ..models.result import BatchResult, ItemState, Outcome, TranslationResult
from ..models.segment import Batch
from .output_processor import ResponseParser
from .prompt_engine import PromptEngine
from .quality import QualityGate
from .sanitizer import InvariantSanitizer

logger = logging.getLogger(__name__)

QE_BELOW_THRESHOLD = "qe_below_threshold"
REPAIR_EMPTY = "repair_empty"

OUTCOME_STATES = {
    Outcome.ACCEPTED: ItemState.ACCEPTED,
    Outcome.REPAIRED: ItemState.REPAIRED,
    Outcome.COMMITTEE_FINALIZED: ItemState.COMMITTEE_FINALIZED,
}


class EscalationOrchestrator:
    """Review, repair and committee flows for one batch at a time."""

    def __init__(
        self,
        dispatcher: RetryingDispatcher,
        prompt_engine: PromptEngine,
        *,
        parser: Optional[ResponseParser] = None,
        sanitizer: Optional[InvariantSanitizer] = None,
        quality_gate: Optional[QualityGate] = None,
        repair_engine: str = "gemini-2p",
        secondary_engine: str = "gpt-4o",
        arbiter_engine: str = "gemini-2p",
        timeout_ms: int = 300_000,
        max_attempts: int = 3,
        metrics: Optional[PipelineMetrics] = None,
    ):
        self.dispatcher = dispatcher
        self.prompt_engine = prompt_engine
        self.parser = parser or ResponseParser()
        self.sanitizer = sanitizer or InvariantSanitizer()
        self.quality_gate = quality_gate or QualityGate()
        self.repair_engine = repair_engine
        self.secondary_engine = secondary_engine
        self.arbiter_engine = arbiter_engine
        self.timeout_ms = timeout_ms
        self.max_attempts = max_attempts
        self.metrics = metrics

    # =========================================================================
    # Entry point
    # =========================================================================

    async def process_batch(
        self,
        batch: Batch,
        prompt: str,
        *,
        primary_engine: str,
        temperature: float,
        committee: bool = False,
    ) -> BatchResult:
        """Run one batch through review or committee and finalize its items.

        Args:
            batch: Batch to process
            prompt: Rendered batch prompt
            primary_engine: Engine chosen by the router
            temperature: Sampling temperature for the primary draft
            committee: Use the committee-of-two flow

        Returns:
            BatchResult with one TranslationResult per batch item, in order
        """
        if committee:
            result = await self.committee_of_two(batch, prompt, primary_engine, temperature)
        else:
            result = await self.first_pass_review(batch, prompt, primary_engine, temperature)

        if self.metrics is not None:
            for item in result.results:
                self.metrics.record_outcome(item.outcome.value)
        return result

    # =========================================================================
    # First-pass review
    # =========================================================================

    async def first_pass_review(
        self,
        batch: Batch,
        prompt: str,
        primary_engine: str,
        temperature: float,
    ) -> BatchResult:
        """Draft with the primary engine, repair items below the threshold."""
        draft = await self._dispatch(primary_engine, prompt, temperature, batch)
        if not draft.ok:
            return self._fail_all(batch, draft, history=[ItemState.DRAFT])
        return await self._review(batch, prompt, draft, temperature, trace=list(draft.escalations))

    async def _review(
        self,
        batch: Batch,
        prompt: str,
        draft: DispatchResult,
        temperature: float,
        trace: List[EscalationRecord],
    ) -> BatchResult:
        parsed = self.parser.parse(draft.text, len(batch))
        if parsed.was_repaired and self.metrics is not None:
            self.metrics.record_parse_repair()

        target = batch.style.target_language
        candidates = self.sanitizer.sanitize_many(parsed.items, batch.sources, target)
        scored = [self._score(source, candidate) for source, candidate in zip(batch.sources, candidates)]

        below = [i for i, (score, _) in enumerate(scored) if not self.quality_gate.passes(score)]
        history = [ItemState.DRAFT, ItemState.QUALITY_CHECKED]

        if not below:
            self._collab_step("review_pass", "accepted", len(batch))
            return BatchResult(
                batch_id=batch.batch_id,
                was_repaired=parsed.was_repaired,
                results=[
                    self._deliver(segment.index, candidates[i], *scored[i], Outcome.ACCEPTED, history, trace, draft.engine_name)
                    for i, segment in enumerate(batch.segments)
                ],
            )

        logger.warning(
            f"[Escalation] batch={batch.batch_id}: {len(below)}/{len(batch)} item(s) below "
            f"threshold {self.quality_gate.threshold}; repairing with {self.repair_engine}"
        )
        records = {}
        for i in below:
            reasons = scored[i][1]
            records[i] = EscalationRecord(
                from_engine=draft.engine_name,
                to_engine=self.repair_engine,
                reason=reasons[0] if reasons else QE_BELOW_THRESHOLD,
            )
            if self.metrics is not None:
                self.metrics.record_escalation(
                    records[i].from_engine, records[i].to_engine, records[i].reason
                )

        repair = await self._dispatch(
            self.repair_engine, prompt, reduced_temperature(temperature), batch
        )

        repaired_candidates: List[str] = []
        repaired_payload = False
        if repair.ok:
            repaired = self.parser.parse(repair.text, len(batch))
            repaired_payload = repaired.was_repaired
            if repaired.was_repaired and self.metrics is not None:
                self.metrics.record_parse_repair()
            repaired_candidates = self.sanitizer.sanitize_many(repaired.items, batch.sources, target)
        else:
            self._collab_step("repair", "failed", len(below))
            logger.error(
                f"[Escalation] batch={batch.batch_id}: repair with {self.repair_engine} failed: "
                f"{repair.error!r}"
            )

        results: List[TranslationResult] = []
        for i, segment in enumerate(batch.segments):
            score, reasons = scored[i]
            if i not in records:
                results.append(
                    self._deliver(
                        segment.index, candidates[i], score, reasons,
                        Outcome.ACCEPTED, history, trace, draft.engine_name,
                    )
                )
                continue

            item_trace = trace + [records[i]] + list(repair.escalations)
            if not repair.ok:
                results.append(
                    TranslationResult.failure(segment.index, repair.error, history=history, trace=item_trace)
                )
            elif not repaired_candidates[i].strip() and candidates[i].strip():
                logger.warning(
                    f"[Escalation] batch={batch.batch_id} index={segment.index}: repair returned "
                    f"an empty item; keeping the draft"
                )
                results.append(
                    self._deliver(
                        segment.index, candidates[i], score, reasons + [REPAIR_EMPTY],
                        Outcome.ACCEPTED, history, item_trace, draft.engine_name,
                    )
                )
            else:
                new_score, new_reasons = self._score(segment.source_text, repaired_candidates[i])
                results.append(
                    self._deliver(
                        segment.index, repaired_candidates[i], new_score, new_reasons,
                        Outcome.REPAIRED, history, item_trace, repair.engine_name,
                    )
                )

        if repair.ok:
            self._collab_step("repair", "repaired", len(below))
        return BatchResult(
            batch_id=batch.batch_id,
            results=results,
            was_repaired=parsed.was_repaired or repaired_payload,
        )

    # =========================================================================
    # Committee of two
    # =========================================================================

    async def committee_of_two(
        self,
        batch: Batch,
        prompt: str,
        primary_engine: str,
        temperature: float,
    ) -> BatchResult:
        """Two concurrent drafts, then an arbiter picks or merges per index."""
        secondary_engine = self.secondary_engine
        if secondary_engine == primary_engine:
            secondary_engine = self.repair_engine

        logger.info(
            f"[Escalation] batch={batch.batch_id}: committee primary={primary_engine}, "
            f"secondary={secondary_engine}, arbiter={self.arbiter_engine}"
        )
        draft_a, draft_b = await asyncio.gather(
            self._dispatch(primary_engine, prompt, temperature, batch),
            self._dispatch(secondary_engine, prompt, temperature, batch),
        )

        if not draft_a.ok and not draft_b.ok:
            self._collab_step("committee2", "failed", len(batch))
            return self._fail_all(
                batch, draft_a, history=[ItemState.DRAFT],
                trace=list(draft_a.escalations) + list(draft_b.escalations),
            )

        if not draft_a.ok or not draft_b.ok:
            survivor = draft_a if draft_a.ok else draft_b
            failed = draft_b if draft_a.ok else draft_a
            logger.warning(
                f"[Escalation] batch={batch.batch_id}: committee member {failed.engine_name} "
                f"failed ({failed.error!r}); reviewing {survivor.engine_name} alone"
            )
            self._collab_step("committee2", "degraded", len(batch))
            return await self._review(
                batch, prompt, survivor, temperature,
                trace=list(failed.escalations) + list(survivor.escalations),
            )

        target = batch.style.target_language
        parsed_a = self.parser.parse(draft_a.text, len(batch))
        parsed_b = self.parser.parse(draft_b.text, len(batch))
        for parsed in (parsed_a, parsed_b):
            if parsed.was_repaired and self.metrics is not None:
                self.metrics.record_parse_repair()
        candidates_a = self.sanitizer.sanitize_many(parsed_a.items, batch.sources, target)
        candidates_b = self.sanitizer.sanitize_many(parsed_b.items, batch.sources, target)

        trace = list(draft_a.escalations) + list(draft_b.escalations)
        trace.append(
            EscalationRecord(
                from_engine=draft_a.engine_name,
                to_engine=self.arbiter_engine,
                reason="committee_arbiter",
            )
        )

        arbiter_prompt = self.prompt_engine.build_arbiter_prompt(
            batch.sources, candidates_a, candidates_b, batch.style
        )
        verdict = await self._dispatch(
            self.arbiter_engine, arbiter_prompt, reduced_temperature(temperature), batch
        )
        trace.extend(verdict.escalations)
        history = [ItemState.DRAFT, ItemState.QUALITY_CHECKED]

        if not verdict.ok:
            self._collab_step("committee2", "failed", len(batch))
            logger.error(
                f"[Escalation] batch={batch.batch_id}: arbiter {self.arbiter_engine} failed: "
                f"{verdict.error!r}"
            )
            return self._fail_all(batch, verdict, history=[ItemState.DRAFT], trace=trace)

        parsed_final = self.parser.parse(verdict.text, len(batch))
        if parsed_final.was_repaired and self.metrics is not None:
            self.metrics.record_parse_repair()
        finals = self.sanitizer.sanitize_many(parsed_final.items, batch.sources, target)

        results = []
        for i, segment in enumerate(batch.segments):
            final = finals[i] if finals[i].strip() else candidates_a[i]
            score, reasons = self._score(segment.source_text, final)
            results.append(
                self._deliver(
                    segment.index, final, score, reasons,
                    Outcome.COMMITTEE_FINALIZED, history, trace, verdict.engine_name,
                )
            )

        self._collab_step("committee2", "finalized", len(batch))
        return BatchResult(
            batch_id=batch.batch_id,
            results=results,
            was_repaired=parsed_a.was_repaired or parsed_b.was_repaired or parsed_final.was_repaired,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _dispatch(
        self, engine: str, prompt: str, temperature: float, batch: Batch
    ) -> DispatchResult:
        return await self.dispatcher.dispatch(
            engine,
            prompt,
            temperature,
            self.timeout_ms,
            self.max_attempts,
            batch_id=batch.batch_id,
        )

    def _score(self, source: str, candidate: str):
        score, reasons = self.quality_gate.score(source, candidate)
        if self.metrics is not None:
            self.metrics.observe_quality(score)
        return score, reasons

    def _collab_step(self, step: str, outcome: str, amount: int) -> None:
        if self.metrics is not None and amount:
            self.metrics.record_collab_step(step, outcome, amount)

    @staticmethod
    def _deliver(
        index: int,
        text: str,
        score: float,
        reasons: Sequence[str],
        outcome: Outcome,
        history: Sequence[ItemState],
        trace: Sequence[EscalationRecord],
        engine_name: Optional[str],
    ) -> TranslationResult:
        return TranslationResult(
            index=index,
            target_text=text,
            quality_score=score,
            reasons=list(reasons),
            escalation_trace=list(trace),
            outcome=outcome,
            state=ItemState.DELIVERED,
            history=list(history) + [OUTCOME_STATES[outcome]],
            engine_name=engine_name,
        )

    @staticmethod
    def _fail_all(
        batch: Batch,
        dispatch: DispatchResult,
        *,
        history: Sequence[ItemState],
        trace: Optional[Sequence[EscalationRecord]] = None,
    ) -> BatchResult:
        trace = list(dispatch.escalations) if trace is None else list(trace)
        logger.error(
            f"[Escalation] batch={batch.batch_id}: {len(batch)} item(s) failed on "
            f"{dispatch.engine_name}: {dispatch.error!r}"
        )
        return BatchResult(
            batch_id=batch.batch_id,
            results=[
                TranslationResult.failure(segment.index, dispatch.error, history=list(history), trace=trace)
                for segment in batch.segments
            ],
        )
