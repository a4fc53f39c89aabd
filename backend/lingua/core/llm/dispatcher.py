"""Retrying dispatcher with stable-engine fallback.

Control flow is linear: tenacity drives the per-engine retry loop for
transient failures, and once an engine is exhausted the pure
``decide_next_action`` function picks between falling back to the stable
engine and failing. Classified failures come back inside a
``DispatchResult`` instead of being raised.
"""

import asyncio
import logging
import random
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt
from tenacity.wait import wait_base

from ..metrics import PipelineMetrics
from ..translation.models.response import DispatchResult, EngineResponse, EscalationRecord
from .errors import ClassifiedEngineError
from .gateway import EngineAdapter

logger = logging.getLogger(__name__)

JITTER_RANGE = (0.85, 1.15)
MIN_FALLBACK_TEMPERATURE = 0.15
FALLBACK_TEMPERATURE_STEP = 0.05


class NextAction(str, Enum):
    """What to do after a classified failure."""

    RETRY = "retry"
    FALLBACK = "fallback"
    FAIL = "fail"


def decide_next_action(
    error: ClassifiedEngineError,
    *,
    engine: str,
    fallback_engine: Optional[str],
    attempt: int,
    max_attempts: int,
) -> NextAction:
    """Pure decision over an error's classification and the attempt budget."""
    if not error.transient:
        return NextAction.FAIL
    if attempt < max_attempts:
        return NextAction.RETRY
    if fallback_engine and engine != fallback_engine:
        return NextAction.FALLBACK
    return NextAction.FAIL


def reduced_temperature(temperature: float) -> float:
    """Temperature used for fallback and repair calls."""
    return round(max(MIN_FALLBACK_TEMPERATURE, temperature - FALLBACK_TEMPERATURE_STEP), 2)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ClassifiedEngineError) and exc.transient


class wait_retry_after_or_backoff(wait_base):
    """Honor an explicit retry-after hint, else capped exponential backoff.

    Both paths are scaled by a jitter factor in [0.85, 1.15]; the
    exponential path is re-clamped to ``cap`` and hints to
    ``max_retry_after``.
    """

    def __init__(
        self,
        base: float = 0.6,
        cap: float = 12.0,
        max_retry_after: float = 60.0,
        rng: Optional[random.Random] = None,
    ):
        self.base = base
        self.cap = cap
        self.max_retry_after = max_retry_after
        self._rng = rng or random.Random()

    def delay_for(self, attempt: int, error: Optional[BaseException]) -> float:
        factor = self._rng.uniform(*JITTER_RANGE)
        hint = getattr(error, "retry_after", None)
        if hint:
            return min(self.max_retry_after, hint * factor)
        return min(self.cap, min(self.cap, self.base * (2 ** attempt)) * factor)

    def __call__(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        return self.delay_for(retry_state.attempt_number, error)


class RetryingDispatcher:
    """Dispatch a prompt to a named engine with retries and fallback."""

    def __init__(
        self,
        adapter: EngineAdapter,
        *,
        wait: Optional[wait_retry_after_or_backoff] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        metrics: Optional[PipelineMetrics] = None,
    ):
        self.adapter = adapter
        self.wait = wait or wait_retry_after_or_backoff()
        self._sleep = sleep
        self.metrics = metrics

    async def dispatch(
        self,
        engine_name: str,
        prompt: str,
        temperature: float,
        timeout_ms: int,
        max_attempts: int,
        *,
        batch_id: Optional[int] = None,
        allow_fallback: bool = True,
    ) -> DispatchResult:
        """Call ``engine_name`` until success, fallback, or a terminal failure.

        Returns:
            DispatchResult carrying either the raw text or the last classified error
        """
        fallback_engine = self.adapter.stable_fallback if allow_fallback else None
        escalations: List[EscalationRecord] = []
        engine = engine_name
        current_temperature = temperature

        while True:
            try:
                response, attempts = await self._run_attempts(
                    engine, prompt, current_temperature, timeout_ms, max_attempts, batch_id
                )
                return DispatchResult(
                    text=response.raw_text,
                    engine_name=engine,
                    attempt_number=attempts,
                    latency_ms=response.latency_ms,
                    escalations=escalations,
                )
            except ClassifiedEngineError as e:
                attempts = e.attempts or max_attempts
                action = decide_next_action(
                    e,
                    engine=engine,
                    fallback_engine=fallback_engine,
                    attempt=attempts,
                    max_attempts=max_attempts,
                )

                if action == NextAction.FALLBACK:
                    record = EscalationRecord(
                        from_engine=engine,
                        to_engine=fallback_engine,
                        reason="fallback_retryable",
                    )
                    escalations.append(record)
                    if self.metrics is not None:
                        self.metrics.record_escalation(engine, fallback_engine, record.reason)
                    logger.warning(
                        f"[Dispatch] batch={batch_id} engine={engine} exhausted "
                        f"{attempts} attempts ({e.kind}); falling back to {fallback_engine}"
                    )
                    engine = fallback_engine
                    current_temperature = reduced_temperature(current_temperature)
                    continue

                logger.error(
                    f"[Dispatch] batch={batch_id} engine={engine} failed after "
                    f"{attempts} attempt(s): {e!r}"
                )
                return DispatchResult(
                    text=None,
                    engine_name=engine,
                    attempt_number=attempts,
                    escalations=escalations,
                    error=e,
                )

    async def _run_attempts(
        self,
        engine: str,
        prompt: str,
        temperature: float,
        timeout_ms: int,
        max_attempts: int,
        batch_id: Optional[int],
    ) -> Tuple[EngineResponse, int]:
        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(max(1, max_attempts)),
            wait=self.wait,
            sleep=self._sleep,
            before_sleep=self._log_retry(engine, batch_id, max_attempts),
            reraise=True,
        )
        attempt_number = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    response = await self.adapter.call(engine, prompt, temperature, timeout_ms)
        except ClassifiedEngineError as e:
            e.attempts = attempt_number
            raise
        return response, attempt_number

    @staticmethod
    def _log_retry(engine: str, batch_id: Optional[int], max_attempts: int):
        def _before_sleep(retry_state: RetryCallState) -> None:
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.warning(
                f"[Dispatch] batch={batch_id} engine={engine} transient error "
                f"({retry_state.outcome.exception()}); retrying in {delay:.2f}s "
                f"(attempt {retry_state.attempt_number}/{max_attempts})"
            )

        return _before_sleep
