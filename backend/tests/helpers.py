"""Scripted fake engines and prompt helpers for tests."""

import asyncio
import json
import re
from typing import Callable, List, Optional, Sequence, Tuple, Union

from lingua.core.llm.gateway import Engine, EngineRegistry
from lingua.core.translation.models import Batch, Segment, StyleParams

ITEMS_BLOCK = re.compile(r"ITEMS:\n(\[.*?\])\n\nReturn only", re.DOTALL)
ARBITER_SOURCE_BLOCK = re.compile(r"SOURCE:\n(\[.*?\])\n\nCANDIDATE_A:", re.DOTALL)

Step = Union[str, BaseException, Callable[[str], str]]


class ProviderError(Exception):
    """Stand-in for an SDK error carrying an HTTP status and headers."""

    def __init__(self, status_code: int, message: str = "provider error", headers=None):
        super().__init__(message)
        self.status_code = status_code
        self.headers = headers or {}


class APIConnectionError(Exception):
    """Named like the SDK connection error so classification sees it."""


class Timeout(Exception):
    status_code = 408


def items_from_prompt(prompt: str) -> List[str]:
    match = ITEMS_BLOCK.search(prompt)
    assert match, "prompt has no ITEMS block"
    return json.loads(match.group(1))


def arbiter_sources(prompt: str) -> List[str]:
    match = ARBITER_SOURCE_BLOCK.search(prompt)
    assert match, "prompt has no SOURCE block"
    return json.loads(match.group(1))


def result_payload(items: Sequence[str]) -> str:
    return f"<result>{json.dumps(list(items), ensure_ascii=False)}</result>"


def upper_responder(prompt: str) -> str:
    return result_payload([item.upper() for item in items_from_prompt(prompt)])


class ScriptedEngine(Engine):
    """Replays scripted steps, then falls back to a responder or default.

    A step is a string (returned), an exception (raised) or a callable
    taking the prompt and returning a string.
    """

    def __init__(
        self,
        name: str,
        script: Optional[Sequence[Step]] = None,
        *,
        responder: Optional[Callable[[str], str]] = None,
        default: Optional[Step] = None,
        delay: Union[float, Callable[[str], float]] = 0.0,
    ):
        self._name = name
        self.script = list(script or [])
        self.responder = responder
        self.default = default
        self.delay = delay
        self.calls: List[Tuple[str, float]] = []

    @property
    def name(self) -> str:
        return self._name

    async def complete(self, prompt: str, temperature: float) -> str:
        self.calls.append((prompt, temperature))
        delay = self.delay(prompt) if callable(self.delay) else self.delay
        if delay:
            await asyncio.sleep(delay)

        if self.script:
            step = self.script.pop(0)
        elif self.responder is not None:
            step = self.responder
        else:
            step = self.default

        if isinstance(step, BaseException):
            raise step
        if callable(step):
            return step(prompt)
        if step is None:
            raise AssertionError(f"engine {self._name} has no scripted response left")
        return step

    @property
    def temperatures(self) -> List[float]:
        return [temperature for _, temperature in self.calls]


class SleepRecorder:
    """Drop-in for asyncio.sleep that records delays and returns at once."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_registry(*engines: Engine, fallback: str = "gemini-fl") -> EngineRegistry:
    return EngineRegistry(engines, stable_fallback=fallback)


def make_batch(
    sources: Sequence[str],
    style: Optional[StyleParams] = None,
    batch_id: int = 0,
    start: int = 0,
) -> Batch:
    style = style or StyleParams(target_language="French")
    return Batch(
        batch_id=batch_id,
        segments=tuple(
            Segment(index=start + i, source_text=text, style=style) for i, text in enumerate(sources)
        ),
    )
