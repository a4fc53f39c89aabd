"""Classified engine errors.

Every failure coming out of an engine call is mapped onto one of two
classes before it leaves the adapter:

- TransientEngineError: timeouts, rate limits, 5xx and connection drops.
  Retried with backoff, then handed to the stable fallback engine.
- PermanentEngineError: auth, validation and any other status. Never retried.

MalformedResponseError is not an engine failure; the response parser raises
it internally when a payload is not a JSON array and recovers locally.
"""

import asyncio
from typing import Any, Mapping, Optional

TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class LinguaError(Exception):
    """Base class for pipeline errors."""


class ClassifiedEngineError(LinguaError):
    """An engine failure with its retry classification attached."""

    transient: bool = False

    def __init__(
        self,
        message: str,
        *,
        engine: Optional[str] = None,
        status: Optional[int] = None,
        kind: str = "error",
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.engine = engine
        self.status = status
        self.kind = kind
        self.retry_after = retry_after
        self.attempts = 0

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(engine={self.engine!r}, status={self.status}, "
            f"kind={self.kind!r}, message={str(self)!r})"
        )


class TransientEngineError(ClassifiedEngineError):
    """Timeout, rate limit or server-side failure; safe to retry."""

    transient = True


class PermanentEngineError(ClassifiedEngineError):
    """Failure that a retry cannot fix (auth, bad request, unknown engine)."""


class MalformedResponseError(LinguaError):
    """Engine payload did not match the expected structured shape."""


def _header(headers: Any, name: str) -> Optional[str]:
    if headers is None:
        return None
    getter = getattr(headers, "get", None)
    if getter is None:
        return None
    return getter(name) or getter(name.title())


def parse_retry_after(headers: Optional[Mapping[str, str]]) -> Optional[float]:
    """Read a retry hint in seconds from ``retry-after-ms`` or ``retry-after``."""
    raw_ms = _header(headers, "retry-after-ms")
    try:
        if raw_ms is not None and float(raw_ms) > 0:
            return float(raw_ms) / 1000.0
    except ValueError:
        pass

    raw_s = _header(headers, "retry-after")
    try:
        if raw_s is not None and float(raw_s) > 0:
            return float(raw_s)
    except ValueError:
        pass
    return None


def _status_of(exc: BaseException) -> Optional[int]:
    for attr in ("status_code", "status", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def _headers_of(exc: BaseException) -> Any:
    headers = getattr(exc, "headers", None)
    if headers is not None:
        return headers
    headers = getattr(exc, "litellm_response_headers", None)
    if headers is not None:
        return headers
    response = getattr(exc, "response", None)
    return getattr(response, "headers", None)


def classify_exception(exc: BaseException, engine: Optional[str] = None) -> ClassifiedEngineError:
    """Map any provider/transport exception onto the transient/permanent split."""
    if isinstance(exc, ClassifiedEngineError):
        if exc.engine is None:
            exc.engine = engine
        return exc

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return TransientEngineError(
            f"Engine call timed out: {exc}", engine=engine, kind="timeout"
        )

    status = _status_of(exc)
    retry_after = parse_retry_after(_headers_of(exc))
    name = type(exc).__name__
    message = f"{name}: {exc}"

    # LiteLLM raises Timeout (status 408) and APIConnectionError for these.
    if "Timeout" in name:
        return TransientEngineError(
            message, engine=engine, status=status, kind="timeout", retry_after=retry_after
        )

    if status in TRANSIENT_STATUS_CODES:
        kind = "rate_limited" if status == 429 else "server_error"
        return TransientEngineError(
            message, engine=engine, status=status, kind=kind, retry_after=retry_after
        )

    if status is None and "Connection" in name:
        return TransientEngineError(
            message, engine=engine, kind="connection", retry_after=retry_after
        )

    return PermanentEngineError(message, engine=engine, status=status, kind="permanent")
