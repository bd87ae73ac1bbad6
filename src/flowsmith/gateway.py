"""Invocation gateway: retry, backoff and error classification for remote calls."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable, Generator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, TypeAlias, TypeVar

import httpx
from loguru import logger

from flowsmith.errors import AttemptTimeoutError, FlowsmithError, ProviderError, ServiceUnavailableError

T = TypeVar("T")

RemoteOperation: TypeAlias = Callable[[], Awaitable[T]]

_CODE_ATTRIBUTES = ("status_code", "code", "status")
DEFAULT_FAILURE_MESSAGE = "An unexpected error occurred in the AI service."


class ErrorKind(StrEnum):
    RATE_LIMITED = "rate_limited"
    SERVER_UNAVAILABLE = "server_unavailable"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    FATAL = "fatal"


@dataclass(frozen=True)
class ErrorClassification:
    """Classification of one caught failure."""

    kind: ErrorKind
    code: int | str | None = None

    @property
    def transient(self) -> bool:
        return self.kind is not ErrorKind.FATAL


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget for one call site. ``max_attempts`` counts the initial attempt."""

    max_attempts: int = 3
    initial_delay_ms: int = 1000
    backoff_multiplier: float = 2.0
    jitter: bool = False

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay_ms < 0:
            raise ValueError("initial_delay_ms must be >= 0")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")

    def delay_ms(self, attempt: int) -> float:
        """Delay to wait after failed ``attempt`` (1-based) before the next one."""
        delay = self.initial_delay_ms * self.backoff_multiplier ** (attempt - 1)
        if self.jitter:
            return random.uniform(0, delay)  # noqa: S311
        return delay


def _extract_code(error: BaseException) -> int | str | None:
    fallback: str | None = None
    for name in _CODE_ATTRIBUTES:
        value = getattr(error, name, None)
        if value is None or isinstance(value, bool):
            continue
        if isinstance(value, int):
            return value
        text = str(value).strip()
        if text.isdigit():
            return int(text)
        if text and fallback is None:
            fallback = text
    return fallback


def classify_error(error: BaseException) -> ErrorClassification:
    """Derive the error kind from a failure's status or code field."""
    if isinstance(error, (AttemptTimeoutError, TimeoutError, httpx.TimeoutException)):
        return ErrorClassification(ErrorKind.DEADLINE_EXCEEDED, "timeout")
    if isinstance(error, FlowsmithError):
        return ErrorClassification(ErrorKind.FATAL, error.context.get("code"))
    code = _extract_code(error)
    if code == 429:
        return ErrorClassification(ErrorKind.RATE_LIMITED, code)
    if isinstance(code, int) and 500 <= code < 600:
        return ErrorClassification(ErrorKind.SERVER_UNAVAILABLE, code)
    return ErrorClassification(ErrorKind.FATAL, code)


def _provider_message(error: BaseException) -> str:
    message = getattr(error, "message", None) or str(error)
    return message or DEFAULT_FAILURE_MESSAGE


async def _run_attempt(operation: RemoteOperation[T], timeout_seconds: float | None) -> T:
    if timeout_seconds is None:
        return await operation()
    try:
        return await asyncio.wait_for(operation(), timeout=timeout_seconds)
    except TimeoutError as exc:
        raise AttemptTimeoutError(timeout_seconds) from exc


async def invoke(
    operation: RemoteOperation[T],
    policy: RetryPolicy,
    *,
    classify: Callable[[BaseException], ErrorClassification] = classify_error,
    attempt_timeout: float | None = None,
    label: str = "remote",
) -> T:
    """Run ``operation`` under ``policy``.

    Fatal failures propagate immediately. Transient failures are retried after
    an exponential delay until the budget is spent, then surface as
    ``ServiceUnavailableError`` chained to the last cause.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await _run_attempt(operation, attempt_timeout)
        except Exception as exc:
            classification = classify(exc)
            if not classification.transient:
                logger.error(
                    "gateway.fatal label={} attempt={} code={} error={}",
                    label,
                    attempt,
                    classification.code,
                    _provider_message(exc),
                )
                if isinstance(exc, FlowsmithError):
                    raise
                raise ProviderError(_provider_message(exc), code=classification.code) from exc

            if attempt >= policy.max_attempts:
                logger.error(
                    "gateway.exhausted label={} attempts={} code={} error={}",
                    label,
                    attempt,
                    classification.code,
                    _provider_message(exc),
                )
                raise ServiceUnavailableError(attempts=attempt, code=classification.code) from exc

            delay_ms = policy.delay_ms(attempt)
            logger.warning(
                "gateway.retry label={} kind={} code={} attempt={} delay_ms={:.0f} remaining={}",
                label,
                classification.kind,
                classification.code,
                attempt,
                delay_ms,
                policy.max_attempts - attempt,
            )
            await asyncio.sleep(delay_ms / 1000)


class PendingInvocation(Generic[T]):
    """Disposal handle for an in-flight invocation.

    Awaiting the handle yields the result. ``dispose()`` cancels the attempt in
    progress or the backoff delay it is waiting on, so no retry fires afterwards.
    """

    def __init__(self, task: asyncio.Task[T]) -> None:
        self._task = task

    def dispose(self) -> None:
        if not self._task.done():
            self._task.cancel()

    @property
    def disposed(self) -> bool:
        return self._task.cancelled()

    def done(self) -> bool:
        return self._task.done()

    async def result(self) -> T:
        return await self._task

    def __await__(self) -> Generator[Any, None, T]:
        return self._task.__await__()


def submit(
    operation: RemoteOperation[T],
    policy: RetryPolicy,
    *,
    classify: Callable[[BaseException], ErrorClassification] = classify_error,
    attempt_timeout: float | None = None,
    label: str = "remote",
) -> PendingInvocation[T]:
    """Schedule ``invoke`` on the running loop and return its disposal handle."""
    task = asyncio.get_running_loop().create_task(
        invoke(operation, policy, classify=classify, attempt_timeout=attempt_timeout, label=label),
        name=f"flowsmith-{label}",
    )
    return PendingInvocation(task)
