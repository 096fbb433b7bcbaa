"""Bounded retry-with-backoff for external calls.

Only transient failures are retried. Once attempts run out the original exception is
re-raised so the caller's degrade-or-abort semantics still apply.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, TypeVar

import httpx
import openai
from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from sourcerank.config import settings

T = TypeVar("T")

RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504}

_OPENAI_TRANSIENT = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, _OPENAI_TRANSIENT)


def _log_retry(operation: str) -> Callable[[RetryCallState], None]:
    def before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        wait = state.next_action.sleep if state.next_action else 0.0
        logger.warning(
            f"Retrying {operation} after attempt {state.attempt_number} "
            f"in {wait:.2f}s: {exc!r}"
        )

    return before_sleep


def retrying(operation: str, *, max_attempts: int | None = None) -> AsyncRetrying:
    attempts = max_attempts if max_attempts is not None else settings.retry_max_attempts
    return AsyncRetrying(
        stop=stop_after_attempt(max(int(attempts), 1)),
        wait=wait_exponential(
            multiplier=settings.retry_initial_wait_seconds,
            max=settings.retry_max_wait_seconds,
        )
        + wait_random(0, settings.retry_initial_wait_seconds),
        retry=retry_if_exception(is_transient),
        before_sleep=_log_retry(operation),
        reraise=True,
    )


async def with_retry(
    operation: str,
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int | None = None,
    **kwargs: Any,
) -> T:
    """Await `fn(*args, **kwargs)` under the retry policy."""
    async for attempt in retrying(operation, max_attempts=max_attempts):
        with attempt:
            return await fn(*args, **kwargs)
    raise RuntimeError(f"{operation}: retry loop exited without a result")
