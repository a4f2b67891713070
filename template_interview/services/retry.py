"""
Retry policy for upstream calls.

A RetryPolicy is a plain value: how many attempts, how long to wait before
attempt n+1, and which error codes are worth retrying. with_retry() applies a
policy to any coroutine factory and knows nothing about what it is calling.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from template_interview.services.llm_client import error_code

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_CODES: frozenset[Any] = frozenset(
    {429, 503, "ECONNRESET", "ETIMEDOUT", "ENOTFOUND"}
)


def exponential_backoff_ms(base_ms: int = 1000, max_ms: int = 30000) -> Callable[[int], int]:
    """Delay before retry number `retry_index` (0-based): base * 2^n, capped."""
    def _backoff(retry_index: int) -> int:
        return min(base_ms * 2 ** retry_index, max_ms)
    return _backoff


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 2
    backoff_ms: Callable[[int], int] = field(default_factory=exponential_backoff_ms)
    retryable_codes: frozenset[Any] = RETRYABLE_CODES

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def is_retryable(self, exc: BaseException) -> bool:
        return error_code(exc) in self.retryable_codes


class RetryExhaustedError(Exception):
    """
    Raised when a call fails for good.

    first_error   the error that started the sequence (decides fallback shape)
    last_error    the error of the final attempt
    attempts      how many attempts were made
    """

    def __init__(self, first_error: BaseException, last_error: BaseException, attempts: int) -> None:
        super().__init__(f"Giving up after {attempts} attempt(s): {last_error!r}")
        self.first_error = first_error
        self.last_error = last_error
        self.attempts = attempts


async def with_retry(
    call: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    first_error: BaseException | None = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await call()
        except Exception as exc:
            if first_error is None:
                first_error = exc
            if attempt >= policy.max_attempts or not policy.is_retryable(exc):
                raise RetryExhaustedError(first_error, exc, attempt) from exc
            delay_ms = policy.backoff_ms(attempt - 1)
            logger.warning(
                "Attempt %d failed with code=%s, retrying in %dms.",
                attempt, error_code(exc), delay_ms,
            )
            await sleep(delay_ms / 1000)
    raise RuntimeError("retry loop exited without a result")
