"""
Backoff retries for upstream page fetches.

A page request that fails with a transient UpstreamError (429, 5xx,
timeout, connection failure) is attempted again after a doubling pause.
Anything else, or the last transient failure once the retry budget is
spent, goes back to the caller and aborts that refresh step.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from .config import RetryConfig
from .exceptions import UpstreamError

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    """What came out of a retried call, and how many attempts it took."""

    success: bool
    result: Optional[T]
    attempts: int
    last_error: Optional[Exception]


class RetryManager:
    """Runs an async operation up to ``max_retries + 1`` times."""

    def __init__(
        self,
        config: RetryConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._sleep = sleep

    @property
    def config(self) -> RetryConfig:
        return self._config

    def calculate_delay(self, attempt: int) -> float:
        """Pause after failed attempt ``attempt`` (0-based): base * 2**attempt, capped."""
        return min(
            self._config.base_delay_seconds * (2 ** attempt),
            self._config.max_delay_seconds,
        )

    @staticmethod
    def is_retryable(error: Exception) -> bool:
        return isinstance(error, UpstreamError) and error.is_transient

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        is_retryable: Optional[Callable[[Exception], bool]] = None,
    ) -> RetryResult[T]:
        """
        Await ``operation()`` until it succeeds or retrying stops making sense.

        ``is_retryable`` overrides the default classification, which accepts
        transient UpstreamErrors only. No pause follows the final attempt.
        """
        should_retry = is_retryable or self.is_retryable
        total = self._config.max_retries + 1
        error: Optional[Exception] = None

        for attempt in range(1, total + 1):
            try:
                value = await operation()
            except Exception as exc:
                error = exc
                if attempt == total or not should_retry(exc):
                    return RetryResult(success=False, result=None, attempts=attempt, last_error=exc)
                await self._sleep(self.calculate_delay(attempt - 1))
            else:
                return RetryResult(success=True, result=value, attempts=attempt, last_error=None)

        return RetryResult(success=False, result=None, attempts=total, last_error=error)

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Like execute_with_retry, but returns the value or raises the last error."""
        outcome = await self.execute_with_retry(operation)
        if not outcome.success:
            raise outcome.last_error
        return outcome.result
