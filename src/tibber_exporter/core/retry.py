"""Bounded exponential-backoff retry for single async operations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from tibber_exporter.core.config import RetryConfig
from tibber_exporter.core.exceptions import TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Retries an async operation on TransientError with jittered backoff.

    The n-th wait is drawn uniformly from ``[0, base_delay * 2**(n-1)]``,
    capped at ``max_delay``. Any other exception is raised on the spot. When
    the last attempt fails, its exception is re-raised unchanged.

    Parameters
    ----------
    max_attempts : int
        Total attempts including the first one. Default: 3.
    base_delay : float
        Upper bound of the first wait, in seconds. Default: 0.1.
    max_delay : float
        Upper bound of any single wait, in seconds. Default: 10.0.
    sleep : Callable[[float], Awaitable[None]]
        Sleep function. Overridable for testing.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.1,
        max_delay: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
        )

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "operation",
    ) -> T:
        """Run `operation` until it succeeds or the attempt budget is spent."""

        def log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.3fs: %s",
                description,
                retry_state.attempt_number,
                self.max_attempts,
                delay,
                exc,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_random_exponential(
                multiplier=self.base_delay, max=self.max_delay
            ),
            retry=retry_if_exception_type(TransientError),
            before_sleep=log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        return await retrying(operation)
