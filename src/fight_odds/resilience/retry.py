"""
Bounded, jittered exponential backoff around a single outbound call.

Wraps tenacity's AsyncRetrying with the failure classification and delay
formula the connectors need.
"""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from fight_odds.config import RetryConfig
from fight_odds.errors import RequestCancelledError
from fight_odds.events import RETRY_ATTEMPT, EventBus

logger = structlog.get_logger()

T = TypeVar("T")

JITTER_FRACTION = 0.1


def is_retryable(error: BaseException) -> bool:
    """
    Transient failures: no response, timeout, HTTP 5xx, HTTP 429.

    Everything else (other 4xx, circuit-open, cancellation) is fatal.
    """
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status >= 500 or status == 429
    # TimeoutException is a TransportError subclass
    return isinstance(error, httpx.TransportError)


class wait_jittered_backoff(wait_base):
    """min(base * multiplier**attempt + jitter, max_backoff), jitter up to 10%."""

    def __init__(
        self,
        base_delay_ms: float,
        multiplier: float,
        max_backoff_ms: float,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.base_delay_ms = base_delay_ms
        self.multiplier = multiplier
        self.max_backoff_ms = max_backoff_ms
        self.rng = rng

    def backoff_ms(self, attempt: int) -> float:
        backoff = self.base_delay_ms * self.multiplier ** attempt
        jitter = self.rng() * JITTER_FRACTION * backoff
        return min(backoff + jitter, self.max_backoff_ms)

    def __call__(self, retry_state: RetryCallState) -> float:
        # tenacity counts attempts from 1; the formula counts retries from 0
        return self.backoff_ms(retry_state.attempt_number - 1) / 1000.0


class RetryPolicy:
    """Retries retryable failures up to ``max_retries`` times."""

    def __init__(
        self,
        source_id: str,
        config: RetryConfig,
        bus: Optional[EventBus] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
        shutdown: Optional[asyncio.Event] = None,
    ) -> None:
        self.source_id = source_id
        self.config = config
        self._bus = bus or EventBus()
        self._sleep = sleep
        self._shutdown = shutdown
        self.wait = wait_jittered_backoff(
            base_delay_ms=config.base_delay_ms,
            multiplier=config.backoff_multiplier,
            max_backoff_ms=config.max_backoff_ms,
            rng=rng,
        )
        self.logger = logger.bind(component="retry", source_id=source_id)

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        backoff_ms = (retry_state.next_action.sleep * 1000) if retry_state.next_action else 0.0
        attempt = retry_state.attempt_number

        self.logger.warning(
            "retry_attempt",
            attempt=attempt,
            max_retries=self.config.max_retries,
            backoff_ms=round(backoff_ms, 1),
            error=str(error),
        )
        self._bus.emit(
            RETRY_ATTEMPT,
            source_id=self.source_id,
            attempt=attempt,
            maxRetries=self.config.max_retries,
            backoffMs=backoff_ms,
            error=str(error),
        )

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``fn`` with retries.

        Fatal errors and the last error after retries are exhausted are
        re-raised unchanged.
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception(is_retryable),
            stop=stop_after_attempt(self.config.max_retries + 1),
            wait=self.wait,
            sleep=self._sleep,
            before_sleep=self._before_sleep,
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                attempt_index = attempt.retry_state.attempt_number - 1
                if self._shutdown is not None and self._shutdown.is_set():
                    raise RequestCancelledError(self.source_id, attempt_index)
                return await fn()

        raise AssertionError("unreachable")  # pragma: no cover
