"""
Per-source throttle with a minute window and an hour window.

Callers are delayed, never rejected: ``acquire()`` suspends until both
windows have room, then reserves one slot in each.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Optional

import structlog

from fight_odds.config import RateLimitConfig
from fight_odds.events import RATE_LIMIT_HIT, EventBus

logger = structlog.get_logger()

MINUTE_SECONDS = 60.0
HOUR_SECONDS = 3600.0
MIN_WAIT_SECONDS = 0.001


@dataclass
class RateLimiterState:
    """Counters for the current minute and hour windows."""
    requests_this_minute: int = 0
    requests_this_hour: int = 0
    minute_window_start: float = 0.0
    hour_window_start: float = 0.0


class RateLimiter:
    """Fixed-window limiter for one upstream source."""

    def __init__(
        self,
        source_id: str,
        config: RateLimitConfig,
        bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.source_id = source_id
        self.config = config
        self._bus = bus or EventBus()
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()

        now = clock()
        self.state = RateLimiterState(minute_window_start=now, hour_window_start=now)
        self.logger = logger.bind(component="rate_limiter", source_id=source_id)

    def _roll_windows(self, now: float) -> None:
        if now - self.state.minute_window_start >= MINUTE_SECONDS:
            self.state.requests_this_minute = 0
            self.state.minute_window_start = now
        if now - self.state.hour_window_start >= HOUR_SECONDS:
            self.state.requests_this_hour = 0
            self.state.hour_window_start = now

    def _wait_needed(self, now: float) -> Optional[tuple[str, float]]:
        """Return (window type, seconds to wait) if a quota is exhausted."""
        if self.state.requests_this_minute >= self.config.requests_per_minute:
            return "minute", MINUTE_SECONDS - (now - self.state.minute_window_start)
        if self.state.requests_this_hour >= self.config.requests_per_hour:
            return "hour", HOUR_SECONDS - (now - self.state.hour_window_start)
        return None

    async def acquire(self) -> None:
        """Wait for a call slot and reserve it."""
        async with self._lock:
            while True:
                now = self._clock()
                self._roll_windows(now)

                blocked = self._wait_needed(now)
                if blocked is None:
                    break

                window, wait_seconds = blocked
                wait_seconds = max(MIN_WAIT_SECONDS, wait_seconds)
                self.logger.warning(
                    "rate_limit_hit",
                    window=window,
                    wait_seconds=round(wait_seconds, 3),
                    requests_this_minute=self.state.requests_this_minute,
                    requests_this_hour=self.state.requests_this_hour,
                )
                self._bus.emit(
                    RATE_LIMIT_HIT,
                    source_id=self.source_id,
                    type=window,
                    waitTimeMs=wait_seconds * 1000,
                )
                await self._sleep(wait_seconds)

            self.state.requests_this_minute += 1
            self.state.requests_this_hour += 1

    def snapshot(self) -> dict:
        return asdict(self.state)
