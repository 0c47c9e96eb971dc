"""
Circuit breaker for an upstream source.

Stops calling a source after repeated consecutive failures and lets a single
trial call through once the reset timeout has elapsed.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import structlog

from fight_odds.config import CircuitBreakerConfig
from fight_odds.errors import CircuitOpenError
from fight_odds.events import CIRCUIT_BREAKER_RESET, CIRCUIT_BREAKER_STATE_CHANGE, EventBus

logger = structlog.get_logger()


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerState:
    """Current state of the circuit breaker."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_time: float = 0.0
    trial_in_flight: bool = False


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker.

    closed -> open after ``failure_threshold`` consecutive failures.
    open -> half_open on the first ``before_call`` after ``reset_timeout_seconds``.
    half_open -> closed on a successful trial, back to open on a failed one.
    """

    def __init__(
        self,
        source_id: str,
        config: CircuitBreakerConfig,
        bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source_id = source_id
        self.config = config
        self._bus = bus or EventBus()
        self._clock = clock

        self.state = CircuitBreakerState()
        self.logger = logger.bind(component="circuit_breaker", source_id=source_id)

    @property
    def current_state(self) -> CircuitState:
        return self.state.state

    @property
    def failure_count(self) -> int:
        return self.state.failure_count

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self.state.state
        self.state.state = new_state

        log = self.logger.warning if new_state == CircuitState.OPEN else self.logger.info
        log(
            "circuit_state_change",
            old_state=old_state.value,
            new_state=new_state.value,
            failure_count=self.state.failure_count,
        )
        self._bus.emit(
            CIRCUIT_BREAKER_STATE_CHANGE,
            source_id=self.source_id,
            state=new_state.value,
        )

    def before_call(self) -> None:
        """Raise CircuitOpenError if the call must not go out."""
        if self.state.state == CircuitState.OPEN:
            elapsed = self._clock() - self.state.last_failure_time
            if elapsed < self.config.reset_timeout_seconds:
                raise CircuitOpenError(
                    self.source_id,
                    retry_in_seconds=self.config.reset_timeout_seconds - elapsed,
                )
            self._transition(CircuitState.HALF_OPEN)

        if self.state.state == CircuitState.HALF_OPEN:
            # Exactly one trial call while half-open
            if self.state.trial_in_flight:
                raise CircuitOpenError(self.source_id)
            self.state.trial_in_flight = True

    def on_success(self) -> None:
        self.state.failure_count = 0
        self.state.trial_in_flight = False
        if self.state.state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.CLOSED)

    def on_failure(self) -> None:
        self.state.failure_count += 1
        self.state.last_failure_time = self._clock()
        self.state.trial_in_flight = False

        if self.state.state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
        elif (
            self.state.state == CircuitState.CLOSED
            and self.state.failure_count >= self.config.failure_threshold
        ):
            self._transition(CircuitState.OPEN)

    def reset(self) -> None:
        """Force the breaker closed (administrative override)."""
        was = self.state.state
        self.state = CircuitBreakerState()
        self.logger.info("circuit_breaker_manual_reset", previous_state=was.value)
        if was != CircuitState.CLOSED:
            self._bus.emit(
                CIRCUIT_BREAKER_STATE_CHANGE,
                source_id=self.source_id,
                state=CircuitState.CLOSED.value,
            )
        self._bus.emit(CIRCUIT_BREAKER_RESET, source_id=self.source_id)
