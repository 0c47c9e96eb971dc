"""
Notification channel for the ingestion core.

Components emit named events with keyword payloads; dashboards and alerting
subscribe. The core never depends on who (if anyone) is listening.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable

import structlog

logger = structlog.get_logger()

Listener = Callable[[str, dict[str, Any]], None]

# Event names
RATE_LIMIT_HIT = "rateLimitHit"
CIRCUIT_BREAKER_STATE_CHANGE = "circuitBreakerStateChange"
CIRCUIT_BREAKER_RESET = "circuitBreakerReset"
RETRY_ATTEMPT = "retryAttempt"
REQUEST_ERROR = "requestError"
ODDS_MOVEMENT = "oddsMovement"
ARBITRAGE_DETECTED = "arbitrageDetected"
EVENT_PROCESSED = "eventProcessed"
SYNC_COMPLETE = "syncComplete"
SYNC_ERROR = "syncError"

ALL_EVENTS = "*"


class EventBus:
    """
    Listener registry.

    Listeners are called synchronously with ``(event_name, payload)``.
    Subscribe to ``"*"`` to receive every event.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def subscribe(self, event: str, listener: Listener) -> None:
        self._listeners[event].append(listener)

    def unsubscribe(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event: str, **payload: Any) -> None:
        logger.debug("event_emitted", event_name=event, **payload)

        for listener in [*self._listeners.get(event, []), *self._listeners.get(ALL_EVENTS, [])]:
            try:
                listener(event, payload)
            except Exception as e:
                # A broken subscriber must not take down ingestion
                logger.error("event_listener_failed", event_name=event, error=str(e))

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))


class EventRecorder:
    """Listener that keeps every event it sees, in order."""

    def __init__(self, bus: EventBus | None = None) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []
        if bus is not None:
            bus.subscribe(ALL_EVENTS, self)

    def __call__(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))

    def named(self, event: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]
