"""Exception types raised by the ingestion core."""

from __future__ import annotations


class FightOddsError(Exception):
    """Base class for all fight_odds errors."""
    pass


class ConfigError(FightOddsError):
    """Raised for missing or invalid source configuration."""
    pass


class CircuitOpenError(FightOddsError):
    """Raised when a call is rejected because the source's circuit is open."""

    def __init__(self, source_id: str, retry_in_seconds: float = 0.0):
        self.source_id = source_id
        self.retry_in_seconds = retry_in_seconds
        super().__init__(
            f"Circuit breaker is OPEN. Service unavailable for {source_id}"
        )


class RequestCancelledError(FightOddsError):
    """Raised instead of attempting a request once shutdown has been signalled."""

    def __init__(self, source_id: str, attempt: int):
        self.source_id = source_id
        self.attempt = attempt
        super().__init__(f"Request to {source_id} cancelled before attempt {attempt + 1}")


class IngestionError(FightOddsError):
    """Raised when a sync cannot fetch its payload at all."""

    def __init__(self, source_id: str, message: str):
        self.source_id = source_id
        super().__init__(f"Failed to sync odds from {source_id}: {message}")
