"""
Pytest fixtures for testing.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable

import httpx
import pytest

from fight_odds.config import (
    AuthType,
    CircuitBreakerConfig,
    RateLimitConfig,
    RetryConfig,
    SourceConfig,
)
from fight_odds.events import EventBus, EventRecorder
from fight_odds.models.odds import OddsSnapshot
from fight_odds.resilience.pipeline import RequestPipeline
from fight_odds.resilience.transport import HttpxTransport

T0 = datetime(2025, 3, 8, 18, 0, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock whose sleep advances time instead of waiting."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(bus: EventBus) -> EventRecorder:
    return EventRecorder(bus)


@pytest.fixture
def source_config() -> SourceConfig:
    """A small, fast source config for pipeline tests."""
    return SourceConfig(
        source_id="TEST_SOURCE",
        name="Test Source",
        base_url="https://odds.test/v4",
        endpoints={
            "odds": "/sports/mma_mixed_martial_arts/odds",
            "eventOdds": "/sports/mma_mixed_martial_arts/events/{eventId}/odds",
            "usage": "/sports/mma_mixed_martial_arts/odds/usage",
            "sports": "/sports",
            "events": "/sports/mma_mixed_martial_arts/events",
        },
        rate_limit=RateLimitConfig(requests_per_minute=50, requests_per_hour=500),
        retry=RetryConfig(max_retries=3, backoff_multiplier=2, max_backoff_ms=15_000, base_delay_ms=1_000),
        circuit_breaker=CircuitBreakerConfig(failure_threshold=5, reset_timeout_seconds=60),
        api_key="secret-key",
        auth_type=AuthType.API_KEY,
    )


@pytest.fixture
def make_pipeline(source_config: SourceConfig, bus: EventBus, clock: FakeClock):
    """Build a pipeline whose network is an httpx.MockTransport handler."""

    def _make(handler: Callable[[httpx.Request], httpx.Response], config: SourceConfig = None, **kwargs) -> RequestPipeline:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = HttpxTransport(client=client)
        kwargs.setdefault("rng", lambda: 0.0)
        return RequestPipeline(
            config or source_config,
            transport=transport,
            bus=bus,
            clock=clock,
            sleep=clock.sleep,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_snapshot() -> Callable[..., OddsSnapshot]:
    """Factory for moneyline snapshots."""

    def _make(
        fighter1_odds: float,
        fighter2_odds: float,
        fight_id: str = "fight-1",
        bookmaker: str = "DraftKings",
        timestamp: datetime = T0,
    ) -> OddsSnapshot:
        return OddsSnapshot(
            fight_id=fight_id,
            bookmaker=bookmaker,
            timestamp=timestamp,
            fighter1_odds=fighter1_odds,
            fighter2_odds=fighter2_odds,
            fighter1="Jon Jones",
            fighter2="Stipe Miocic",
        )

    return _make


def bookmaker_payload(key: str, title: str, home_price: float, away_price: float, extra_markets=None) -> dict:
    markets = [{
        "key": "h2h",
        "outcomes": [
            {"name": "Jon Jones", "price": home_price},
            {"name": "Stipe Miocic", "price": away_price},
        ],
    }]
    markets.extend(extra_markets or [])
    return {"key": key, "title": title, "last_update": "2025-03-08T17:55:00Z", "markets": markets}


@pytest.fixture
def sample_event() -> dict:
    """An Odds API event with two bookmakers, one carrying method and round markets."""
    return {
        "id": "evt-123",
        "sport_key": "mma_mixed_martial_arts",
        "sport_title": "MMA",
        "commence_time": "2025-03-09T03:00:00Z",
        "home_team": "Jon Jones",
        "away_team": "Stipe Miocic",
        "bookmakers": [
            bookmaker_payload(
                "draftkings", "DraftKings", -150, 130,
                extra_markets=[
                    {
                        "key": "fight_result_method",
                        "outcomes": [
                            {"name": "Jon Jones by KO/TKO", "price": 200},
                            {"name": "Jon Jones by Submission", "price": 350},
                            {"name": "Jon Jones by Decision", "price": 250},
                        ],
                    },
                    {
                        "key": "fight_result_round",
                        "outcomes": [
                            {"name": "Round 1", "price": 500},
                            {"name": "Round 2", "price": 600},
                            {"name": "Round 3", "price": 700},
                        ],
                    },
                ],
            ),
            bookmaker_payload("fanduel", "FanDuel", -140, 120),
        ],
    }


@pytest.fixture
def later() -> Callable[[int], datetime]:
    def _later(minutes: int) -> datetime:
        return T0 + timedelta(minutes=minutes)
    return _later


@pytest.fixture
def make_bookmaker():
    return bookmaker_payload
