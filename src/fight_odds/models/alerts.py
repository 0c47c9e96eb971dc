"""Derived signals: movement alerts, arbitrage opportunities, market aggregates."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from fight_odds.models.odds import OddsSnapshot


class MovementType(str, Enum):
    """Classification of a moneyline change between two snapshots."""
    STEAM = "steam"              # Both sides moved the same way, hard
    REVERSE = "reverse"          # Sides moved in opposite directions
    SIGNIFICANT = "significant"  # Above threshold, neither of the above
    MINOR = "minor"              # Below threshold, never alerted


class AlertPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


PRIORITY_BY_MOVEMENT = {
    MovementType.STEAM: AlertPriority.URGENT,
    MovementType.REVERSE: AlertPriority.HIGH,
    MovementType.SIGNIFICANT: AlertPriority.MEDIUM,
    MovementType.MINOR: AlertPriority.LOW,
}


class MovementAlert(BaseModel):
    """A moneyline move large enough to report."""
    model_config = ConfigDict(frozen=True)

    fight_id: str
    bookmaker: str
    movement_type: MovementType
    old_odds: OddsSnapshot
    new_odds: OddsSnapshot

    percentage_change: float = Field(description="max(|Δ1|, |Δ2|) in percent")
    fighter1_change: float
    fighter2_change: float
    implied_probability_change: tuple[float, float] = Field(
        description="(Δp fighter1, Δp fighter2), probabilities in [0, 1]"
    )

    timestamp: datetime = Field(description="Timestamp of the newer snapshot")
    priority: AlertPriority = AlertPriority.MEDIUM


class BestPrice(BaseModel):
    model_config = ConfigDict(frozen=True)

    bookmaker: str
    odds: float
    implied_probability: float


class ArbitrageOpportunity(BaseModel):
    """
    Cross-bookmaker price combination with a guaranteed profit.

    ``stakes`` splits ``total_stake`` so every outcome pays the same.
    """
    model_config = ConfigDict(frozen=True)

    fight_id: str
    bookmakers: list[str]
    profit_pct: float = Field(description="(1/sum - 1) * 100")
    implied_probability_sum: float
    stakes: dict[str, float]
    total_stake: float
    best_fighter1: BestPrice
    best_fighter2: BestPrice

    detected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime

    @property
    def guaranteed_payout(self) -> float:
        return self.total_stake / self.implied_probability_sum

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.expires_at


class MarketAggregate(BaseModel):
    """Consensus view of one fight across bookmakers."""

    fight_id: str
    bookmaker_count: int = Field(ge=0)
    best_fighter1: Optional[BestPrice] = None
    best_fighter2: Optional[BestPrice] = None
    consensus_fighter1_probability: float = Field(ge=0, le=1)
    consensus_fighter2_probability: float = Field(ge=0, le=1)
    confidence: float = Field(ge=0, le=1, description="Higher when books agree")
    average_spread: float = Field(description="Mean best-worst price spread across both sides")
