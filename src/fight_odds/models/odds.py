"""Canonical odds snapshot models."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# Price used when a market is missing from the payload
UNKNOWN_PRICE = 0.0


class MethodOdds(BaseModel):
    """Method-of-victory prices. 0 = market not offered."""
    model_config = ConfigDict(frozen=True)

    ko_tko: float = UNKNOWN_PRICE
    submission: float = UNKNOWN_PRICE
    decision: float = UNKNOWN_PRICE

    @property
    def is_known(self) -> bool:
        return any(p != UNKNOWN_PRICE for p in (self.ko_tko, self.submission, self.decision))


class RoundOdds(BaseModel):
    """Round-betting prices. Rounds 4 and 5 only exist for five-round fights."""
    model_config = ConfigDict(frozen=True)

    round1: float = UNKNOWN_PRICE
    round2: float = UNKNOWN_PRICE
    round3: float = UNKNOWN_PRICE
    round4: Optional[float] = None
    round5: Optional[float] = None


class OddsSnapshot(BaseModel):
    """
    One bookmaker's prices for one fight at one instant.

    Moneyline prices are American odds. Snapshots are never mutated; a
    later snapshot for the same (fight_id, bookmaker) supersedes this one.
    """
    model_config = ConfigDict(frozen=True)

    fight_id: str
    bookmaker: str = Field(description="Display name (e.g., 'DraftKings')")
    timestamp: datetime

    fighter1_odds: float = Field(description="Moneyline price for fighter 1 (home)")
    fighter2_odds: float = Field(description="Moneyline price for fighter 2 (away)")
    method: MethodOdds = Field(default_factory=MethodOdds)
    rounds: Optional[RoundOdds] = None

    # Metadata
    event_id: str = ""
    fighter1: str = ""
    fighter2: str = ""
    commence_time: Optional[datetime] = None

    @property
    def key(self) -> tuple[str, str]:
        return self.fight_id, self.bookmaker

    @property
    def moneyline(self) -> tuple[float, float]:
        return self.fighter1_odds, self.fighter2_odds
