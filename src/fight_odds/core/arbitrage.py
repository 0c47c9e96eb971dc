"""
Arbitrage scanner – finds the best moneyline per side across bookmakers for one
fight and checks whether a guaranteed-profit stake split exists.

Also builds consensus market aggregates for the same batch.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

import numpy as np
import structlog

from fight_odds.core.odds_math import american_to_prob, arbitrage_profit_pct, arbitrage_stakes
from fight_odds.events import ARBITRAGE_DETECTED, EventBus
from fight_odds.models.alerts import ArbitrageOpportunity, BestPrice, MarketAggregate
from fight_odds.models.odds import UNKNOWN_PRICE, OddsSnapshot

logger = structlog.get_logger()


def group_by_fight(snapshots: Iterable[OddsSnapshot]) -> dict[str, list[OddsSnapshot]]:
    """Bucket snapshots per fight, preserving arrival order."""
    groups: dict[str, list[OddsSnapshot]] = defaultdict(list)
    for snapshot in snapshots:
        groups[snapshot.fight_id].append(snapshot)
    return dict(groups)


def best_prices(snapshots: list[OddsSnapshot]) -> tuple[Optional[BestPrice], Optional[BestPrice]]:
    """
    Highest price for each fighter, chosen independently.

    Unknown (0) prices are ignored. On ties the first bookmaker seen wins.
    """
    best1: Optional[OddsSnapshot] = None
    best2: Optional[OddsSnapshot] = None

    for snapshot in snapshots:
        if snapshot.fighter1_odds != UNKNOWN_PRICE and (best1 is None or snapshot.fighter1_odds > best1.fighter1_odds):
            best1 = snapshot
        if snapshot.fighter2_odds != UNKNOWN_PRICE and (best2 is None or snapshot.fighter2_odds > best2.fighter2_odds):
            best2 = snapshot

    price1 = None
    if best1 is not None:
        price1 = BestPrice(
            bookmaker=best1.bookmaker,
            odds=best1.fighter1_odds,
            implied_probability=american_to_prob(best1.fighter1_odds),
        )
    price2 = None
    if best2 is not None:
        price2 = BestPrice(
            bookmaker=best2.bookmaker,
            odds=best2.fighter2_odds,
            implied_probability=american_to_prob(best2.fighter2_odds),
        )
    return price1, price2


class ArbitrageScanner:
    """Detects two-way moneyline arbitrage for a single fight batch."""

    def __init__(
        self,
        min_profit_pct: float = 2.0,
        reference_stake: float = 1000.0,
        ttl_seconds: float = 3600.0,
        bus: Optional[EventBus] = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.min_profit_pct = min_profit_pct
        self.reference_stake = reference_stake
        self.ttl_seconds = ttl_seconds
        self._bus = bus or EventBus()
        self._now = now

    def scan(self, snapshots: list[OddsSnapshot]) -> Optional[ArbitrageOpportunity]:
        """
        Check one fight's snapshots (one per bookmaker).

        Returns an opportunity only when the best prices come from different
        bookmakers and the guaranteed profit clears ``min_profit_pct``.
        """
        if len(snapshots) < 2:
            return None

        fight_ids = {s.fight_id for s in snapshots}
        if len(fight_ids) != 1:
            raise ValueError(f"scan() expects snapshots for one fight, got {sorted(fight_ids)}")
        fight_id = snapshots[0].fight_id

        best1, best2 = best_prices(snapshots)
        if best1 is None or best2 is None:
            return None
        if best1.bookmaker == best2.bookmaker:
            return None

        prob_sum = best1.implied_probability + best2.implied_probability
        if prob_sum >= 1.0:
            return None

        profit = arbitrage_profit_pct(prob_sum)
        if profit < self.min_profit_pct:
            logger.debug("arbitrage_below_threshold", fight_id=fight_id, profit_pct=round(profit, 3))
            return None

        stake1, stake2 = arbitrage_stakes(
            [best1.implied_probability, best2.implied_probability],
            self.reference_stake,
        )
        detected_at = self._now()

        opportunity = ArbitrageOpportunity(
            fight_id=fight_id,
            bookmakers=[best1.bookmaker, best2.bookmaker],
            profit_pct=profit,
            implied_probability_sum=prob_sum,
            stakes={best1.bookmaker: stake1, best2.bookmaker: stake2},
            total_stake=self.reference_stake,
            best_fighter1=best1,
            best_fighter2=best2,
            detected_at=detected_at,
            expires_at=detected_at + timedelta(seconds=self.ttl_seconds),
        )

        logger.info(
            "arbitrage_detected",
            fight_id=fight_id,
            bookmakers=opportunity.bookmakers,
            profit_pct=round(profit, 3),
        )
        self._bus.emit(
            ARBITRAGE_DETECTED,
            fightId=fight_id,
            bookmakers=opportunity.bookmakers,
            profit=profit,
        )
        return opportunity

    def scan_all(self, snapshots: Iterable[OddsSnapshot]) -> list[ArbitrageOpportunity]:
        """Scan every fight in a mixed batch."""
        opportunities = []
        for group in group_by_fight(snapshots).values():
            opportunity = self.scan(group)
            if opportunity is not None:
                opportunities.append(opportunity)
        opportunities.sort(key=lambda o: o.profit_pct, reverse=True)
        return opportunities


def aggregate_market(snapshots: list[OddsSnapshot]) -> Optional[MarketAggregate]:
    """
    Consensus implied probabilities and price dispersion for one fight.

    Confidence is ``clamp(1 - 4 * std(fighter1 probs), 0.1, 1.0)``.
    Snapshots missing either moneyline price are left out.
    """
    usable = [
        s for s in snapshots
        if s.fighter1_odds != UNKNOWN_PRICE and s.fighter2_odds != UNKNOWN_PRICE
    ]
    if not usable:
        return None

    probs1 = np.array([american_to_prob(s.fighter1_odds) for s in usable])
    probs2 = np.array([american_to_prob(s.fighter2_odds) for s in usable])
    prices1 = np.array([s.fighter1_odds for s in usable])
    prices2 = np.array([s.fighter2_odds for s in usable])

    confidence = float(np.clip(1.0 - float(np.std(probs1)) * 4, 0.1, 1.0))

    average_spread = 0.0
    if len(usable) >= 2:
        spread1 = float(prices1.max() - prices1.min())
        spread2 = float(prices2.max() - prices2.min())
        average_spread = (spread1 + spread2) / 2

    best1, best2 = best_prices(usable)

    return MarketAggregate(
        fight_id=usable[0].fight_id,
        bookmaker_count=len(usable),
        best_fighter1=best1,
        best_fighter2=best2,
        consensus_fighter1_probability=float(probs1.mean()),
        consensus_fighter2_probability=float(probs2.mean()),
        confidence=confidence,
        average_spread=average_spread,
    )
