"""
Movement detector – compares each new snapshot with the previous one for the
same (fight, bookmaker) and classifies the moneyline change.
"""

from __future__ import annotations

from collections import Counter, OrderedDict
from datetime import datetime
from typing import Optional

import structlog

from fight_odds.core.odds_math import american_to_prob, percentage_change
from fight_odds.events import ODDS_MOVEMENT, EventBus
from fight_odds.models.alerts import PRIORITY_BY_MOVEMENT, MovementAlert, MovementType
from fight_odds.models.odds import UNKNOWN_PRICE, OddsSnapshot

logger = structlog.get_logger()


def classify_movement(
    fighter1_change: float,
    fighter2_change: float,
    steam_percentage: float = 10.0,
) -> MovementType:
    """
    Classify a pair of signed percentage changes.

    Steam needs both sides moving the same way with the larger move at least
    ``steam_percentage``. Reverse needs strictly opposite signs. A side that
    did not move has no direction, so it can be neither.
    """
    max_change = max(abs(fighter1_change), abs(fighter2_change))
    product = fighter1_change * fighter2_change

    if product > 0 and max_change >= steam_percentage:
        return MovementType.STEAM
    if product < 0:
        return MovementType.REVERSE
    return MovementType.SIGNIFICANT


class MovementDetector:
    """
    Keyed baseline store plus movement classification.

    Only the previous snapshot per key is retained, in an LRU cache capped at
    ``max_entries`` so long-running processes do not grow without bound.
    ``detect`` has no suspension points, so its read-compare-write is atomic
    under asyncio.
    """

    def __init__(
        self,
        min_percentage_change: float = 5.0,
        steam_percentage: float = 10.0,
        max_entries: int = 10_000,
        alert_cooldown_seconds: float = 0.0,
        minimum_odds_value: float = 100.0,
        bus: Optional[EventBus] = None,
    ) -> None:
        if max_entries <= 0:
            raise ValueError(f"max_entries must be > 0, got {max_entries}")
        self.min_percentage_change = min_percentage_change
        self.steam_percentage = steam_percentage
        self.max_entries = max_entries
        self.alert_cooldown_seconds = alert_cooldown_seconds
        self.minimum_odds_value = minimum_odds_value
        self._bus = bus or EventBus()

        self._baselines: OrderedDict[tuple[str, str], OddsSnapshot] = OrderedDict()
        self._last_alert_at: dict[str, datetime] = {}
        self._alert_counts: Counter[MovementType] = Counter()
        self._evictions = 0
        self._rejected = 0

    def __len__(self) -> int:
        return len(self._baselines)

    def baseline(self, fight_id: str, bookmaker: str) -> Optional[OddsSnapshot]:
        return self._baselines.get((fight_id, bookmaker))

    def _store(self, snapshot: OddsSnapshot) -> None:
        key = snapshot.key
        self._baselines[key] = snapshot
        self._baselines.move_to_end(key)
        while len(self._baselines) > self.max_entries:
            evicted, _ = self._baselines.popitem(last=False)
            self._evictions += 1
            logger.debug("baseline_evicted", fight_id=evicted[0], bookmaker=evicted[1])

    def is_valid(self, snapshot: OddsSnapshot) -> bool:
        """Both moneyline sides must be real prices of at least ``minimum_odds_value``."""
        return all(
            price != UNKNOWN_PRICE and abs(price) >= self.minimum_odds_value
            for price in snapshot.moneyline
        )

    def _in_cooldown(self, fight_id: str, at: datetime) -> bool:
        if self.alert_cooldown_seconds <= 0:
            return False
        last = self._last_alert_at.get(fight_id)
        if last is None:
            return False
        return (at - last).total_seconds() < self.alert_cooldown_seconds

    def compare(self, old: OddsSnapshot, new: OddsSnapshot) -> tuple[MovementType, float, float, float]:
        """Return (classification, max |Δ|, Δ1, Δ2) for two snapshots."""
        change1 = percentage_change(old.fighter1_odds, new.fighter1_odds)
        change2 = percentage_change(old.fighter2_odds, new.fighter2_odds)
        max_change = max(abs(change1), abs(change2))

        if max_change < self.min_percentage_change:
            return MovementType.MINOR, max_change, change1, change2
        return classify_movement(change1, change2, self.steam_percentage), max_change, change1, change2

    def detect(self, snapshot: OddsSnapshot) -> Optional[MovementAlert]:
        """
        Feed one snapshot. Returns an alert when the move clears the threshold.

        The stored baseline is replaced by ``snapshot`` whether or not an
        alert fires. Snapshots with an unknown or implausible moneyline are
        ignored and leave the baseline untouched.
        """
        if not self.is_valid(snapshot):
            self._rejected += 1
            logger.debug(
                "snapshot_rejected",
                fight_id=snapshot.fight_id,
                bookmaker=snapshot.bookmaker,
                moneyline=snapshot.moneyline,
            )
            return None

        previous = self._baselines.get(snapshot.key)
        self._store(snapshot)

        if previous is None:
            return None

        movement_type, max_change, change1, change2 = self.compare(previous, snapshot)
        if movement_type == MovementType.MINOR:
            return None

        if self._in_cooldown(snapshot.fight_id, snapshot.timestamp):
            logger.debug("movement_alert_suppressed", fight_id=snapshot.fight_id, reason="cooldown")
            return None

        prob_change1 = _implied_change(previous.fighter1_odds, snapshot.fighter1_odds)
        prob_change2 = _implied_change(previous.fighter2_odds, snapshot.fighter2_odds)

        alert = MovementAlert(
            fight_id=snapshot.fight_id,
            bookmaker=snapshot.bookmaker,
            movement_type=movement_type,
            old_odds=previous,
            new_odds=snapshot,
            percentage_change=max_change,
            fighter1_change=change1,
            fighter2_change=change2,
            implied_probability_change=(prob_change1, prob_change2),
            timestamp=snapshot.timestamp,
            priority=PRIORITY_BY_MOVEMENT[movement_type],
        )

        self._last_alert_at[snapshot.fight_id] = snapshot.timestamp
        self._alert_counts[movement_type] += 1

        logger.info(
            "odds_movement_detected",
            fight_id=alert.fight_id,
            bookmaker=alert.bookmaker,
            movement_type=movement_type.value,
            percentage_change=round(max_change, 2),
        )
        self._bus.emit(
            ODDS_MOVEMENT,
            fightId=alert.fight_id,
            bookmaker=alert.bookmaker,
            movementType=movement_type.value,
            percentageChange=max_change,
        )
        return alert

    def stats(self) -> dict:
        return {
            "tracked_keys": len(self._baselines),
            "max_entries": self.max_entries,
            "evictions": self._evictions,
            "rejected": self._rejected,
            "alerts_by_type": {t.value: self._alert_counts.get(t, 0) for t in MovementType if t != MovementType.MINOR},
        }

    def clear(self) -> None:
        self._baselines.clear()
        self._last_alert_at.clear()
        self._alert_counts.clear()
        self._evictions = 0
        self._rejected = 0


def _implied_change(old: float, new: float) -> float:
    return american_to_prob(new) - american_to_prob(old)
