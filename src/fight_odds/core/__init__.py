"""Market analysis: odds math, movement detection, arbitrage, ingestion."""

from fight_odds.core.odds_math import (
    american_to_prob,
    percentage_change,
    arbitrage_profit_pct,
    arbitrage_stakes,
)
from fight_odds.core.movement import MovementDetector, classify_movement
from fight_odds.core.arbitrage import ArbitrageScanner, aggregate_market, group_by_fight
from fight_odds.core.ingestion import OddsIngestionJob

__all__ = [
    "american_to_prob",
    "percentage_change",
    "arbitrage_profit_pct",
    "arbitrage_stakes",
    "MovementDetector",
    "classify_movement",
    "ArbitrageScanner",
    "aggregate_market",
    "group_by_fight",
    "OddsIngestionJob",
]
