"""Canonical records passed between the normalizer, detectors and sinks."""

from fight_odds.models.odds import OddsSnapshot, MethodOdds, RoundOdds, UNKNOWN_PRICE
from fight_odds.models.alerts import (
    MovementAlert,
    MovementType,
    AlertPriority,
    ArbitrageOpportunity,
    BestPrice,
    MarketAggregate,
)
from fight_odds.models.ingestion import IngestionResult, ValidationFinding, Severity

__all__ = [
    "OddsSnapshot",
    "MethodOdds",
    "RoundOdds",
    "UNKNOWN_PRICE",
    "MovementAlert",
    "MovementType",
    "AlertPriority",
    "ArbitrageOpportunity",
    "BestPrice",
    "MarketAggregate",
    "IngestionResult",
    "ValidationFinding",
    "Severity",
]
