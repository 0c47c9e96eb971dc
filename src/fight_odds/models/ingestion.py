"""Results of a single ingestion run."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from fight_odds.models.alerts import ArbitrageOpportunity, MovementAlert


class Severity(str, Enum):
    WARNING = "warning"  # Record kept
    ERROR = "error"      # Record skipped


class ValidationFinding(BaseModel):
    """A structural problem found in a payload field."""
    field: str
    message: str
    value: Any = None
    severity: Severity = Severity.ERROR


class IngestionResult(BaseModel):
    """Outcome of one sync against one source; partial success is normal."""
    source_id: str
    records_processed: int = 0
    records_skipped: int = 0
    findings: list[ValidationFinding] = Field(default_factory=list)
    movement_alerts: list[MovementAlert] = Field(default_factory=list)
    arbitrage_opportunities: list[ArbitrageOpportunity] = Field(default_factory=list)
    processing_time_ms: float = 0.0
    next_sync_time: datetime

    @property
    def errors(self) -> list[ValidationFinding]:
        return [f for f in self.findings if f.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationFinding]:
        return [f for f in self.findings if f.severity == Severity.WARNING]
