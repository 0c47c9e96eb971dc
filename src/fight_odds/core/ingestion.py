"""
Ingestion job – one sync cycle against one source.

fetch (through the request pipeline) -> validate -> normalize -> sink ->
movement detector -> per-fight arbitrage scan -> sink.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

import structlog

from fight_odds.adapters.odds_api import OddsAPIAdapter
from fight_odds.core.arbitrage import ArbitrageScanner
from fight_odds.core.movement import MovementDetector
from fight_odds.db import OddsSink
from fight_odds.errors import IngestionError
from fight_odds.events import EVENT_PROCESSED, SYNC_COMPLETE, SYNC_ERROR, EventBus
from fight_odds.models.ingestion import IngestionResult, Severity, ValidationFinding
from fight_odds.models.odds import OddsSnapshot
from fight_odds.observability.logging import redact_secrets

logger = structlog.get_logger()


class OddsIngestionJob:
    """
    Orchestrates a sync for one provider adapter.

    Fatal fetch failures (fatal HTTP status, exhausted retries, open circuit)
    surface as IngestionError. Problems with individual events become
    findings on the result so the rest of the batch still lands.
    """

    def __init__(
        self,
        adapter: OddsAPIAdapter,
        sink: OddsSink,
        detector: MovementDetector,
        scanner: ArbitrageScanner,
        bus: Optional[EventBus] = None,
        enable_arbitrage: bool = True,
        next_sync_seconds: float = 300.0,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.adapter = adapter
        self.sink = sink
        self.detector = detector
        self.scanner = scanner
        self.bus = bus or EventBus()
        self.enable_arbitrage = enable_arbitrage
        self.next_sync_seconds = next_sync_seconds
        self._now = now
        self.logger = logger.bind(component="ingestion", source_id=adapter.source_id)

    async def sync(self, event_id: Optional[str] = None) -> IngestionResult:
        """Fetch and process the current odds board (or a single event)."""
        started = time.perf_counter()
        source_id = self.adapter.source_id

        try:
            if event_id:
                events = await self.adapter.get_event_odds(event_id)
            else:
                events = await self.adapter.get_odds()
        except Exception as e:
            message = redact_secrets(str(e))
            self.logger.error("sync_failed", error=message, error_type=type(e).__name__)
            self.bus.emit(SYNC_ERROR, source_id=source_id, error=message)
            raise IngestionError(source_id, message) from e

        result = await self.process_events(events)
        result.processing_time_ms = (time.perf_counter() - started) * 1000

        self.logger.info(
            "sync_complete",
            events=len(events),
            processed=result.records_processed,
            skipped=result.records_skipped,
            errors=len(result.errors),
            warnings=len(result.warnings),
            alerts=len(result.movement_alerts),
            arbitrage=len(result.arbitrage_opportunities),
            duration_ms=round(result.processing_time_ms, 1),
        )
        self.bus.emit(
            SYNC_COMPLETE,
            source_id=source_id,
            recordsProcessed=result.records_processed,
            recordsSkipped=result.records_skipped,
        )
        return result

    async def process_events(self, events: list[Any]) -> IngestionResult:
        """Validate, normalize and analyze an already-fetched payload."""
        result = IngestionResult(
            source_id=self.adapter.source_id,
            next_sync_time=self._now() + timedelta(seconds=self.next_sync_seconds),
        )

        for index, event in enumerate(events):
            findings = self.adapter.validate(event)
            if findings:
                result.findings.extend(_prefixed(findings, index))
                if any(f.severity == Severity.ERROR for f in findings):
                    result.records_skipped += 1
                    continue

            event_id = self.adapter.event_id(event)
            try:
                snapshots = self.adapter.normalize(event, self._now())
                await self._process_snapshots(snapshots, result)
            except Exception as e:
                self.logger.error("event_processing_failed", event_id=event_id, error=str(e))
                result.findings.append(ValidationFinding(
                    field="odds_processing",
                    message=f"Failed to process odds for event {event_id}: {e}",
                    value=event_id,
                    severity=Severity.ERROR,
                ))
                result.records_skipped += 1
                continue

            self.bus.emit(EVENT_PROCESSED, eventId=event_id, oddsSnapshots=len(snapshots))

        return result

    async def _process_snapshots(self, snapshots: list[OddsSnapshot], result: IngestionResult) -> None:
        for snapshot in snapshots:
            await self.sink.write_odds_snapshot(snapshot)

            alert = self.detector.detect(snapshot)
            if alert is not None:
                await self.sink.write_movement_alert(alert)
                result.movement_alerts.append(alert)

            result.records_processed += 1

        # Snapshots from one event all share a fight id
        if self.enable_arbitrage and len(snapshots) > 1:
            opportunity = self.scanner.scan(snapshots)
            if opportunity is not None:
                await self.sink.write_arbitrage_opportunity(opportunity)
                result.arbitrage_opportunities.append(opportunity)

    async def run_forever(
        self,
        interval_seconds: float,
        stop: asyncio.Event,
        on_result: Optional[Callable[[IngestionResult], Awaitable[None] | None]] = None,
    ) -> None:
        """
        Sync every ``interval_seconds`` until ``stop`` is set.

        A failed cycle is logged and the loop carries on with the next one.
        """
        while not stop.is_set():
            try:
                result = await self.sync()
            except IngestionError as e:
                self.logger.error("sync_cycle_failed", error=str(e))
            else:
                if on_result is not None:
                    maybe = on_result(result)
                    if asyncio.iscoroutine(maybe):
                        await maybe

            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass


def _prefixed(findings: list[ValidationFinding], index: int) -> list[ValidationFinding]:
    return [f.model_copy(update={"field": f"[{index}].{f.field}"}) for f in findings]
