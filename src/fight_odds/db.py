"""
Output sinks.

Stores:
- Odds snapshots
- Movement alerts
- Arbitrage opportunities

``Repository`` persists to SQLite; ``MemorySink`` keeps everything in lists.
Both satisfy the ``OddsSink`` protocol the ingestion job writes to.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional, Protocol

import aiosqlite

from fight_odds.models.alerts import ArbitrageOpportunity, MovementAlert
from fight_odds.models.odds import OddsSnapshot


class OddsSink(Protocol):
    async def write_odds_snapshot(self, snapshot: OddsSnapshot) -> None:
        ...

    async def write_movement_alert(self, alert: MovementAlert) -> None:
        ...

    async def write_arbitrage_opportunity(self, opportunity: ArbitrageOpportunity) -> None:
        ...


class MemorySink:
    """In-process sink, handy for dry runs."""

    def __init__(self) -> None:
        self.snapshots: list[OddsSnapshot] = []
        self.alerts: list[MovementAlert] = []
        self.opportunities: list[ArbitrageOpportunity] = []

    async def write_odds_snapshot(self, snapshot: OddsSnapshot) -> None:
        self.snapshots.append(snapshot)

    async def write_movement_alert(self, alert: MovementAlert) -> None:
        self.alerts.append(alert)

    async def write_arbitrage_opportunity(self, opportunity: ArbitrageOpportunity) -> None:
        self.opportunities.append(opportunity)


class Repository:
    """Async SQLite repository."""

    def __init__(self, db_path: str = "fight_odds.db") -> None:
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        """Initialize database and create tables."""
        self._conn = await aiosqlite.connect(self.db_path)
        await self._create_tables()

    async def close(self) -> None:
        """Close connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def _create_tables(self) -> None:
        """Create tables if they don't exist."""
        assert self._conn is not None

        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS odds_snapshots (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                fight_id TEXT,
                bookmaker TEXT,
                timestamp TEXT,
                fighter1_odds REAL,
                fighter2_odds REAL,
                data_json TEXT
            )
        """)

        await self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_snapshots_fight
            ON odds_snapshots (fight_id, bookmaker, timestamp)
        """)

        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS movement_alerts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                fight_id TEXT,
                bookmaker TEXT,
                movement_type TEXT,
                percentage_change REAL,
                timestamp TEXT,
                data_json TEXT
            )
        """)

        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS arbitrage_opportunities (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                fight_id TEXT,
                bookmakers TEXT,
                profit_pct REAL,
                detected_at TEXT,
                expires_at TEXT,
                data_json TEXT
            )
        """)

        await self._conn.commit()

    async def write_odds_snapshot(self, snapshot: OddsSnapshot) -> None:
        """Append an odds snapshot."""
        assert self._conn is not None

        await self._conn.execute(
            """
            INSERT INTO odds_snapshots
            (fight_id, bookmaker, timestamp, fighter1_odds, fighter2_odds, data_json)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                snapshot.fight_id,
                snapshot.bookmaker,
                snapshot.timestamp.isoformat(),
                snapshot.fighter1_odds,
                snapshot.fighter2_odds,
                snapshot.model_dump_json(),
            ),
        )
        await self._conn.commit()

    async def write_movement_alert(self, alert: MovementAlert) -> None:
        """Append a movement alert."""
        assert self._conn is not None

        await self._conn.execute(
            """
            INSERT INTO movement_alerts
            (fight_id, bookmaker, movement_type, percentage_change, timestamp, data_json)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                alert.fight_id,
                alert.bookmaker,
                alert.movement_type.value,
                alert.percentage_change,
                alert.timestamp.isoformat(),
                alert.model_dump_json(),
            ),
        )
        await self._conn.commit()

    async def write_arbitrage_opportunity(self, opportunity: ArbitrageOpportunity) -> None:
        """Append an arbitrage opportunity."""
        assert self._conn is not None

        await self._conn.execute(
            """
            INSERT INTO arbitrage_opportunities
            (fight_id, bookmakers, profit_pct, detected_at, expires_at, data_json)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                opportunity.fight_id,
                json.dumps(opportunity.bookmakers),
                opportunity.profit_pct,
                opportunity.detected_at.isoformat(),
                opportunity.expires_at.isoformat(),
                opportunity.model_dump_json(),
            ),
        )
        await self._conn.commit()

    async def get_snapshots(self, fight_id: str, bookmaker: Optional[str] = None) -> list[OddsSnapshot]:
        """Snapshot history for a fight, oldest first."""
        assert self._conn is not None

        if bookmaker:
            cursor = await self._conn.execute(
                "SELECT data_json FROM odds_snapshots WHERE fight_id = ? AND bookmaker = ? ORDER BY id",
                (fight_id, bookmaker),
            )
        else:
            cursor = await self._conn.execute(
                "SELECT data_json FROM odds_snapshots WHERE fight_id = ? ORDER BY id",
                (fight_id,),
            )
        rows = await cursor.fetchall()
        return [OddsSnapshot.model_validate_json(row[0]) for row in rows]

    async def get_recent_alerts(self, limit: int = 20) -> list[MovementAlert]:
        """Get recent movement alerts."""
        assert self._conn is not None

        cursor = await self._conn.execute(
            "SELECT data_json FROM movement_alerts ORDER BY id DESC LIMIT ?",
            (limit,),
        )
        rows = await cursor.fetchall()
        return [MovementAlert.model_validate_json(row[0]) for row in rows]

    async def get_active_opportunities(self, now: Optional[datetime] = None) -> list[ArbitrageOpportunity]:
        """Opportunities that have not yet expired, best profit first."""
        assert self._conn is not None

        now = now or datetime.now(timezone.utc)
        cursor = await self._conn.execute(
            "SELECT data_json FROM arbitrage_opportunities ORDER BY profit_pct DESC",
        )
        rows = await cursor.fetchall()
        opportunities = [ArbitrageOpportunity.model_validate_json(row[0]) for row in rows]
        return [o for o in opportunities if not o.is_expired(now)]

    async def __aenter__(self) -> Repository:
        await self.connect()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
