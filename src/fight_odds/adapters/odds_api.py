"""
The Odds API adapter.

Fetches MMA odds from multiple sportsbooks via The Odds API aggregator and
normalizes them into OddsSnapshot records.
https://the-odds-api.com/

All network access goes through the source's RequestPipeline; the
normalization functions below are pure.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import structlog

from fight_odds.models.ingestion import Severity, ValidationFinding
from fight_odds.models.odds import UNKNOWN_PRICE, MethodOdds, OddsSnapshot, RoundOdds
from fight_odds.resilience.pipeline import RequestPipeline

logger = structlog.get_logger()

MMA_SPORT_KEY = "mma_mixed_martial_arts"

H2H_MARKET = "h2h"
METHOD_MARKET = "fight_result_method"
ROUND_MARKET = "fight_result_round"

DEFAULT_MARKETS = [
    H2H_MARKET,
    METHOD_MARKET,
    ROUND_MARKET,
    "fight_result_time",
    "fight_to_go_distance",
    "total_rounds",
    "fighter_props",
]
DEFAULT_REGIONS = ["us", "us2", "uk", "au", "eu"]

SPORTSBOOK_NAMES = {
    "draftkings": "DraftKings",
    "fanduel": "FanDuel",
    "betmgm": "BetMGM",
    "caesars": "Caesars",
    "pointsbet": "PointsBet",
    "betrivers": "BetRivers",
    "unibet": "Unibet",
    "williamhill_us": "William Hill",
    "bovada": "Bovada",
    "mybookie": "MyBookie",
    "hardrockbet": "Hard Rock Bet",
    "espnbet": "ESPN BET",
    "betway": "Betway",
    "wynnbet": "WynnBET",
    "barstool": "Barstool Sportsbook",
    "superbook": "SuperBook",
    "twinspires": "TwinSpires",
    "foxbet": "FOX Bet",
    "tipico": "Tipico",
    "betfred": "Betfred",
}

# Outcome-name keywords per method-of-victory bucket
_METHOD_KEYWORDS = {
    "ko_tko": ("ko", "knockout", "tko"),
    "submission": ("submission", "sub"),
    "decision": ("decision", "points"),
}

_ROUND_LABELS = {
    1: ("Round 1", "1st"),
    2: ("Round 2", "2nd"),
    3: ("Round 3", "3rd"),
    4: ("Round 4", "4th"),
    5: ("Round 5", "5th"),
}


@dataclass
class SportsbookFilter:
    """Include / exclude / priority ordering over bookmaker keys."""
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    priority: list[str] = field(default_factory=list)

    def apply(self, bookmakers: list[dict]) -> list[dict]:
        selected = bookmakers
        if self.include:
            selected = [b for b in selected if b.get("key") in self.include]
        if self.exclude:
            selected = [b for b in selected if b.get("key") not in self.exclude]
        if self.priority:
            first = [b for b in selected if b.get("key") in self.priority]
            rest = [b for b in selected if b.get("key") not in self.priority]
            selected = first + rest
        return selected


# ── Normalization (pure) ────────────────────────────────────────────────────


def normalize_sportsbook_name(key: str) -> str:
    return SPORTSBOOK_NAMES.get(key, key)


def parse_commence_time(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def generate_fight_id(event: dict) -> str:
    """
    Stable fight id from fighter names and event date.

    Fighter order is sorted so home/away swaps map to the same id.
    """
    fighters = sorted([event.get("home_team", ""), event.get("away_team", "")])
    commence = parse_commence_time(event.get("commence_time"))
    date_str = commence.date().isoformat() if commence else "unknown"
    raw = f"odds_api_{'_vs_'.join(fighters)}_{date_str}"
    return re.sub(r"[^a-zA-Z0-9_]", "_", raw)


def _find_market(bookmaker: dict, key: str) -> Optional[dict]:
    for market in bookmaker.get("markets") or []:
        if market.get("key") == key:
            return market
    return None


def _price(outcome: Optional[dict]) -> float:
    if outcome is None:
        return UNKNOWN_PRICE
    price = outcome.get("price")
    if isinstance(price, bool) or not isinstance(price, (int, float)):
        return UNKNOWN_PRICE
    return float(price)


def _outcome_named(market: dict, name: str) -> Optional[dict]:
    for outcome in market.get("outcomes") or []:
        if outcome.get("name") == name:
            return outcome
    return None


def _outcome_with_keyword(market: Optional[dict], keywords: tuple[str, ...]) -> Optional[dict]:
    if market is None:
        return None
    for outcome in market.get("outcomes") or []:
        name = str(outcome.get("name", "")).lower()
        words = set(re.split(r"[^a-z0-9]+", name))
        if any(k in words for k in keywords):
            return outcome
    return None


def _outcome_with_label(market: Optional[dict], labels: tuple[str, ...]) -> Optional[dict]:
    if market is None:
        return None
    for outcome in market.get("outcomes") or []:
        name = str(outcome.get("name", ""))
        if any(label in name for label in labels):
            return outcome
    return None


def extract_method_odds(market: Optional[dict]) -> MethodOdds:
    return MethodOdds(**{
        bucket: _price(_outcome_with_keyword(market, keywords))
        for bucket, keywords in _METHOD_KEYWORDS.items()
    })


def extract_round_odds(market: Optional[dict]) -> Optional[RoundOdds]:
    if market is None:
        return None

    def price_for(round_no: int) -> float:
        return _price(_outcome_with_label(market, _ROUND_LABELS[round_no]))

    def optional_price_for(round_no: int) -> Optional[float]:
        outcome = _outcome_with_label(market, _ROUND_LABELS[round_no])
        return _price(outcome) if outcome is not None else None

    return RoundOdds(
        round1=price_for(1),
        round2=price_for(2),
        round3=price_for(3),
        round4=optional_price_for(4),
        round5=optional_price_for(5),
    )


def normalize_bookmaker(event: dict, bookmaker: dict, timestamp: datetime) -> Optional[OddsSnapshot]:
    """
    One bookmaker's markets -> one snapshot.

    Returns None unless the h2h market prices both fighters by name; missing
    method or round markets degrade to UNKNOWN_PRICE.
    """
    h2h = _find_market(bookmaker, H2H_MARKET)
    if h2h is None or len(h2h.get("outcomes") or []) != 2:
        return None

    home = event.get("home_team", "")
    away = event.get("away_team", "")
    fighter1_odds = _price(_outcome_named(h2h, home))
    fighter2_odds = _price(_outcome_named(h2h, away))
    if fighter1_odds == UNKNOWN_PRICE or fighter2_odds == UNKNOWN_PRICE:
        logger.debug(
            "moneyline_unmatched",
            event_id=event.get("id"),
            bookmaker=bookmaker.get("key"),
            outcomes=[o.get("name") for o in h2h["outcomes"] if isinstance(o, dict)],
        )
        return None

    return OddsSnapshot(
        fight_id=generate_fight_id(event),
        bookmaker=normalize_sportsbook_name(bookmaker.get("key", "")),
        timestamp=timestamp,
        fighter1_odds=fighter1_odds,
        fighter2_odds=fighter2_odds,
        method=extract_method_odds(_find_market(bookmaker, METHOD_MARKET)),
        rounds=extract_round_odds(_find_market(bookmaker, ROUND_MARKET)),
        event_id=event.get("id", ""),
        fighter1=home,
        fighter2=away,
        commence_time=parse_commence_time(event.get("commence_time")),
    )


def normalize_event(event: dict, timestamp: datetime) -> list[OddsSnapshot]:
    """
    Raw event payload -> zero or more snapshots (one per usable bookmaker).

    A malformed bookmaker entry is logged and skipped; it never fails the
    whole event.
    """
    snapshots: list[OddsSnapshot] = []
    bookmakers = event.get("bookmakers")
    if not isinstance(bookmakers, list):
        return snapshots

    for bookmaker in bookmakers:
        if not isinstance(bookmaker, dict):
            continue
        try:
            snapshot = normalize_bookmaker(event, bookmaker, timestamp)
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning(
                "bookmaker_normalize_failed",
                event_id=event.get("id"),
                bookmaker=bookmaker.get("key"),
                error=str(e),
            )
            continue
        if snapshot is not None:
            snapshots.append(snapshot)

    return snapshots


def validate_event(event: Any) -> list[ValidationFinding]:
    """Structural checks on one raw event. Errors mean skip; warnings mean keep."""
    findings: list[ValidationFinding] = []

    def finding(field_name: str, message: str, value: Any, severity: Severity = Severity.ERROR) -> None:
        findings.append(ValidationFinding(field=field_name, message=message, value=value, severity=severity))

    if not isinstance(event, dict):
        finding("event", "Event must be an object", event)
        return findings

    if not event.get("id"):
        finding("id", "Event ID is required", event.get("id"))

    if event.get("sport_key") != MMA_SPORT_KEY:
        finding("sport_key", f"Invalid sport key, expected {MMA_SPORT_KEY}", event.get("sport_key"), Severity.WARNING)

    commence = event.get("commence_time")
    if not commence:
        finding("commence_time", "Event commence time is required", commence)
    elif parse_commence_time(commence) is None:
        finding("commence_time", "Invalid commence time format", commence)

    if not event.get("home_team") or not event.get("away_team"):
        finding(
            "teams",
            "Both home and away fighters are required",
            {"home": event.get("home_team"), "away": event.get("away_team")},
        )

    bookmakers = event.get("bookmakers")
    if bookmakers is not None:
        if not isinstance(bookmakers, list):
            finding("bookmakers", "Bookmakers must be an array", bookmakers)
        else:
            for i, bookmaker in enumerate(bookmakers):
                if not isinstance(bookmaker, dict) or not bookmaker.get("key") or not bookmaker.get("title"):
                    finding(f"bookmakers[{i}]", "Bookmaker key and title are required", bookmaker)
                    continue
                if not bookmaker.get("markets"):
                    finding(
                        f"bookmakers[{i}].markets",
                        "Bookmaker must have at least one market",
                        bookmaker.get("markets"),
                        Severity.WARNING,
                    )

    return findings


# ── Adapter ─────────────────────────────────────────────────────────────────


class OddsAPIAdapter:
    """
    The Odds API adapter for fetching sportsbook odds.

    Read-only, no execution capabilities.
    """

    def __init__(
        self,
        pipeline: RequestPipeline,
        markets: Optional[list[str]] = None,
        regions: Optional[list[str]] = None,
        sportsbook_filter: Optional[SportsbookFilter] = None,
        odds_format: str = "american",
    ) -> None:
        self.pipeline = pipeline
        self.source_id = pipeline.source_id
        self.markets = markets or list(DEFAULT_MARKETS)
        self.regions = regions or list(DEFAULT_REGIONS)
        self.sportsbook_filter = sportsbook_filter or SportsbookFilter()
        self.odds_format = odds_format

    def build_params(self) -> dict[str, str]:
        params = {
            "regions": ",".join(self.regions),
            "markets": ",".join(self.markets),
            "oddsFormat": self.odds_format,
            "dateFormat": "iso",
        }
        if self.sportsbook_filter.include:
            params["bookmakers"] = ",".join(self.sportsbook_filter.include)
        return params

    async def get_odds(self) -> list[dict]:
        """
        Get odds for all upcoming MMA events.

        Returns list of events with odds:
        [
            {
                "id": "event_id",
                "sport_key": "mma_mixed_martial_arts",
                "commence_time": "...",
                "home_team": "...",
                "away_team": "...",
                "bookmakers": [
                    {
                        "key": "draftkings",
                        "title": "DraftKings",
                        "markets": [
                            {"key": "h2h", "outcomes": [{"name": "...", "price": -150}, ...]}
                        ]
                    },
                    ...
                ]
            },
            ...
        ]
        """
        data = await self.pipeline.get_json("odds", params=self.build_params())
        return data if isinstance(data, list) else [data]

    async def get_event_odds(self, event_id: str) -> list[dict]:
        """Get odds for a single event."""
        data = await self.pipeline.get_json(
            "eventOdds", params=self.build_params(), path_params={"eventId": event_id}
        )
        return data if isinstance(data, list) else [data]

    async def list_events(self) -> list[dict]:
        """List upcoming MMA events without odds (cheaper)."""
        data = await self.pipeline.get_json("events")
        return data if isinstance(data, list) else [data]

    async def get_usage(self) -> dict:
        """Quota usage as reported by the provider."""
        response = await self.pipeline.request("GET", "usage")
        usage = {
            "requests_remaining": response.headers.get("x-requests-remaining"),
            "requests_used": response.headers.get("x-requests-used"),
        }
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            usage.update(body)
        return usage

    def filter_bookmakers(self, event: dict) -> dict:
        bookmakers = event.get("bookmakers")
        if not isinstance(bookmakers, list):
            return event
        valid = [b for b in bookmakers if isinstance(b, dict)]
        return {**event, "bookmakers": self.sportsbook_filter.apply(valid)}

    def validate(self, event: Any) -> list[ValidationFinding]:
        return validate_event(event)

    def normalize(self, event: dict, timestamp: datetime) -> list[OddsSnapshot]:
        return normalize_event(self.filter_bookmakers(event), timestamp)

    def event_id(self, event: Any) -> str:
        return event.get("id", "") if isinstance(event, dict) else ""
