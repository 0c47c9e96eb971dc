"""Provider adapters: fetch raw payloads and normalize them into snapshots."""

from fight_odds.adapters.odds_api import OddsAPIAdapter, SportsbookFilter, normalize_event, validate_event

__all__ = ["OddsAPIAdapter", "SportsbookFilter", "normalize_event", "validate_event"]
