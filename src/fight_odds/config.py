"""Configuration via pydantic-settings, plus per-source request configuration."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from fight_odds.errors import ConfigError


class AuthType(str, Enum):
    """How a source expects its credential."""
    API_KEY = "apikey"  # ?apiKey=... query parameter
    BEARER = "bearer"
    NONE = "none"


class RateLimitConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    requests_per_minute: int = Field(default=50, gt=0)
    requests_per_hour: int = Field(default=500, gt=0)


class RetryConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0)
    backoff_multiplier: float = Field(default=2.0, gt=0)
    max_backoff_ms: float = Field(default=15_000, gt=0)
    base_delay_ms: float = Field(default=1_000, gt=0)


class CircuitBreakerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    failure_threshold: int = Field(default=5, gt=0)
    reset_timeout_seconds: float = Field(default=60.0, gt=0)


class SourceConfig(BaseModel):
    """
    Immutable configuration for one upstream source.

    Resolved once at startup and handed to that source's RequestPipeline.
    Endpoint templates use ``{param}`` placeholders.
    """
    model_config = ConfigDict(frozen=True)

    source_id: str
    name: str = ""
    description: str = ""
    base_url: str
    endpoints: dict[str, str] = Field(default_factory=dict)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    api_key: Optional[str] = None
    auth_type: AuthType = AuthType.NONE
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=30.0, gt=0)

    def endpoint_url(self, endpoint: str, **params: str) -> str:
        """Build the absolute URL for a named endpoint, substituting path params."""
        template = self.endpoints.get(endpoint)
        if template is None:
            raise ConfigError(f"Endpoint '{endpoint}' not found for source '{self.source_id}'")

        url = self.base_url.rstrip("/") + template
        for key, value in params.items():
            url = url.replace(f"{{{key}}}", quote(str(value), safe=""))
        return url

    def validate_config(self) -> list[str]:
        """Return a list of configuration problems (empty when usable)."""
        problems: list[str] = []
        if not self.name:
            problems.append("Name is required")
        if not self.base_url:
            problems.append("Base URL is required")
        if self.auth_type != AuthType.NONE and not self.api_key:
            problems.append(f"{self.auth_type.value} auth configured but no API key set")
        return problems

    def with_api_key(self, api_key: str) -> SourceConfig:
        return self.model_copy(update={"api_key": api_key})


# ── Built-in sources ────────────────────────────────────────────────────────

THE_ODDS_API = "THE_ODDS_API"

DEFAULT_SOURCES: dict[str, dict] = {
    THE_ODDS_API: {
        "name": "The Odds API",
        "description": "Real-time MMA betting odds from multiple sportsbooks",
        "base_url": "https://api.the-odds-api.com/v4",
        "auth_type": "apikey",
        "endpoints": {
            "sports": "/sports",
            "odds": "/sports/mma_mixed_martial_arts/odds",
            "events": "/sports/mma_mixed_martial_arts/events",
            "eventOdds": "/sports/mma_mixed_martial_arts/events/{eventId}/odds",
            "usage": "/sports/mma_mixed_martial_arts/odds/usage",
        },
        "rate_limit": {"requests_per_minute": 50, "requests_per_hour": 500},
        "retry": {"max_retries": 3, "backoff_multiplier": 2, "max_backoff_ms": 15_000},
    },
}


class Settings(BaseSettings):
    """Global settings."""

    model_config = SettingsConfigDict(
        env_prefix="FIGHT_ODDS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Sources ─────────────────────────────────────────────────────────────
    odds_api_key: str = Field(default="", description="The Odds API key")
    sources_file: str = Field(default="sources.yaml", description="Optional YAML overrides for source configs")
    request_timeout_seconds: float = Field(default=30.0, description="Per-attempt network timeout")

    # ── Movement detection ──────────────────────────────────────────────────
    min_percentage_change: float = Field(default=5.0, description="Min moneyline move (%) to alert")
    steam_percentage: float = Field(default=10.0, description="Min same-direction move (%) for steam")
    alert_cooldown_seconds: float = Field(default=0.0, description="Min seconds between alerts per fight (0 = off)")
    movement_cache_size: int = Field(default=10_000, description="Max (fight, bookmaker) baselines kept")
    minimum_odds_value: float = Field(default=100.0, description="Moneylines below this magnitude are ignored")

    # ── Arbitrage ───────────────────────────────────────────────────────────
    enable_arbitrage_detection: bool = Field(default=True)
    min_arbitrage_profit: float = Field(default=2.0, description="Min guaranteed profit (%) to report")
    reference_stake: float = Field(default=1000.0, description="Total stake used for stake splits")
    arbitrage_ttl_seconds: float = Field(default=3600.0, description="Seconds until an opportunity is stale")

    # ── Bookmaker filtering ─────────────────────────────────────────────────
    include_bookmakers: list[str] = Field(default_factory=list)
    exclude_bookmakers: list[str] = Field(default_factory=list)
    priority_bookmakers: list[str] = Field(default_factory=list)

    # ── Scheduling ──────────────────────────────────────────────────────────
    poll_interval_seconds: float = Field(default=300.0, description="Seconds between sync cycles")

    # ── Persistence ─────────────────────────────────────────────────────────
    database_path: str = Field(default="fight_odds.db")

    # ── Observability ───────────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console", description="json or console")

    @property
    def odds_api_configured(self) -> bool:
        return bool(self.odds_api_key)

    @property
    def sources_path(self) -> Path:
        return Path(self.sources_file)


def get_settings(**overrides) -> Settings:  # type: ignore
    """Factory with optional overrides."""
    return Settings(**overrides)


def _merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_source_configs(
    settings: Settings,
    sources_path: Optional[Path] = None,
) -> dict[str, SourceConfig]:
    """
    Resolve every SourceConfig once at startup.

    Built-in defaults are overlaid with the optional YAML file
    (top-level ``sources:`` mapping keyed by source id), then credentials
    and the per-attempt timeout from settings are applied.
    """
    raw: dict[str, dict] = {k: dict(v) for k, v in DEFAULT_SOURCES.items()}

    path = sources_path or settings.sources_path
    if path.exists():
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        for source_id, override in (data.get("sources") or {}).items():
            if not isinstance(override, dict):
                raise ConfigError(f"Source '{source_id}' in {path} must be a mapping")
            raw[source_id] = _merge(raw.get(source_id, {}), override)

    configs: dict[str, SourceConfig] = {}
    for source_id, values in raw.items():
        values.setdefault("timeout_seconds", settings.request_timeout_seconds)
        try:
            config = SourceConfig(source_id=source_id, **values)
        except ValueError as e:
            raise ConfigError(f"Invalid configuration for source '{source_id}': {e}") from e
        configs[source_id] = config

    if settings.odds_api_key and THE_ODDS_API in configs:
        configs[THE_ODDS_API] = configs[THE_ODDS_API].with_api_key(settings.odds_api_key)

    return configs
