"""Tests for request building, ordering and the pipeline registry."""

import httpx
import pytest
from pydantic import ValidationError

from fight_odds.config import (
    THE_ODDS_API,
    AuthType,
    CircuitBreakerConfig,
    RateLimitConfig,
    RetryConfig,
    SourceConfig,
    get_settings,
    load_source_configs,
)
from fight_odds.errors import ConfigError
from fight_odds.events import CIRCUIT_BREAKER_RESET, RATE_LIMIT_HIT
from fight_odds.resilience.pipeline import PipelineRegistry, RequestPipeline


class TestBuildRequest:

    def test_api_key_in_query(self, make_pipeline):
        pipeline = make_pipeline(lambda r: httpx.Response(200))
        request = pipeline.build_request("GET", "odds", params={"regions": "us"})
        assert request.url.params["apiKey"] == "secret-key"
        assert request.url.params["regions"] == "us"
        assert request.url.path == "/v4/sports/mma_mixed_martial_arts/odds"

    def test_bearer_header(self, make_pipeline, source_config):
        config = source_config.model_copy(update={"auth_type": AuthType.BEARER})
        pipeline = make_pipeline(lambda r: httpx.Response(200), config=config)
        request = pipeline.build_request("GET", "odds")
        assert request.headers["Authorization"] == "Bearer secret-key"
        assert "apiKey" not in request.url.params

    def test_path_params_are_substituted(self, make_pipeline):
        pipeline = make_pipeline(lambda r: httpx.Response(200))
        request = pipeline.build_request("GET", "eventOdds", path_params={"eventId": "abc 123"})
        assert request.url.path == "/v4/sports/mma_mixed_martial_arts/events/abc 123/odds"
        assert "abc%20123" in str(request.url)

    def test_unknown_endpoint(self, make_pipeline):
        pipeline = make_pipeline(lambda r: httpx.Response(200))
        with pytest.raises(ConfigError, match="Endpoint 'nope' not found"):
            pipeline.build_request("GET", "nope")


class TestOrdering:

    @pytest.mark.asyncio
    async def test_every_attempt_takes_a_rate_limit_slot(self, make_pipeline):
        responses = iter([500, 500, 200])
        pipeline = make_pipeline(lambda r: httpx.Response(next(responses), json={}))

        await pipeline.get_json("odds")
        assert pipeline.rate_limiter.state.requests_this_minute == 3

        await pipeline.close()

    @pytest.mark.asyncio
    async def test_throttled_attempt_waits_then_sends(self, make_pipeline, source_config, clock, recorder):
        config = source_config.model_copy(update={
            "rate_limit": RateLimitConfig(requests_per_minute=1, requests_per_hour=100),
        })
        sent_at = []

        def handler(request):
            sent_at.append(clock())
            return httpx.Response(200, json={})

        pipeline = make_pipeline(handler, config=config)
        await pipeline.get_json("odds")
        await pipeline.get_json("odds")

        assert sent_at[1] - sent_at[0] == pytest.approx(60.0)
        assert len(recorder.named(RATE_LIMIT_HIT)) == 1

        await pipeline.close()

    @pytest.mark.asyncio
    async def test_status(self, make_pipeline):
        pipeline = make_pipeline(lambda r: httpx.Response(200, json={}))
        await pipeline.get_json("odds")

        status = pipeline.get_status()
        assert status["source_id"] == "TEST_SOURCE"
        assert status["circuit_state"] == "closed"
        assert status["failure_count"] == 0
        assert status["rate_limiter"]["requests_this_hour"] == 1

        await pipeline.close()


class TestRegistry:

    def test_built_from_resolved_configs(self, tmp_path):
        settings = get_settings(odds_api_key="k", sources_file=str(tmp_path / "missing.yaml"))
        registry = PipelineRegistry.from_configs(load_source_configs(settings))

        assert THE_ODDS_API in registry
        pipeline = registry.get(THE_ODDS_API)
        assert pipeline.config.api_key == "k"
        assert pipeline.config.rate_limit.requests_per_minute == 50
        assert pipeline.config.retry.max_retries == 3

    def test_unknown_source(self):
        with pytest.raises(ConfigError):
            PipelineRegistry().get("NOPE")

    @pytest.mark.asyncio
    async def test_reset_circuit_breaker(self, make_pipeline, source_config, recorder):
        config = source_config.model_copy(update={
            "retry": RetryConfig(max_retries=0),
            "circuit_breaker": CircuitBreakerConfig(failure_threshold=2, reset_timeout_seconds=60),
        })
        pipeline = make_pipeline(lambda r: httpx.Response(500), config=config)
        for _ in range(2):
            with pytest.raises(httpx.HTTPStatusError):
                await pipeline.get_json("odds")
        assert pipeline.get_status()["circuit_state"] == "open"

        registry = PipelineRegistry()
        registry.add(pipeline)
        registry.reset_circuit_breaker("TEST_SOURCE")

        assert registry.get_status("TEST_SOURCE")["circuit_state"] == "closed"
        assert registry.get_status("TEST_SOURCE")["failure_count"] == 0
        assert len(recorder.named(CIRCUIT_BREAKER_RESET)) == 1

        await registry.close()


class TestSourceConfig:

    def test_yaml_overrides_merge(self, tmp_path):
        path = tmp_path / "sources.yaml"
        path.write_text(
            "sources:\n"
            "  THE_ODDS_API:\n"
            "    rate_limit:\n"
            "      requests_per_minute: 10\n"
            "  BACKUP:\n"
            "    name: Backup\n"
            "    base_url: https://backup.test\n"
            "    endpoints:\n"
            "      odds: /odds\n"
        )
        configs = load_source_configs(get_settings(sources_file=str(path)))

        odds_api = configs[THE_ODDS_API]
        assert odds_api.rate_limit.requests_per_minute == 10
        assert odds_api.rate_limit.requests_per_hour == 500
        assert odds_api.endpoints["odds"] == "/sports/mma_mixed_martial_arts/odds"
        assert configs["BACKUP"].endpoint_url("odds") == "https://backup.test/odds"

    def test_invalid_yaml_values(self, tmp_path):
        path = tmp_path / "sources.yaml"
        path.write_text("sources:\n  THE_ODDS_API:\n    rate_limit:\n      requests_per_minute: 0\n")
        with pytest.raises(ConfigError):
            load_source_configs(get_settings(sources_file=str(path)))

    def test_validate_config_flags_missing_key(self):
        config = SourceConfig(
            source_id="X", name="X", base_url="https://x.test", auth_type=AuthType.API_KEY,
        )
        assert config.validate_config() == ["apikey auth configured but no API key set"]
        assert config.with_api_key("k").validate_config() == []

    def test_config_is_immutable(self, source_config):
        with pytest.raises(ValidationError):
            source_config.base_url = "https://other.test"


@pytest.mark.asyncio
async def test_pipeline_is_async_context_manager(source_config):
    async with RequestPipeline(source_config) as pipeline:
        assert pipeline.source_id == "TEST_SOURCE"
