"""
Request pipeline: rate limiter -> circuit breaker -> retry -> transport.

One pipeline per upstream source. Connectors never talk to the network
directly; they call ``RequestPipeline.request``.
"""

from __future__ import annotations

import asyncio
import random
import time
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog

from fight_odds.config import AuthType, SourceConfig
from fight_odds.errors import CircuitOpenError, ConfigError
from fight_odds.events import REQUEST_ERROR, EventBus
from fight_odds.observability.logging import redact_secrets
from fight_odds.resilience.circuit_breaker import CircuitBreaker
from fight_odds.resilience.rate_limiter import RateLimiter
from fight_odds.resilience.retry import RetryPolicy
from fight_odds.resilience.transport import HttpxTransport, Transport

logger = structlog.get_logger()


class RequestPipeline:
    """
    Resilient outbound calls for a single source.

    Every physical attempt takes a rate-limit slot first, then passes the
    breaker check, then hits the transport; the outcome is reported back to
    the breaker. The retry policy wraps the whole attempt, so a half-open
    trial is exactly one network call and a breaker that opens mid-retry
    turns the next attempt into a fast CircuitOpenError.
    """

    def __init__(
        self,
        config: SourceConfig,
        transport: Optional[Transport] = None,
        bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
        shutdown: Optional[asyncio.Event] = None,
    ) -> None:
        self.config = config
        self.source_id = config.source_id
        self.bus = bus or EventBus()
        self.transport: Transport = transport or HttpxTransport(
            timeout_seconds=config.timeout_seconds,
            headers=config.headers,
        )

        self.rate_limiter = RateLimiter(
            self.source_id, config.rate_limit, bus=self.bus, clock=clock, sleep=sleep
        )
        self.circuit_breaker = CircuitBreaker(
            self.source_id, config.circuit_breaker, bus=self.bus, clock=clock
        )
        self.retry_policy = RetryPolicy(
            self.source_id, config.retry, bus=self.bus, sleep=sleep, rng=rng, shutdown=shutdown
        )
        self.logger = logger.bind(component="pipeline", source_id=self.source_id)

    def build_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        path_params: Optional[dict[str, str]] = None,
    ) -> httpx.Request:
        url = self.config.endpoint_url(endpoint, **(path_params or {}))
        query = dict(params or {})
        headers = dict(self.config.headers)

        if self.config.auth_type == AuthType.API_KEY and self.config.api_key:
            query["apiKey"] = self.config.api_key
        elif self.config.auth_type == AuthType.BEARER and self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        return httpx.Request(method, url, params=query, headers=headers)

    async def _attempt(self, request: httpx.Request) -> httpx.Response:
        await self.rate_limiter.acquire()
        self.circuit_breaker.before_call()

        try:
            response = await self.transport.send(request)
        except asyncio.CancelledError:
            # Abandoned by the caller; not the upstream's fault
            self.circuit_breaker.state.trial_in_flight = False
            raise
        except Exception as e:
            self.circuit_breaker.on_failure()
            self.logger.warning("request_failed", url=str(request.url.copy_remove_param("apiKey")), error=str(e))
            self.bus.emit(REQUEST_ERROR, source_id=self.source_id, error=redact_secrets(str(e)))
            raise

        self.circuit_breaker.on_success()
        return response

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Send a prepared request through the full resilience stack."""
        try:
            return await self.retry_policy.execute(lambda: self._attempt(request))
        except CircuitOpenError:
            self.logger.warning("request_rejected_circuit_open")
            raise

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        path_params: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        return await self.send(self.build_request(method, endpoint, params, path_params))

    async def get_json(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        path_params: Optional[dict[str, str]] = None,
    ) -> Any:
        response = await self.request("GET", endpoint, params=params, path_params=path_params)
        return response.json()

    def get_status(self) -> dict:
        return {
            "source_id": self.source_id,
            "circuit_state": self.circuit_breaker.current_state.value,
            "failure_count": self.circuit_breaker.failure_count,
            "rate_limiter": self.rate_limiter.snapshot(),
        }

    def reset_circuit_breaker(self) -> None:
        self.circuit_breaker.reset()

    async def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> RequestPipeline:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()


class PipelineRegistry:
    """One RequestPipeline per source, built from resolved configs."""

    def __init__(self, pipelines: Optional[dict[str, RequestPipeline]] = None) -> None:
        self._pipelines: dict[str, RequestPipeline] = dict(pipelines or {})

    @classmethod
    def from_configs(
        cls,
        configs: dict[str, SourceConfig],
        bus: Optional[EventBus] = None,
        shutdown: Optional[asyncio.Event] = None,
    ) -> PipelineRegistry:
        bus = bus or EventBus()
        return cls({
            source_id: RequestPipeline(config, bus=bus, shutdown=shutdown)
            for source_id, config in configs.items()
        })

    def add(self, pipeline: RequestPipeline) -> None:
        self._pipelines[pipeline.source_id] = pipeline

    def get(self, source_id: str) -> RequestPipeline:
        try:
            return self._pipelines[source_id]
        except KeyError:
            raise ConfigError(f"No pipeline configured for source '{source_id}'") from None

    def get_status(self, source_id: str) -> dict:
        return self.get(source_id).get_status()

    def statuses(self) -> list[dict]:
        return [p.get_status() for p in self._pipelines.values()]

    def reset_circuit_breaker(self, source_id: str) -> None:
        self.get(source_id).reset_circuit_breaker()

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._pipelines

    async def close(self) -> None:
        for pipeline in self._pipelines.values():
            await pipeline.close()
