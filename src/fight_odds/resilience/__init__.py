"""Outbound-request resilience: throttling, circuit breaking, retries."""

from fight_odds.resilience.circuit_breaker import CircuitBreaker, CircuitState
from fight_odds.resilience.pipeline import PipelineRegistry, RequestPipeline
from fight_odds.resilience.rate_limiter import RateLimiter
from fight_odds.resilience.retry import RetryPolicy, is_retryable
from fight_odds.resilience.transport import HttpxTransport, Transport

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "PipelineRegistry",
    "RequestPipeline",
    "RateLimiter",
    "RetryPolicy",
    "is_retryable",
    "HttpxTransport",
    "Transport",
]
