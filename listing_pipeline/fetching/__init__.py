"""
Resilient fetch layer exports.
"""

from listing_pipeline.fetching.circuit_breaker import CircuitBreaker, CircuitState
from listing_pipeline.fetching.fetcher import (
    FetchResult,
    ResilientFetcher,
    categorize_error,
    clamp_timeout,
)
from listing_pipeline.fetching.rate_limiter import RateLimiterState, TokenBucketRateLimiter
from listing_pipeline.fetching.retry import backoff_delay_ms, retry_call

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "FetchResult",
    "RateLimiterState",
    "ResilientFetcher",
    "TokenBucketRateLimiter",
    "backoff_delay_ms",
    "categorize_error",
    "clamp_timeout",
    "retry_call",
]
