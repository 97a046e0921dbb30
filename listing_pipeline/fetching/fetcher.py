"""
Rate-limited, circuit-broken HTTP fetcher for one listing source.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import requests

from listing_pipeline.config.models import ScraperConfig
from listing_pipeline.errors import (
    CircuitOpenError,
    FetchError,
    NetworkError,
    ParseError,
    ProxyError,
    RateLimitError,
    ScrapeCancelledError,
)
from listing_pipeline.fetching.circuit_breaker import CircuitBreaker, CircuitState
from listing_pipeline.fetching.rate_limiter import RateLimiterState, TokenBucketRateLimiter
from listing_pipeline.fetching.retry import retry_call
from listing_pipeline.logging_utils import elapsed_ms, log_event
from listing_pipeline.observability import MetricsSink, NullMetricsSink

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {500, 502, 503, 504}
MIN_TIMEOUT_SECONDS = 1.0
MAX_TIMEOUT_SECONDS = 60.0


@dataclass(frozen=True)
class FetchResult:
    """
    Raw response body plus status metadata for one scrape cycle.
    """

    url: str
    body: str
    status_code: int
    latency_ms: int
    attempts: int = 1
    headers: dict[str, str] = field(default_factory=dict)


def clamp_timeout(seconds: float | None) -> float:
    if seconds is None:
        return MAX_TIMEOUT_SECONDS
    return min(MAX_TIMEOUT_SECONDS, max(MIN_TIMEOUT_SECONDS, float(seconds)))


def categorize_error(exc: BaseException) -> str:
    """
    Map an exception to the category used in logs and metrics labels.
    """

    if isinstance(exc, RateLimitError):
        return "rate_limit"
    if isinstance(exc, ProxyError):
        return "proxy"
    if isinstance(exc, CircuitOpenError):
        return "circuit_open"
    if isinstance(exc, NetworkError):
        return "network"
    if isinstance(exc, ParseError):
        return "parse"
    return "unknown"


def _counts_against_circuit(exc: Exception) -> bool:
    # Locally refused tokens and cancelled waits say nothing about the origin.
    if isinstance(exc, ScrapeCancelledError):
        return False
    return not (isinstance(exc, RateLimitError) and exc.status_code is None)


def _is_retryable(exc: Exception) -> bool:
    return isinstance(exc, NetworkError) and exc.retryable


class ResilientFetcher:
    """
    Issues the GET for one source through its token reservoir, concurrency
    bound, circuit breaker and retry policy.

    The reservoir and breaker belong to this instance; every call made
    through it shares them.
    """

    def __init__(
        self,
        *,
        config: ScraperConfig,
        session: requests.Session | None = None,
        metrics: MetricsSink | None = None,
        cancel_event: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        self.config = config
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._metrics = metrics or NullMetricsSink()
        self._cancel_event = cancel_event or threading.Event()
        self._sleep = sleep
        self._labels = {"source": config.source_name, "kind": config.source_kind.value}

        self._rate_limiter = TokenBucketRateLimiter(
            capacity=config.rate_limit.requests_per_window,
            refill_interval_ms=config.rate_limit.window_ms,
            source=config.source_name,
            clock=clock,
        )
        self._circuit = CircuitBreaker(
            failure_threshold=config.circuit_breaker.failure_threshold,
            reset_timeout_ms=config.circuit_breaker.reset_timeout_ms,
            source=config.source_name,
            is_failure=_counts_against_circuit,
            clock=clock,
        )
        self._concurrency = threading.BoundedSemaphore(max(1, config.rate_limit.max_concurrent))

        self.timeout_seconds = clamp_timeout(config.timeout_seconds)
        self.request_headers = {
            "User-Agent": config.user_agent,
            "Accept": "text/html,application/xhtml+xml",
            **config.headers,
        }
        self._proxies = config.proxy.as_requests_proxies() if config.proxy else None

    @property
    def circuit_state(self) -> CircuitState:
        return self._circuit.state

    @property
    def rate_limiter_state(self) -> RateLimiterState:
        return self._rate_limiter.state

    def fetch(self) -> FetchResult:
        """
        Fetch the configured source URL, retrying transient network failures.
        """

        started = time.monotonic()
        attempts = 0

        def attempt_once() -> tuple[requests.Response, int]:
            nonlocal attempts
            attempts += 1
            return self._circuit.call(self._get)

        try:
            response, latency_ms = retry_call(
                attempt_once,
                policy=self.config.retry_policy,
                should_retry=_is_retryable,
                cancel_event=self._cancel_event,
                sleep=self._sleep,
            )
        except FetchError as exc:
            log_event(
                logger,
                logging.ERROR,
                "fetch_failed",
                source=self.config.source_name,
                url=self.config.source_url,
                error_type=categorize_error(exc),
                status_code=exc.status_code,
                attempts=attempts,
                duration_ms=elapsed_ms(started),
                error=str(exc),
            )
            raise

        log_event(
            logger,
            logging.INFO,
            "fetch_succeeded",
            source=self.config.source_name,
            url=self.config.source_url,
            status_code=response.status_code,
            attempts=attempts,
            duration_ms=elapsed_ms(started),
        )
        return FetchResult(
            url=str(response.url or self.config.source_url),
            body=response.text,
            status_code=response.status_code,
            latency_ms=latency_ms,
            attempts=attempts,
            headers=dict(response.headers),
        )

    def drain(self) -> None:
        """
        Refuse new requests; in-flight calls complete or time out.
        """

        self._rate_limiter.drain()

    def close(self) -> None:
        self.drain()
        if self._owns_session:
            self._session.close()

    def _get(self) -> tuple[requests.Response, int]:
        self._rate_limiter.acquire(cancel_event=self._cancel_event)
        with self._concurrency:
            started = time.monotonic()
            try:
                response = self._session.get(
                    self.config.source_url,
                    headers=self.request_headers,
                    timeout=self.timeout_seconds,
                    proxies=self._proxies,
                    allow_redirects=True,
                )
            except requests.exceptions.ProxyError as exc:
                self._record_failure("proxy")
                raise ProxyError(
                    f"Proxy failure for {self.config.source_url}: {exc}",
                    source=self.config.source_name,
                ) from exc
            except (requests.Timeout, requests.ConnectionError) as exc:
                self._record_failure("network")
                raise NetworkError(
                    f"Network failure for {self.config.source_url}: {exc}",
                    source=self.config.source_name,
                ) from exc
            except requests.RequestException as exc:
                self._record_failure("network")
                raise NetworkError(
                    f"Request to {self.config.source_url} could not be sent: {exc}",
                    source=self.config.source_name,
                    retryable=False,
                ) from exc
            latency_ms = elapsed_ms(started)

        self._metrics.counter_inc("scraper_requests_total", self._labels)
        self._metrics.gauge_set("scraper_request_latency_ms", float(latency_ms), self._labels)
        self._raise_for_status(response)
        return response, latency_ms

    def _raise_for_status(self, response: requests.Response) -> None:
        status_code = response.status_code
        if status_code < 400:
            return

        source = self.config.source_name
        if status_code == 429:
            self._record_failure("rate_limit")
            raise RateLimitError(
                f"Origin throttled the request (status={status_code}).",
                source=source,
                status_code=status_code,
            )
        if status_code == 407:
            self._record_failure("proxy")
            raise ProxyError(
                "Proxy authentication required (status=407).",
                source=source,
                status_code=status_code,
            )
        self._record_failure("network")
        raise NetworkError(
            f"Unexpected status={status_code} for {self.config.source_url}",
            source=source,
            status_code=status_code,
            retryable=status_code in RETRYABLE_STATUS_CODES,
        )

    def _record_failure(self, error_type: str) -> None:
        self._metrics.counter_inc(
            "scraper_request_failures_total",
            {**self._labels, "error_type": error_type},
        )
