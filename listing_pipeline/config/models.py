"""
Scraping and queue configuration models.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Union
from urllib.parse import quote, urlsplit, urlunsplit

from listing_pipeline.domain.records import SourceKind


@dataclass(frozen=True)
class RateLimitConfig:
    """
    Token reservoir sizing for one source.
    """

    requests_per_window: int
    window_ms: int
    max_concurrent: int = 1


@dataclass(frozen=True)
class RetryPolicy:
    """
    Capped exponential backoff for transient fetch failures.
    """

    max_retries: int
    base_delay_ms: int
    max_delay_ms: int
    jitter_ratio: float = 0.0


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    reset_timeout_ms: int = 60_000


@dataclass(frozen=True)
class ProxyConfig:
    """
    Outbound proxy, optionally with basic auth.
    """

    url: str
    username: str | None = None
    password: str | None = None

    def proxy_url(self) -> str:
        if not self.username:
            return self.url
        parts = urlsplit(self.url)
        credentials = quote(self.username, safe="")
        if self.password:
            credentials = f"{credentials}:{quote(self.password, safe='')}"
        netloc = f"{credentials}@{parts.hostname or ''}"
        if parts.port:
            netloc = f"{netloc}:{parts.port}"
        return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))

    def as_requests_proxies(self) -> dict[str, str]:
        url = self.proxy_url()
        return {"http": url, "https": url}


@dataclass(frozen=True)
class TechnologySelectors:
    listing: str
    title: str
    description: str
    inventors: str | None = None
    patent_status: str | None = None
    categories: str | None = None
    publication_date: str | None = None
    contact_info: str | None = None
    trl: str | None = None
    filing_date: str | None = None
    keywords: str | None = None


@dataclass(frozen=True)
class GrantSelectors:
    listing: str
    title: str
    description: str
    amount: str | None = None
    deadline: str | None = None
    agency: str | None = None
    requirements: str | None = None
    requirement_key: str = ".requirement-key"
    requirement_value: str = ".requirement-value"
    eligibility: str | None = None
    focus_areas: str | None = None
    application_link: str | None = "a.apply-link"


@dataclass(frozen=True)
class UniversitySelectors:
    listing_container: str
    title: str
    description: str
    patent_status: str | None = None
    inventors: str | None = None
    filing_date: str | None = None
    keywords: str | None = None


FieldSelectors = Union[TechnologySelectors, GrantSelectors, UniversitySelectors]

DEFAULT_TOPICS = {
    SourceKind.TECHNOLOGY.value: "technology.new",
    SourceKind.UNIVERSITY.value: "technology.new",
    SourceKind.GRANT.value: "grant.new",
}


@dataclass(frozen=True)
class ScraperConfig:
    """
    Fully resolved configuration for one scraper instance.
    """

    source_name: str
    source_kind: SourceKind
    source_url: str
    field_selectors: FieldSelectors
    rate_limit: RateLimitConfig
    retry_policy: RetryPolicy
    circuit_breaker: CircuitBreakerConfig
    publish_retry: RetryPolicy
    timeout_seconds: float
    user_agent: str
    headers: Mapping[str, str] = field(default_factory=dict)
    proxy: ProxyConfig | None = None
    university: str | None = None
    agency: str | None = None
    grant_type: str | None = None
    security_level: str | None = None
    topic: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))


@dataclass(frozen=True)
class ValidationSettings:
    min_description_length: int = 100
    max_amount_threshold: float = 10_000_000.0
    min_deadline_days: int = 7


@dataclass(frozen=True)
class ScraperSettings:
    """
    Runtime settings for scraping, read from the environment.
    """

    sources_config_path: str
    user_agent: str
    accept_language: str
    timeout_seconds: float
    rate_limit: RateLimitConfig
    retry_policy: RetryPolicy
    circuit_breaker: CircuitBreakerConfig
    publish_retry: RetryPolicy
    metrics_interval_seconds: float
    max_parallel_sources: int
    validation: ValidationSettings = field(default_factory=ValidationSettings)
    proxy: ProxyConfig | None = None


@dataclass(frozen=True)
class QueueSettings:
    """
    Kafka connection, producer and consumer settings.
    """

    brokers: tuple[str, ...]
    client_id: str
    ssl: bool = False
    sasl_mechanism: str | None = None
    sasl_username: str | None = None
    sasl_password: str | None = None
    publish_timeout_seconds: float = 30.0
    connection_timeout_ms: int = 10_000
    session_timeout_ms: int = 30_000
    consumer_group_id: str = "listing-indexer"
    max_batch_size: int = 500
    max_wait_ms: int = 1_000
    max_bytes_per_partition: int = 1_048_576
    partitions_consumed_concurrently: int = 3
    consumer_max_retries: int = 3
    consumer_backoff_ms: int = 500
    consumer_backoff_multiplier: float = 2.0
    dead_letter_topic: str = "listings.dead-letter"
    dead_letter_max_attempts: int = 5
    topics: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_TOPICS))

    def topic_for(self, kind: SourceKind | str) -> str:
        key = kind.value if isinstance(kind, SourceKind) else str(kind)
        return self.topics[key]
