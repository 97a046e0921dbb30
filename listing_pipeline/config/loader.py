"""
Environment + JSON config loader for listing scrapers and the queue.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

from listing_pipeline.config.env import (
    get_bool_env,
    get_float_env,
    get_int_env,
    get_list_env,
    get_optional_str_env,
    get_str_env,
    load_env_files,
    project_root,
)
from listing_pipeline.config.models import (
    CircuitBreakerConfig,
    ProxyConfig,
    QueueSettings,
    RateLimitConfig,
    RetryPolicy,
    ScraperSettings,
    ValidationSettings,
)

DEFAULT_USER_AGENT = "ListingPipelineBot/1.0 (+https://example.com/bot)"


@dataclass(frozen=True)
class SourceDefinition:
    """
    One configured source: its kind, a display name and raw factory options.
    """

    kind: str
    name: str
    options: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True


def _resolve_config_path(raw_path: str) -> Path:
    candidate = Path(raw_path)
    if candidate.is_absolute():
        return candidate
    return (project_root() / candidate).resolve()


@lru_cache(maxsize=1)
def get_scraper_settings() -> ScraperSettings:
    """
    Return cached scraper settings from environment variables.
    """

    load_env_files()
    config_path = get_str_env("SCRAPER_SOURCES_CONFIG_PATH", "config/sources.json")

    base_delay_ms = max(1, get_int_env("SCRAPER_RETRY_BACKOFF_MS", 2000))
    proxy_url = get_optional_str_env("SCRAPER_PROXY_URL")
    proxy = None
    if proxy_url:
        proxy = ProxyConfig(
            url=proxy_url,
            username=get_optional_str_env("SCRAPER_PROXY_USERNAME"),
            password=get_optional_str_env("SCRAPER_PROXY_PASSWORD"),
        )

    return ScraperSettings(
        sources_config_path=str(_resolve_config_path(config_path)),
        user_agent=get_str_env("SCRAPER_USER_AGENT", DEFAULT_USER_AGENT),
        accept_language=get_str_env("SCRAPER_ACCEPT_LANGUAGE", "en-US,en;q=0.9"),
        timeout_seconds=min(60.0, max(1.0, get_float_env("SCRAPER_TIMEOUT_SECONDS", 35.0))),
        rate_limit=RateLimitConfig(
            requests_per_window=max(1, get_int_env("SCRAPER_RATE_LIMIT_REQUESTS", 60)),
            window_ms=max(1, get_int_env("SCRAPER_RATE_LIMIT_WINDOW_MS", 60_000)),
            max_concurrent=max(1, get_int_env("SCRAPER_MAX_CONCURRENT", 1)),
        ),
        retry_policy=RetryPolicy(
            max_retries=max(0, get_int_env("SCRAPER_RETRY_MAX_ATTEMPTS", 3)),
            base_delay_ms=base_delay_ms,
            max_delay_ms=max(
                base_delay_ms,
                get_int_env("SCRAPER_RETRY_MAX_BACKOFF_MS", 30_000),
            ),
            jitter_ratio=min(1.0, max(0.0, get_float_env("SCRAPER_RETRY_JITTER_RATIO", 0.0))),
        ),
        circuit_breaker=CircuitBreakerConfig(
            failure_threshold=max(1, get_int_env("SCRAPER_CIRCUIT_BREAKER_THRESHOLD", 5)),
            reset_timeout_ms=max(1, get_int_env("SCRAPER_CIRCUIT_BREAKER_RESET_MS", 60_000)),
        ),
        publish_retry=RetryPolicy(
            max_retries=max(0, get_int_env("SCRAPER_PUBLISH_MAX_RETRIES", 2)),
            base_delay_ms=max(1, get_int_env("SCRAPER_PUBLISH_BACKOFF_MS", 1000)),
            max_delay_ms=max(1, get_int_env("SCRAPER_PUBLISH_MAX_BACKOFF_MS", 10_000)),
        ),
        metrics_interval_seconds=max(
            1.0,
            get_float_env("SCRAPER_METRICS_INTERVAL_SECONDS", 60.0),
        ),
        max_parallel_sources=max(1, get_int_env("SCRAPER_MAX_PARALLEL_SOURCES", 5)),
        validation=ValidationSettings(
            min_description_length=max(0, get_int_env("SCRAPER_MIN_DESCRIPTION_LENGTH", 100)),
            max_amount_threshold=max(
                1.0,
                get_float_env("SCRAPER_MAX_GRANT_AMOUNT", 10_000_000.0),
            ),
            min_deadline_days=max(0, get_int_env("SCRAPER_MIN_DEADLINE_DAYS", 7)),
        ),
        proxy=proxy,
    )


@lru_cache(maxsize=1)
def get_queue_settings() -> QueueSettings:
    """
    Return cached Kafka settings from environment variables.
    """

    load_env_files()
    defaults = QueueSettings(brokers=("localhost:9092",), client_id="listing-pipeline")
    topics = dict(defaults.topics)
    topics["technology"] = get_str_env("KAFKA_TOPIC_TECHNOLOGY", topics["technology"])
    topics["university"] = get_str_env("KAFKA_TOPIC_UNIVERSITY", topics["technology"])
    topics["grant"] = get_str_env("KAFKA_TOPIC_GRANT", topics["grant"])

    return QueueSettings(
        brokers=get_list_env("KAFKA_BROKERS", defaults.brokers),
        client_id=get_str_env("KAFKA_CLIENT_ID", defaults.client_id),
        ssl=get_bool_env("KAFKA_SSL", False),
        sasl_mechanism=get_optional_str_env("KAFKA_SASL_MECHANISM"),
        sasl_username=get_optional_str_env("KAFKA_SASL_USERNAME"),
        sasl_password=get_optional_str_env("KAFKA_SASL_PASSWORD"),
        publish_timeout_seconds=max(
            1.0,
            get_float_env("KAFKA_PUBLISH_TIMEOUT_SECONDS", defaults.publish_timeout_seconds),
        ),
        connection_timeout_ms=max(
            1000,
            get_int_env("KAFKA_CONNECTION_TIMEOUT_MS", defaults.connection_timeout_ms),
        ),
        session_timeout_ms=max(
            6000,
            get_int_env("KAFKA_SESSION_TIMEOUT_MS", defaults.session_timeout_ms),
        ),
        consumer_group_id=get_str_env("KAFKA_CONSUMER_GROUP_ID", defaults.consumer_group_id),
        max_batch_size=max(1, get_int_env("KAFKA_MAX_BATCH_SIZE", defaults.max_batch_size)),
        max_wait_ms=max(0, get_int_env("KAFKA_MAX_WAIT_MS", defaults.max_wait_ms)),
        max_bytes_per_partition=max(
            1024,
            get_int_env("KAFKA_MAX_BYTES_PER_PARTITION", defaults.max_bytes_per_partition),
        ),
        partitions_consumed_concurrently=max(
            1,
            get_int_env(
                "KAFKA_PARTITIONS_CONCURRENTLY",
                defaults.partitions_consumed_concurrently,
            ),
        ),
        consumer_max_retries=max(
            0,
            get_int_env("KAFKA_CONSUMER_MAX_RETRIES", defaults.consumer_max_retries),
        ),
        consumer_backoff_ms=max(
            0,
            get_int_env("KAFKA_CONSUMER_BACKOFF_MS", defaults.consumer_backoff_ms),
        ),
        consumer_backoff_multiplier=max(
            1.0,
            get_float_env(
                "KAFKA_CONSUMER_BACKOFF_MULTIPLIER",
                defaults.consumer_backoff_multiplier,
            ),
        ),
        dead_letter_topic=get_str_env("KAFKA_DEAD_LETTER_TOPIC", defaults.dead_letter_topic),
        dead_letter_max_attempts=max(
            1,
            get_int_env("KAFKA_DEAD_LETTER_MAX_ATTEMPTS", defaults.dead_letter_max_attempts),
        ),
        topics=topics,
    )


def load_source_options(*, config_path: str) -> list[SourceDefinition]:
    """
    Load source definitions from a JSON file.

    Entries without a kind, name or url are skipped; option validation is
    left to the scraper factory.
    """

    path = _resolve_config_path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Source config file not found: {path}")

    raw_data = json.loads(path.read_text(encoding="utf-8"))
    sources = raw_data.get("sources", []) if isinstance(raw_data, dict) else None
    if not isinstance(sources, list):
        raise ValueError("Invalid source config: 'sources' must be a list.")

    parsed: list[SourceDefinition] = []
    for entry in sources:
        if not isinstance(entry, dict):
            continue

        kind = str(entry.get("kind", "")).strip().lower()
        url = str(entry.get("url", "")).strip()
        name = str(entry.get("name", "")).strip() or url
        if not kind or not url:
            continue

        options = {
            key: value
            for key, value in entry.items()
            if key not in {"kind", "name", "enabled"}
        }
        options["name"] = name
        if isinstance(options.get("headers"), dict):
            options["headers"] = _normalize_headers(options["headers"])
        if isinstance(options.get("selectors"), dict):
            options["selectors"] = _normalize_selectors(options["selectors"])

        parsed.append(
            SourceDefinition(
                kind=kind,
                name=name,
                options=options,
                enabled=_optional_bool(entry.get("enabled"), True),
            )
        )

    return parsed


def _normalize_selectors(selectors: dict[str, Any]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for key, value in selectors.items():
        if not isinstance(key, str):
            continue
        if isinstance(value, str):
            stripped = value.strip()
            if stripped:
                normalized[key.strip()] = stripped
        elif isinstance(value, dict):
            normalized[key.strip()] = _normalize_selectors(value)
    return normalized


def _normalize_headers(headers: dict[str, Any]) -> dict[str, str]:
    normalized: dict[str, str] = {}
    for key, value in headers.items():
        if not isinstance(key, str) or not isinstance(value, str):
            continue
        if key.strip() and value.strip():
            normalized[key.strip()] = value.strip()
    return normalized


def _optional_bool(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    return default
