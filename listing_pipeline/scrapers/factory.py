"""
Scraper factory: option validation, per-kind defaults and lifecycle counters.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import MISSING, fields
from typing import Any
from urllib.parse import urlsplit

import requests
import soupsieve

from listing_pipeline.config.models import (
    DEFAULT_TOPICS,
    CircuitBreakerConfig,
    FieldSelectors,
    GrantSelectors,
    ProxyConfig,
    RateLimitConfig,
    RetryPolicy,
    ScraperConfig,
    ScraperSettings,
    TechnologySelectors,
    UniversitySelectors,
)
from listing_pipeline.domain.records import GrantType, SecurityClassification, SourceKind
from listing_pipeline.errors import ConfigurationError
from listing_pipeline.extraction.base import ListingExtractor
from listing_pipeline.extraction.grant import DEFAULT_GRANT_SELECTORS, GrantExtractor
from listing_pipeline.extraction.technology import TechnologyExtractor
from listing_pipeline.extraction.university import UniversityIndexExtractor
from listing_pipeline.fetching.fetcher import ResilientFetcher, clamp_timeout
from listing_pipeline.logging_utils import log_event
from listing_pipeline.observability import MetricsSink, NullMetricsSink
from listing_pipeline.queue.producer import QueueProducer
from listing_pipeline.scrapers.handle import ScraperHandle
from listing_pipeline.validation.validator import RecordValidator

logger = logging.getLogger(__name__)

COUNTER_NAMES = ("created", "active", "errors")

SELECTOR_TYPES: dict[SourceKind, type] = {
    SourceKind.TECHNOLOGY: TechnologySelectors,
    SourceKind.GRANT: GrantSelectors,
    SourceKind.UNIVERSITY: UniversitySelectors,
}

KIND_DEFAULTS: dict[SourceKind, dict[str, Any]] = {
    SourceKind.TECHNOLOGY: {},
    SourceKind.GRANT: {
        "selectors": {
            item.name: getattr(DEFAULT_GRANT_SELECTORS, item.name)
            for item in fields(DEFAULT_GRANT_SELECTORS)
        },
    },
    SourceKind.UNIVERSITY: {
        "rate_limit": {"requests_per_window": 60, "window_ms": 60_000, "max_concurrent": 5},
        "retry": {"max_retries": 3, "base_delay_ms": 1000, "max_delay_ms": 30_000},
    },
}


def parse_kind(kind: SourceKind | str) -> SourceKind:
    if isinstance(kind, SourceKind):
        return kind
    try:
        return SourceKind(str(kind).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(item.value for item in SourceKind)
        raise ConfigurationError(
            f"Unknown scraper kind '{kind}'. Allowed kinds: {allowed}.",
            field="kind",
        ) from exc


def merge_options(defaults: Mapping[str, Any], options: Mapping[str, Any]) -> dict[str, Any]:
    """
    Deep-merge ``options`` over ``defaults``; nested mappings merge key-wise.
    """

    merged = copy.deepcopy(dict(defaults))
    for key, value in options.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_options(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class ScraperFactory:
    """
    Builds scraper handles from declarative options.

    Options are validated before anything is constructed; a rejected option
    set raises ``ConfigurationError`` and bumps the kind's ``errors`` counter.
    """

    def __init__(
        self,
        *,
        settings: ScraperSettings,
        producer: QueueProducer,
        topics: Mapping[str, str] | None = None,
        metrics: MetricsSink | None = None,
        session: requests.Session | None = None,
        validator: RecordValidator | None = None,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        self._settings = settings
        self._producer = producer
        self._topics = dict(topics or DEFAULT_TOPICS)
        self._metrics = metrics or NullMetricsSink()
        self._session = session
        self._validator = validator or RecordValidator(settings.validation)
        self._sleep = sleep
        self._counters = {kind: dict.fromkeys(COUNTER_NAMES, 0) for kind in SourceKind}
        self._lock = threading.Lock()
        self._reporting_stop: threading.Event | None = None
        self._reporting_thread: threading.Thread | None = None

    def create(self, kind: SourceKind | str, options: Mapping[str, Any]) -> ScraperHandle:
        resolved_kind = parse_kind(kind)
        try:
            config = self.build_config(resolved_kind, options)
        except ConfigurationError as exc:
            self._increment(resolved_kind, "errors")
            log_event(
                logger,
                logging.ERROR,
                "scraper_config_rejected",
                kind=resolved_kind.value,
                field=exc.field,
                error=str(exc),
            )
            raise

        cancel_event = threading.Event()
        fetcher = ResilientFetcher(
            config=config,
            session=self._session,
            metrics=self._metrics,
            cancel_event=cancel_event,
            sleep=self._sleep,
        )
        handle = ScraperHandle(
            config=config,
            fetcher=fetcher,
            extractor=self._build_extractor(config),
            validator=self._validator,
            producer=self._producer,
            topic=config.topic or self._topics[resolved_kind.value],
            cancel_event=cancel_event,
            metrics=self._metrics,
            on_error=lambda: self._increment(resolved_kind, "errors"),
            on_close=lambda: self._decrement_active(resolved_kind),
            sleep=self._sleep,
        )
        with self._lock:
            self._counters[resolved_kind]["created"] += 1
            self._counters[resolved_kind]["active"] += 1
        log_event(
            logger,
            logging.INFO,
            "scraper_created",
            kind=resolved_kind.value,
            source=config.source_name,
            url=config.source_url,
        )
        return handle

    def build_config(self, kind: SourceKind, options: Mapping[str, Any]) -> ScraperConfig:
        """
        Validate ``options`` merged over the kind defaults into a config.
        """

        if not isinstance(options, Mapping):
            raise ConfigurationError("Scraper options must be a mapping.")
        merged = merge_options(KIND_DEFAULTS[kind], options)

        url = str(merged.get("url") or "").strip()
        parts = urlsplit(url)
        if parts.scheme not in {"http", "https"} or not parts.netloc:
            raise ConfigurationError(f"Invalid source url '{url}'.", field="url")

        university = _optional_str(merged.get("university"))
        if kind in (SourceKind.TECHNOLOGY, SourceKind.UNIVERSITY) and not university:
            raise ConfigurationError("University is required.", field="university")

        grant_type = _optional_str(merged.get("grant_type"))
        if kind is SourceKind.GRANT:
            if not grant_type:
                raise ConfigurationError("Grant type is required.", field="grant_type")
            grant_type = grant_type.upper()
            if grant_type not in {item.value for item in GrantType}:
                raise ConfigurationError(
                    f"Unknown grant type '{grant_type}'.",
                    field="grant_type",
                )

        security_level = _optional_str(merged.get("security_level"))
        if security_level is not None:
            security_level = security_level.upper()
            if security_level not in {item.value for item in SecurityClassification}:
                raise ConfigurationError(
                    f"Unknown security level '{security_level}'.",
                    field="security_level",
                )

        settings = self._settings
        return ScraperConfig(
            source_name=_optional_str(merged.get("name")) or parts.netloc,
            source_kind=kind,
            source_url=url,
            field_selectors=_build_selectors(kind, merged.get("selectors")),
            rate_limit=_build_rate_limit(merged.get("rate_limit"), settings.rate_limit),
            retry_policy=_build_retry(merged.get("retry"), settings.retry_policy, "retry"),
            circuit_breaker=_build_circuit_breaker(
                merged.get("circuit_breaker"),
                settings.circuit_breaker,
            ),
            publish_retry=_build_retry(
                merged.get("publish_retry"),
                settings.publish_retry,
                "publish_retry",
            ),
            timeout_seconds=clamp_timeout(
                _number(merged, "timeout_seconds", settings.timeout_seconds)
            ),
            user_agent=_optional_str(merged.get("user_agent")) or settings.user_agent,
            headers={
                "Accept-Language": settings.accept_language,
                **_build_headers(merged.get("headers")),
            },
            proxy=_build_proxy(merged.get("proxy"), settings.proxy),
            university=university,
            agency=_optional_str(merged.get("agency")),
            grant_type=grant_type,
            security_level=security_level,
            topic=_optional_str(merged.get("topic")),
        )

    def counters(self) -> dict[str, dict[str, int]]:
        with self._lock:
            return {kind.value: dict(values) for kind, values in self._counters.items()}

    def report(self) -> dict[str, dict[str, int]]:
        """
        Emit the current counters as one log event and per-kind gauges.
        """

        snapshot = self.counters()
        for kind, values in snapshot.items():
            for name, value in values.items():
                self._metrics.gauge_set(
                    "scraper_instances",
                    float(value),
                    {"kind": kind, "counter": name},
                )
        log_event(logger, logging.INFO, "scraper_metrics", counters=snapshot)
        return snapshot

    def start_reporting(self) -> None:
        if self._reporting_thread is not None:
            return
        stop = threading.Event()
        interval = self._settings.metrics_interval_seconds

        def loop() -> None:
            while not stop.wait(interval):
                self.report()

        self._reporting_stop = stop
        self._reporting_thread = threading.Thread(
            target=loop,
            name="scraper-metrics",
            daemon=True,
        )
        self._reporting_thread.start()

    def stop_reporting(self) -> None:
        if self._reporting_thread is None or self._reporting_stop is None:
            return
        self._reporting_stop.set()
        self._reporting_thread.join()
        self._reporting_thread = None
        self._reporting_stop = None

    def _build_extractor(self, config: ScraperConfig) -> ListingExtractor:
        if config.source_kind is SourceKind.GRANT:
            return GrantExtractor(
                source_url=config.source_url,
                agency=config.agency,
                grant_type=config.grant_type,
                source_name=config.source_name,
            )
        extractor_class = (
            UniversityIndexExtractor
            if config.source_kind is SourceKind.UNIVERSITY
            else TechnologyExtractor
        )
        return extractor_class(
            source_url=config.source_url,
            university=config.university or "",
            source_name=config.source_name,
            security_level=config.security_level,
        )

    def _increment(self, kind: SourceKind, name: str) -> None:
        with self._lock:
            self._counters[kind][name] += 1

    def _decrement_active(self, kind: SourceKind) -> None:
        with self._lock:
            self._counters[kind]["active"] = max(0, self._counters[kind]["active"] - 1)


def _build_selectors(kind: SourceKind, raw: object) -> FieldSelectors:
    selector_type = SELECTOR_TYPES[kind]
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Selectors are required.", field="selectors")

    allowed = {item.name for item in fields(selector_type)}
    unknown = sorted(set(raw) - allowed)
    if unknown:
        raise ConfigurationError(
            f"Unknown selector(s) for {kind.value}: {', '.join(unknown)}.",
            field="selectors",
        )

    values: dict[str, str] = {}
    for name, value in raw.items():
        if value is None:
            continue
        if not isinstance(value, str) or not value.strip():
            raise ConfigurationError(
                f"Selector '{name}' must be a non-empty string.",
                field=f"selectors.{name}",
            )
        selector = value.strip()
        try:
            soupsieve.compile(selector)
        except soupsieve.SelectorSyntaxError as exc:
            raise ConfigurationError(
                f"Selector '{name}' is not valid CSS: {selector!r}.",
                field=f"selectors.{name}",
            ) from exc
        values[name] = selector

    required = [
        item.name
        for item in fields(selector_type)
        if item.default is MISSING and item.name not in values
    ]
    if required:
        raise ConfigurationError(
            f"Missing required selector(s): {', '.join(required)}.",
            field=f"selectors.{required[0]}",
        )
    return selector_type(**values)


def _build_rate_limit(raw: object, default: RateLimitConfig) -> RateLimitConfig:
    values = _section(raw, "rate_limit")
    return RateLimitConfig(
        requests_per_window=_positive_int(
            values, "requests_per_window", default.requests_per_window, "rate_limit"
        ),
        window_ms=_positive_int(values, "window_ms", default.window_ms, "rate_limit"),
        max_concurrent=_positive_int(values, "max_concurrent", default.max_concurrent, "rate_limit"),
    )


def _build_retry(raw: object, default: RetryPolicy, section: str) -> RetryPolicy:
    values = _section(raw, section)
    max_retries = int(_number(values, "max_retries", default.max_retries, section))
    if max_retries < 0:
        raise ConfigurationError("max_retries cannot be negative.", field=f"{section}.max_retries")
    base_delay_ms = _positive_int(values, "base_delay_ms", default.base_delay_ms, section)
    max_delay_ms = _positive_int(values, "max_delay_ms", default.max_delay_ms, section)
    if max_delay_ms < base_delay_ms:
        raise ConfigurationError(
            "max_delay_ms must not be below base_delay_ms.",
            field=f"{section}.max_delay_ms",
        )
    jitter_ratio = float(_number(values, "jitter_ratio", default.jitter_ratio, section))
    if not 0 <= jitter_ratio <= 1:
        raise ConfigurationError(
            "jitter_ratio must be between 0 and 1.",
            field=f"{section}.jitter_ratio",
        )
    return RetryPolicy(
        max_retries=max_retries,
        base_delay_ms=base_delay_ms,
        max_delay_ms=max_delay_ms,
        jitter_ratio=jitter_ratio,
    )


def _build_circuit_breaker(raw: object, default: CircuitBreakerConfig) -> CircuitBreakerConfig:
    values = _section(raw, "circuit_breaker")
    return CircuitBreakerConfig(
        failure_threshold=_positive_int(
            values, "failure_threshold", default.failure_threshold, "circuit_breaker"
        ),
        reset_timeout_ms=_positive_int(
            values, "reset_timeout_ms", default.reset_timeout_ms, "circuit_breaker"
        ),
    )


def _build_proxy(raw: object, default: ProxyConfig | None) -> ProxyConfig | None:
    if raw is None:
        return default
    if isinstance(raw, str):
        raw = {"url": raw}
    values = _section(raw, "proxy")
    url = _optional_str(values.get("url"))
    if not url or urlsplit(url).scheme not in {"http", "https", "socks5", "socks5h"}:
        raise ConfigurationError(f"Invalid proxy url '{url}'.", field="proxy.url")
    return ProxyConfig(
        url=url,
        username=_optional_str(values.get("username")),
        password=_optional_str(values.get("password")),
    )


def _build_headers(raw: object) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Headers must be a mapping.", field="headers")
    return {str(key): str(value) for key, value in raw.items()}


def _section(raw: object, name: str) -> Mapping[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"'{name}' must be a mapping.", field=name)
    return raw


def _number(values: Mapping[str, Any], key: str, default: float, section: str | None = None) -> float:
    raw = values.get(key)
    if raw is None:
        return default
    field_name = f"{section}.{key}" if section else key
    if isinstance(raw, bool):
        raise ConfigurationError(f"'{field_name}' must be a number.", field=field_name)
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"'{field_name}' must be a number.", field=field_name) from exc


def _positive_int(values: Mapping[str, Any], key: str, default: int, section: str) -> int:
    value = int(_number(values, key, default, section))
    if value < 1:
        raise ConfigurationError(f"'{section}.{key}' must be positive.", field=f"{section}.{key}")
    return value


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
