"""
tests/test_scrapers.py

Pytest unit tests for ScraperFactory, ScraperHandle and ScrapingEngine.

Coverage
--------
- Factory option validation (fail fast, nothing constructed)
- Kind defaults merged under caller options; independent instances
- Lifecycle counters created / active / errors and periodic reporting
- End-to-end scrape: 3 listings, one invalid, exactly 2 published
- Publish retry, publish failure accounting, cancellation
- Engine: per-source isolation, source selection, ordered shutdown
"""

from __future__ import annotations

import json

import pytest

from fakes import FakeKafkaProducerClient, ScriptedSession, make_response
from listing_pipeline.config.loader import SourceDefinition
from listing_pipeline.config.models import GrantSelectors, TechnologySelectors
from listing_pipeline.domain.records import SourceKind
from listing_pipeline.errors import (
    ConfigurationError,
    NetworkError,
    ParseError,
    PipelineError,
    ScrapeCancelledError,
)
from listing_pipeline.observability import InMemoryMetricsSink
from listing_pipeline.queue import QueueProducer, decode_record
from listing_pipeline.scrapers import KIND_DEFAULTS, ScraperFactory, ScrapingEngine, merge_options


@pytest.fixture()
def session() -> ScriptedSession:
    return ScriptedSession()


@pytest.fixture()
def metrics() -> InMemoryMetricsSink:
    return InMemoryMetricsSink()


@pytest.fixture()
def factory(scraper_settings, producer, session, metrics, record_sleep) -> ScraperFactory:
    return ScraperFactory(
        settings=scraper_settings,
        producer=producer,
        metrics=metrics,
        session=session,
        sleep=record_sleep,
    )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TestScraperFactoryValidation:
    @pytest.mark.parametrize(
        ("mutate", "field"),
        [
            (lambda options: options.pop("url"), "url"),
            (lambda options: options.update(url="ftp://example.edu/x"), "url"),
            (lambda options: options.pop("university"), "university"),
            (lambda options: options.pop("selectors"), "selectors"),
            (lambda options: options["selectors"].pop("title"), "selectors.title"),
            (lambda options: options["selectors"].update(bogus=".x"), "selectors"),
            (lambda options: options["selectors"].update(listing="div[["), "selectors.listing"),
            (lambda options: options["selectors"].update(trl=".trl >"), "selectors.trl"),
            (lambda options: options.update(security_level="TOP_SECRET"), "security_level"),
            (lambda options: options.update(rate_limit={"requests_per_window": 0}), "rate_limit.requests_per_window"),
            (lambda options: options.update(retry={"base_delay_ms": 500, "max_delay_ms": 100}), "retry.max_delay_ms"),
        ],
    )
    def test_invalid_technology_options(self, factory, technology_options, mutate, field) -> None:
        mutate(technology_options)
        with pytest.raises(ConfigurationError) as ctx:
            factory.create("technology", technology_options)
        assert ctx.value.field == field
        assert factory.counters()["technology"] == {"created": 0, "active": 0, "errors": 1}

    def test_unknown_kind(self, factory) -> None:
        with pytest.raises(ConfigurationError) as ctx:
            factory.create("patent", {"url": "https://x.org"})
        assert ctx.value.field == "kind"

    @pytest.mark.parametrize("grant_type", [None, "LOAN"])
    def test_grant_type_is_required_and_enumerated(self, factory, grant_type) -> None:
        options = {"url": "https://grants.example.org", "agency": "DOE"}
        if grant_type:
            options["grant_type"] = grant_type
        with pytest.raises(ConfigurationError) as ctx:
            factory.create(SourceKind.GRANT, options)
        assert ctx.value.field == "grant_type"


class TestScraperFactoryConstruction:
    def test_grant_defaults_supply_selectors(self, factory) -> None:
        handle = factory.create(
            "grant",
            {"url": "https://grants.example.org", "grant_type": "sbir", "agency": "DOE"},
        )
        selectors = handle.config.field_selectors

        assert isinstance(selectors, GrantSelectors)
        assert selectors.listing == ".grant-listing"
        assert selectors.application_link == "a.apply-link"
        assert handle.config.grant_type == "SBIR"
        assert handle.topic == "grant.new"

    def test_university_defaults_merge_under_options(self, factory) -> None:
        handle = factory.create(
            "university",
            {
                "url": "https://tlo.example.edu",
                "university": "Example University",
                "selectors": {"listing_container": ".row", "title": "h3", "description": "p"},
                "rate_limit": {"requests_per_window": 10},
            },
        )
        assert handle.config.rate_limit.requests_per_window == 10
        assert handle.config.rate_limit.window_ms == 60_000
        assert handle.config.rate_limit.max_concurrent == 5
        assert handle.config.retry_policy.base_delay_ms == 1000
        assert handle.topic == "technology.new"

    def test_technology_uses_settings_defaults(self, factory, technology_options, scraper_settings) -> None:
        handle = factory.create("technology", technology_options)
        config = handle.config

        assert isinstance(config.field_selectors, TechnologySelectors)
        assert config.source_name == "example-tech"
        assert config.rate_limit == scraper_settings.rate_limit
        assert config.user_agent == scraper_settings.user_agent
        assert config.headers["Accept-Language"] == "en-US"
        assert config.circuit_breaker == scraper_settings.circuit_breaker

    def test_config_headers_are_read_only(self, factory, technology_options) -> None:
        technology_options["headers"] = {"X-Team": "ingest"}
        handle = factory.create("technology", technology_options)

        technology_options["headers"]["X-Team"] = "changed"
        with pytest.raises(TypeError):
            handle.config.headers["X-Team"] = "forged"  # type: ignore[index]

        assert handle.config.headers["X-Team"] == "ingest"
        assert handle.fetcher.request_headers["X-Team"] == "ingest"

    def test_same_options_build_independent_equivalent_handles(self, factory, technology_options) -> None:
        first = factory.create("technology", technology_options)
        second = factory.create("technology", technology_options)

        assert first.config == second.config
        assert first is not second
        assert first.fetcher is not second.fetcher

    def test_defaults_are_not_mutated_by_merging(self) -> None:
        before = json.dumps(KIND_DEFAULTS[SourceKind.UNIVERSITY], sort_keys=True)
        merged = merge_options(KIND_DEFAULTS[SourceKind.UNIVERSITY], {"rate_limit": {"window_ms": 1}})
        merged["retry"]["max_retries"] = 99

        assert merged["rate_limit"]["requests_per_window"] == 60
        assert json.dumps(KIND_DEFAULTS[SourceKind.UNIVERSITY], sort_keys=True) == before

    def test_counters_track_lifecycle(self, factory, technology_options, session) -> None:
        first = factory.create("technology", technology_options)
        factory.create("technology", technology_options)
        assert factory.counters()["technology"] == {"created": 2, "active": 2, "errors": 0}

        first.close()
        first.close()
        assert factory.counters()["technology"]["active"] == 1

        session.queue(make_response(500))
        second = factory.create("technology", technology_options)
        with pytest.raises(NetworkError):
            second.scrape()
        assert factory.counters()["technology"]["errors"] == 1

    def test_report_emits_gauges(self, factory, technology_options, metrics) -> None:
        factory.create("technology", technology_options)
        snapshot = factory.report()

        assert snapshot["technology"]["created"] == 1
        assert metrics.gauge("scraper_instances", kind="technology", counter="active") == 1.0
        assert metrics.gauge("scraper_instances", kind="grant", counter="created") == 0.0

    def test_reporting_thread_starts_and_stops(self, factory) -> None:
        factory.start_reporting()
        factory.start_reporting()
        factory.stop_reporting()
        factory.stop_reporting()


# ---------------------------------------------------------------------------
# Handle
# ---------------------------------------------------------------------------


class TestScraperHandle:
    def test_scrape_publishes_only_valid_records(
        self, factory, technology_options, technology_page, session, kafka_client, metrics
    ) -> None:
        session.queue(make_response(200, technology_page))
        handle = factory.create("technology", technology_options)

        summary = handle.scrape()

        assert summary.records_extracted == 3
        assert summary.records_valid == 2
        assert summary.records_invalid == 1
        assert summary.records_published == 2
        assert summary.status == "success"
        assert [sent["topic"] for sent in kafka_client.sent] == ["technology.new"] * 2
        titles = [decode_record(sent["value"]).title for sent in kafka_client.sent]
        assert titles == ["Solid-state battery", "Protein folding assay"]
        assert kafka_client.sent[0]["headers"]["source"] == "example-tech"
        assert (
            metrics.counter(
                "scraper_records_total",
                source="example-tech",
                kind="technology",
                outcome="invalid",
            )
            == 1
        )

    def test_publish_is_retried_with_its_own_policy(
        self, factory, technology_options, technology_page, session, kafka_client, sleeps
    ) -> None:
        kafka_client.fail_next = 1
        session.queue(make_response(200, technology_page))

        summary = factory.create("technology", technology_options).scrape()

        assert summary.records_published == 2
        assert sleeps == [0.05]

    def test_publish_failures_are_counted_not_raised(
        self, factory, technology_options, technology_page, session, kafka_client
    ) -> None:
        kafka_client.fail_always = True
        session.queue(make_response(200, technology_page))

        summary = factory.create("technology", technology_options).scrape()

        assert summary.records_published == 0
        assert summary.publish_failures == 2
        assert summary.status == "failed"
        assert len(summary.errors) == 2

    def test_unparsable_page_aborts_cycle(self, factory, technology_options, session) -> None:
        session.queue(make_response(200, "   "))
        with pytest.raises(ParseError):
            factory.create("technology", technology_options).scrape()

    def test_cancel_stops_before_next_listing(
        self, factory, technology_options, technology_page, session, kafka_client
    ) -> None:
        session.queue(make_response(200, technology_page))
        handle = factory.create("technology", technology_options)
        handle.cancel()

        with pytest.raises(ScrapeCancelledError):
            handle.scrape()
        assert kafka_client.sent == []


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class TestScrapingEngine:
    def test_runs_sources_and_isolates_failures(
        self, scraper_settings, factory, producer, technology_options, technology_page, session
    ) -> None:
        session.queue(make_response(200, technology_page))
        engine = ScrapingEngine(settings=scraper_settings, factory=factory, producer=producer)
        sources = [
            SourceDefinition(kind="technology", name="example-tech", options=technology_options),
            SourceDefinition(kind="grant", name="broken", options={"url": "https://grants.example.org"}),
            SourceDefinition(kind="technology", name="disabled", options={}, enabled=False),
        ]

        summaries = engine.run(sources=sources)

        by_source = {summary.source: summary for summary in summaries}
        assert set(by_source) == {"example-tech", "broken"}
        assert by_source["example-tech"].records_published == 2
        assert by_source["broken"].status == "failed"
        assert "Grant type" in by_source["broken"].errors[0]
        assert factory.counters()["technology"]["active"] == 0

    def test_loads_sources_from_config_and_filters_by_name(
        self, scraper_settings, factory, producer, technology_options, technology_page, session, tmp_path
    ) -> None:
        config = {
            "sources": [
                {"kind": "technology", **technology_options},
                {**technology_options, "kind": "technology", "name": "other"},
            ]
        }
        (tmp_path / "sources.json").write_text(json.dumps(config), encoding="utf-8")
        session.queue(make_response(200, technology_page))
        engine = ScrapingEngine(settings=scraper_settings, factory=factory, producer=producer)

        summaries = engine.run(names=["EXAMPLE-TECH"])

        assert [summary.source for summary in summaries] == ["example-tech"]

    def test_no_matching_sources_is_a_configuration_error(self, scraper_settings, factory, producer) -> None:
        engine = ScrapingEngine(settings=scraper_settings, factory=factory, producer=producer)
        with pytest.raises(ConfigurationError):
            engine.run(sources=[], names=None)

    def test_shutdown_closes_producer_then_consumer(self, scraper_settings, factory) -> None:
        order: list[str] = []
        kafka = FakeKafkaProducerClient()
        producer = QueueProducer(kafka)

        class RecordingConsumer:
            def close(self) -> None:
                order.append("consumer" if kafka.closed else "consumer-before-producer")

        engine = ScrapingEngine(
            settings=scraper_settings,
            factory=factory,
            producer=producer,
            consumer=RecordingConsumer(),
        )
        engine.shutdown()
        engine.shutdown()

        assert kafka.closed is True
        assert order == ["consumer"]
        with pytest.raises(PipelineError):
            engine.run(sources=[])
