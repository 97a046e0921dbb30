"""
Shared fixtures for the pipeline tests.
"""

from __future__ import annotations

from typing import Any

import pytest

from fakes import LONG_TEXT, FakeKafkaProducerClient
from listing_pipeline.config.models import (
    CircuitBreakerConfig,
    RateLimitConfig,
    RetryPolicy,
    ScraperSettings,
    ValidationSettings,
)
from listing_pipeline.queue.producer import QueueProducer


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sleeps() -> list[float]:
    """Records requested sleeps instead of waiting."""
    return []


@pytest.fixture()
def record_sleep(sleeps: list[float]):
    return sleeps.append


@pytest.fixture()
def kafka_client() -> FakeKafkaProducerClient:
    return FakeKafkaProducerClient()


@pytest.fixture()
def producer(kafka_client: FakeKafkaProducerClient) -> QueueProducer:
    return QueueProducer(kafka_client, publish_timeout_seconds=1.0)


@pytest.fixture()
def scraper_settings(tmp_path) -> ScraperSettings:
    return ScraperSettings(
        sources_config_path=str(tmp_path / "sources.json"),
        user_agent="ListingPipelineTest/1.0",
        accept_language="en-US",
        timeout_seconds=5.0,
        rate_limit=RateLimitConfig(requests_per_window=10, window_ms=1000, max_concurrent=1),
        retry_policy=RetryPolicy(max_retries=2, base_delay_ms=100, max_delay_ms=1000),
        circuit_breaker=CircuitBreakerConfig(failure_threshold=3, reset_timeout_ms=60_000),
        publish_retry=RetryPolicy(max_retries=2, base_delay_ms=50, max_delay_ms=200),
        metrics_interval_seconds=60.0,
        max_parallel_sources=2,
        validation=ValidationSettings(),
    )


@pytest.fixture()
def technology_page() -> str:
    """Three listings; the second description is too short to validate."""
    return f"""
    <html><body>
      <div class="tech">
        <h2 class="title">Solid-state battery</h2>
        <div class="desc"><p>{LONG_TEXT}</p></div>
        <span class="status">Patent Pending</span>
        <span class="trl">TRL 4</span>
        <ul class="inventors"><li>Ada Lovelace</li><li>Alan Turing</li></ul>
        <span class="published">March 5, 2024</span>
      </div>
      <div class="tech">
        <h2 class="title">Short one</h2>
        <div class="desc">Too short.</div>
      </div>
      <div class="tech">
        <h2 class="title">Protein folding assay</h2>
        <div class="desc">{LONG_TEXT} Second listing.</div>
        <span class="status">Issued patent</span>
        <ul class="inventors"><li>Grace Hopper</li></ul>
      </div>
    </body></html>
    """


@pytest.fixture()
def technology_options() -> dict[str, Any]:
    return {
        "name": "example-tech",
        "url": "https://example.edu/tech",
        "university": "Example University",
        "selectors": {
            "listing": "div.tech",
            "title": ".title",
            "description": ".desc",
            "patent_status": ".status",
            "trl": ".trl",
            "inventors": ".inventors li",
            "publication_date": ".published",
        },
        "retry": {"max_retries": 0, "base_delay_ms": 10, "max_delay_ms": 10},
    }
