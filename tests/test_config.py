"""
tests/test_config.py

Pytest unit tests for the environment settings and the source config loader.
"""

from __future__ import annotations

import json

import pytest

from listing_pipeline.config.env import get_int_env, get_list_env
from listing_pipeline.config.loader import (
    get_queue_settings,
    get_scraper_settings,
    load_source_options,
)
from listing_pipeline.scrapers import ScraperFactory


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_scraper_settings.cache_clear()
    get_queue_settings.cache_clear()
    yield
    get_scraper_settings.cache_clear()
    get_queue_settings.cache_clear()


def _write_sources(tmp_path, sources) -> str:
    path = tmp_path / "sources.json"
    path.write_text(json.dumps({"sources": sources}), encoding="utf-8")
    return str(path)


class TestLoadSourceOptions:
    def test_skips_incomplete_entries_and_normalizes(self, tmp_path) -> None:
        path = _write_sources(
            tmp_path,
            [
                {
                    "kind": " Technology ",
                    "name": "lab",
                    "url": "https://lab.example.edu",
                    "selectors": {"listing": " div.tech ", "title": "  ", "description": ".d"},
                    "headers": {"X-Token": " abc ", "X-Empty": " "},
                    "enabled": "no",
                },
                {"kind": "grant"},
                {"url": "https://no-kind.example.org"},
                "not-a-mapping",
                {"kind": "grant", "url": "https://grants.example.org"},
            ],
        )

        first, second = load_source_options(config_path=path)

        assert first.kind == "technology"
        assert first.name == "lab"
        assert first.enabled is False
        assert first.options["selectors"] == {"listing": "div.tech", "description": ".d"}
        assert first.options["headers"] == {"X-Token": "abc"}
        assert "kind" not in first.options
        assert second.name == "https://grants.example.org"
        assert second.enabled is True

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_source_options(config_path=str(tmp_path / "absent.json"))

    def test_sources_must_be_a_list(self, tmp_path) -> None:
        path = tmp_path / "sources.json"
        path.write_text(json.dumps({"sources": {"kind": "grant"}}), encoding="utf-8")
        with pytest.raises(ValueError):
            load_source_options(config_path=str(path))

    def test_bundled_sources_are_accepted_by_the_factory(self, scraper_settings, producer) -> None:
        factory = ScraperFactory(settings=scraper_settings, producer=producer)
        definitions = load_source_options(config_path="config/sources.json")

        assert definitions
        for definition in definitions:
            handle = factory.create(definition.kind, definition.options)
            handle.close()


class TestScraperSettings:
    def test_reads_and_clamps_environment(self, monkeypatch, tmp_path) -> None:
        monkeypatch.setenv("SCRAPER_SOURCES_CONFIG_PATH", str(tmp_path / "s.json"))
        monkeypatch.setenv("SCRAPER_TIMEOUT_SECONDS", "600")
        monkeypatch.setenv("SCRAPER_RATE_LIMIT_REQUESTS", "0")
        monkeypatch.setenv("SCRAPER_RETRY_BACKOFF_MS", "5000")
        monkeypatch.setenv("SCRAPER_RETRY_MAX_BACKOFF_MS", "100")
        monkeypatch.setenv("SCRAPER_PROXY_URL", "http://proxy.internal:3128")
        monkeypatch.setenv("SCRAPER_MIN_DEADLINE_DAYS", "14")

        settings = get_scraper_settings()

        assert settings.sources_config_path == str(tmp_path / "s.json")
        assert settings.timeout_seconds == 60.0
        assert settings.rate_limit.requests_per_window == 1
        assert settings.retry_policy.max_delay_ms == 5000
        assert settings.proxy is not None and settings.proxy.url == "http://proxy.internal:3128"
        assert settings.validation.min_deadline_days == 14

    def test_is_cached(self) -> None:
        assert get_scraper_settings() is get_scraper_settings()


class TestQueueSettings:
    def test_reads_brokers_and_topics(self, monkeypatch) -> None:
        monkeypatch.setenv("KAFKA_BROKERS", "kafka-1:9092, ,kafka-2:9092")
        monkeypatch.setenv("KAFKA_TOPIC_TECHNOLOGY", "tech.v2")
        monkeypatch.delenv("KAFKA_TOPIC_UNIVERSITY", raising=False)
        monkeypatch.setenv("KAFKA_DEAD_LETTER_MAX_ATTEMPTS", "0")
        monkeypatch.setenv("KAFKA_CONSUMER_BACKOFF_MULTIPLIER", "0.5")

        settings = get_queue_settings()

        assert settings.brokers == ("kafka-1:9092", "kafka-2:9092")
        assert settings.topic_for("technology") == "tech.v2"
        assert settings.topic_for("university") == "tech.v2"
        assert settings.dead_letter_max_attempts == 1
        assert settings.consumer_backoff_multiplier == 1.0


class TestEnvHelpers:
    def test_invalid_int_falls_back(self, monkeypatch) -> None:
        monkeypatch.setenv("PIPELINE_TEST_INT", "many")
        assert get_int_env("PIPELINE_TEST_INT", 7) == 7

    def test_blank_list_falls_back(self, monkeypatch) -> None:
        monkeypatch.setenv("PIPELINE_TEST_LIST", " , ")
        assert get_list_env("PIPELINE_TEST_LIST", ("a",)) == ("a",)
