"""
Listing scraping engine.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from listing_pipeline.config.loader import SourceDefinition, load_source_options
from listing_pipeline.config.models import ScraperSettings
from listing_pipeline.domain.summaries import ScrapeSummary
from listing_pipeline.errors import ConfigurationError, PipelineError
from listing_pipeline.logging_utils import elapsed_ms, log_event
from listing_pipeline.queue.consumer import QueueConsumer
from listing_pipeline.queue.producer import QueueProducer
from listing_pipeline.scrapers.factory import ScraperFactory
from listing_pipeline.scrapers.handle import ScraperHandle

logger = logging.getLogger(__name__)


class ScrapingEngine:
    """
    Runs configured sources concurrently, one worker per source, and owns
    the ordered shutdown of fetchers, producer and consumer.
    """

    def __init__(
        self,
        *,
        settings: ScraperSettings,
        factory: ScraperFactory,
        producer: QueueProducer,
        consumer: QueueConsumer | None = None,
    ) -> None:
        self._settings = settings
        self._factory = factory
        self._producer = producer
        self._consumer = consumer
        self._handles: list[ScraperHandle] = []
        self._handles_lock = threading.Lock()
        self._shut_down = False

    def run(
        self,
        *,
        sources: Sequence[SourceDefinition] | None = None,
        names: Sequence[str] | None = None,
    ) -> list[ScrapeSummary]:
        if self._shut_down:
            raise PipelineError("Engine has been shut down.")

        definitions = (
            list(sources)
            if sources is not None
            else load_source_options(config_path=self._settings.sources_config_path)
        )
        selected = self._select_sources(definitions=definitions, names=names)
        if not selected:
            raise ConfigurationError("No enabled sources matched the run criteria.")

        workers = min(self._settings.max_parallel_sources, len(selected))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scrape") as executor:
            return list(executor.map(self._run_source, selected))

    def shutdown(self) -> None:
        """
        Drain every fetcher, then close the producer, then the consumer.
        """

        if self._shut_down:
            return
        self._shut_down = True
        self._factory.stop_reporting()

        with self._handles_lock:
            handles = list(self._handles)
        for handle in handles:
            handle.fetcher.drain()
            handle.cancel()

        self._producer.close()
        if self._consumer is not None:
            self._consumer.close()
        log_event(logger, logging.INFO, "engine_shutdown", handles=len(handles))

    def _run_source(self, definition: SourceDefinition) -> ScrapeSummary:
        started = time.monotonic()
        try:
            handle = self._factory.create(definition.kind, definition.options)
        except ConfigurationError as exc:
            return self._failed_summary(definition, started, exc)

        with self._handles_lock:
            self._handles.append(handle)
        try:
            return handle.scrape()
        except Exception as exc:
            return self._failed_summary(definition, started, exc)
        finally:
            handle.close()
            with self._handles_lock:
                self._handles.remove(handle)

    @staticmethod
    def _failed_summary(
        definition: SourceDefinition,
        started: float,
        exc: Exception,
    ) -> ScrapeSummary:
        message = str(exc)
        summary = ScrapeSummary(
            source=definition.name,
            kind=definition.kind,
            status="failed",
            duration_ms=elapsed_ms(started),
            errors=[message],
        )
        log_event(
            logger,
            logging.ERROR,
            "source_scrape_failed",
            source=definition.name,
            kind=definition.kind,
            duration_ms=summary.duration_ms,
            error_class=type(exc).__name__,
            error=message,
        )
        return summary

    @staticmethod
    def _select_sources(
        *,
        definitions: list[SourceDefinition],
        names: Sequence[str] | None,
    ) -> list[SourceDefinition]:
        enabled = [definition for definition in definitions if definition.enabled]
        if not names:
            return enabled

        normalized = {item.strip().lower() for item in names if item.strip()}
        if not normalized:
            return enabled
        return [definition for definition in enabled if definition.name.lower() in normalized]
