"""
One configured scraper: fetch, parse, extract, validate and publish.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from listing_pipeline.config.models import ScraperConfig
from listing_pipeline.domain.records import ValidatedRecord
from listing_pipeline.domain.summaries import ScrapeSummary
from listing_pipeline.errors import PipelineError, PublishError, ScrapeCancelledError
from listing_pipeline.extraction.base import ListingExtractor
from listing_pipeline.fetching.fetcher import ResilientFetcher, categorize_error
from listing_pipeline.fetching.retry import retry_call
from listing_pipeline.logging_utils import elapsed_ms, log_event
from listing_pipeline.observability import MetricsSink, NullMetricsSink
from listing_pipeline.parsing.html_parser import parse
from listing_pipeline.queue.messages import SOURCE_HEADER
from listing_pipeline.queue.producer import QueueProducer
from listing_pipeline.validation.validator import RecordValidator

logger = logging.getLogger(__name__)


class ScraperHandle:
    """
    Drives one scrape cycle per ``scrape()`` call for a single source.

    Fetch and parse failures abort the cycle and propagate. Invalid records
    and records whose publish still fails after ``publish_retry`` are counted
    in the returned summary without stopping the batch.
    """

    def __init__(
        self,
        *,
        config: ScraperConfig,
        fetcher: ResilientFetcher,
        extractor: ListingExtractor,
        validator: RecordValidator,
        producer: QueueProducer,
        topic: str,
        cancel_event: threading.Event,
        metrics: MetricsSink | None = None,
        on_error: Callable[[], None] | None = None,
        on_close: Callable[[], None] | None = None,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        self.config = config
        self.topic = topic
        self._fetcher = fetcher
        self._extractor = extractor
        self._validator = validator
        self._producer = producer
        self._cancel_event = cancel_event
        self._metrics = metrics or NullMetricsSink()
        self._on_error = on_error
        self._on_close = on_close
        self._sleep = sleep
        self._closed = False
        self._close_lock = threading.Lock()
        self._labels = {"source": config.source_name, "kind": config.source_kind.value}

    @property
    def source_name(self) -> str:
        return self.config.source_name

    @property
    def fetcher(self) -> ResilientFetcher:
        return self._fetcher

    @property
    def closed(self) -> bool:
        return self._closed

    def scrape(self) -> ScrapeSummary:
        if self._closed:
            raise PipelineError(f"Scraper for {self.source_name} is closed.")

        started = time.monotonic()
        try:
            fetched = self._fetcher.fetch()
            tree = parse(fetched.body)
        except PipelineError as exc:
            self._report_error()
            log_event(
                logger,
                logging.ERROR,
                "scrape_aborted",
                source=self.source_name,
                kind=self.config.source_kind.value,
                error_type=categorize_error(exc),
                duration_ms=elapsed_ms(started),
                error=str(exc),
            )
            raise

        extracted = valid = invalid = published = publish_failures = 0
        errors: list[str] = []
        for candidate in self._extractor.extract(tree, self.config.field_selectors):
            if self._cancel_event.is_set():
                raise ScrapeCancelledError(f"Scrape of {self.source_name} was cancelled.")
            extracted += 1

            result = self._validator.validate(candidate)
            if not result.is_valid or result.record is None:
                invalid += 1
                self._metrics.counter_inc(
                    "scraper_records_total", {**self._labels, "outcome": "invalid"}
                )
                logger.debug(
                    "Record rejected source=%s title=%r issues=%s",
                    self.source_name,
                    candidate.title,
                    ", ".join(f"{issue.field}:{issue.reason}" for issue in result.errors),
                )
                continue

            valid += 1
            try:
                self._publish(result.record)
            except PublishError as exc:
                publish_failures += 1
                errors.append(f"{candidate.title}: {exc}")
                self._metrics.counter_inc(
                    "scraper_records_total", {**self._labels, "outcome": "publish_failed"}
                )
                continue
            published += 1
            self._metrics.counter_inc(
                "scraper_records_total", {**self._labels, "outcome": "published"}
            )

        status = "success"
        if publish_failures:
            status = "partial_success" if published else "failed"
        summary = ScrapeSummary(
            source=self.source_name,
            kind=self.config.source_kind.value,
            status=status,
            records_extracted=extracted,
            records_valid=valid,
            records_invalid=invalid,
            records_published=published,
            publish_failures=publish_failures,
            duration_ms=elapsed_ms(started),
            errors=errors,
        )
        log_event(logger, logging.INFO, "scrape_completed", **summary.as_dict())
        return summary

    def cancel(self) -> None:
        """
        Stop at the next backoff wait or listing element.
        """

        self._cancel_event.set()

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._fetcher.close()
        if self._on_close is not None:
            self._on_close()

    def __enter__(self) -> ScraperHandle:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _publish(self, record: ValidatedRecord) -> None:
        retry_call(
            lambda: self._producer.publish(
                self.topic,
                record,
                headers={SOURCE_HEADER: self.source_name},
                key=record.source_url,
            ),
            policy=self.config.publish_retry,
            should_retry=lambda exc: isinstance(exc, PublishError) and exc.retryable,
            cancel_event=self._cancel_event,
            sleep=self._sleep,
        )

    def _report_error(self) -> None:
        if self._on_error is not None:
            self._on_error()
