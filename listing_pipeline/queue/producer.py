"""
Publishes validated records to Kafka topics.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from kafka.errors import KafkaError
from pydantic import ValidationError

from listing_pipeline.domain.records import ValidatedRecord
from listing_pipeline.errors import PublishError
from listing_pipeline.logging_utils import elapsed_ms, log_event
from listing_pipeline.observability import MetricsSink, NullMetricsSink
from listing_pipeline.queue.messages import (
    ATTEMPT_HEADER,
    RECORD_KIND_HEADER,
    SOURCE_HEADER,
    TIMESTAMP_HEADER,
    QueueMessage,
)
from listing_pipeline.queue.serialization import encode_record

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublishAck:
    topic: str
    partition: int
    offset: int


class QueueProducer:
    """
    Thin, thread-safe wrapper over a ``kafka.KafkaProducer``.

    Each publish blocks until the broker acknowledges the message or
    ``publish_timeout_seconds`` elapses. Retrying is the caller's concern.
    """

    def __init__(
        self,
        client: Any,
        *,
        publish_timeout_seconds: float = 30.0,
        metrics: MetricsSink | None = None,
    ) -> None:
        self._client = client
        self._timeout = publish_timeout_seconds
        self._metrics = metrics or NullMetricsSink()
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(
        self,
        topic: str,
        record: ValidatedRecord,
        headers: dict[str, str] | None = None,
        key: str | None = None,
    ) -> PublishAck:
        try:
            payload = encode_record(record)
        except ValidationError as exc:
            self._metrics.counter_inc("queue_publish_failures_total", {"topic": topic})
            log_event(
                logger,
                logging.ERROR,
                "publish_serialization_failed",
                topic=topic,
                kind=record.kind,
                title=record.title,
                error_count=exc.error_count(),
            )
            raise PublishError(
                f"Record {record.title!r} could not be serialized for {topic}.",
                topic=topic,
                retryable=False,
            ) from exc

        message = QueueMessage(
            topic=topic,
            key=key,
            payload=payload,
            headers={
                SOURCE_HEADER: record.source_url,
                RECORD_KIND_HEADER: record.kind,
                TIMESTAMP_HEADER: datetime.now(timezone.utc).isoformat(),
                ATTEMPT_HEADER: "0",
                **(headers or {}),
            },
        )
        return self.publish_message(message)

    def publish_message(self, message: QueueMessage) -> PublishAck:
        """
        Send an already-serialized message and wait for the acknowledgment.
        """

        with self._lock:
            if self._closed:
                raise PublishError("Producer is closed.", topic=message.topic)

        started = time.monotonic()
        try:
            future = self._client.send(
                message.topic,
                value=message.payload,
                key=message.key.encode("utf-8") if message.key is not None else None,
                headers=message.kafka_headers(),
            )
            metadata = future.get(timeout=self._timeout)
        except KafkaError as exc:
            self._metrics.counter_inc("queue_publish_failures_total", {"topic": message.topic})
            log_event(
                logger,
                logging.ERROR,
                "publish_failed",
                topic=message.topic,
                attempt=message.attempt,
                duration_ms=elapsed_ms(started),
                error=str(exc),
            )
            raise PublishError(
                f"Publish to {message.topic} was not acknowledged: {exc}",
                topic=message.topic,
            ) from exc

        self._metrics.counter_inc("queue_messages_published_total", {"topic": message.topic})
        log_event(
            logger,
            logging.DEBUG,
            "message_published",
            topic=metadata.topic,
            partition=metadata.partition,
            offset=metadata.offset,
            duration_ms=elapsed_ms(started),
        )
        return PublishAck(
            topic=metadata.topic,
            partition=metadata.partition,
            offset=metadata.offset,
        )

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._client.flush(timeout=self._timeout)
        finally:
            self._client.close(timeout=self._timeout)
        logger.info("Queue producer closed")
