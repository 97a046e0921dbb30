"""
Kafka client construction and the consumer adapter.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from kafka import KafkaConsumer, KafkaProducer, TopicPartition
from kafka.errors import KafkaError
from kafka.structs import OffsetAndMetadata

from listing_pipeline.config.models import QueueSettings
from listing_pipeline.errors import ConfigurationError, PipelineError
from listing_pipeline.observability import MetricsSink
from listing_pipeline.queue.consumer import PartitionKey, QueueConsumer
from listing_pipeline.queue.messages import QueueMessage, decode_headers, read_attempt
from listing_pipeline.queue.producer import QueueProducer

logger = logging.getLogger(__name__)


def _offset_and_metadata(offset: int) -> OffsetAndMetadata:
    # The tuple gained a leader_epoch field in newer kafka-python releases.
    values = {"offset": offset, "metadata": "", "leader_epoch": -1}
    return OffsetAndMetadata(**{name: values[name] for name in OffsetAndMetadata._fields})


class KafkaConsumerClient:
    """
    Adapts ``kafka.KafkaConsumer`` to the consumer's partition-batch view.

    kafka-python sends group heartbeats from its own background thread, so
    ``heartbeat`` only records liveness for the batch loop.
    """

    def __init__(self, consumer: KafkaConsumer) -> None:
        self._consumer = consumer
        self.heartbeats = 0

    def subscribe(self, topics: Sequence[str]) -> None:
        self._consumer.subscribe(topics=list(topics))

    def poll(self, *, timeout_ms: int, max_records: int) -> dict[PartitionKey, list[QueueMessage]]:
        raw = self._consumer.poll(timeout_ms=timeout_ms, max_records=max_records)
        batches: dict[PartitionKey, list[QueueMessage]] = {}
        for topic_partition, records in raw.items():
            messages = []
            for record in records:
                headers = decode_headers(record.headers)
                messages.append(
                    QueueMessage(
                        topic=record.topic,
                        key=record.key.decode("utf-8", errors="replace") if record.key else None,
                        payload=record.value or b"",
                        headers=headers,
                        attempt=read_attempt(headers),
                        partition=record.partition,
                        offset=record.offset,
                    )
                )
            batches[(topic_partition.topic, topic_partition.partition)] = messages
        return batches

    def commit(self, offsets: dict[PartitionKey, int]) -> None:
        self._consumer.commit(
            offsets={
                TopicPartition(topic, partition): _offset_and_metadata(offset)
                for (topic, partition), offset in offsets.items()
            }
        )

    def seek(self, partition: PartitionKey, offset: int) -> None:
        self._consumer.seek(TopicPartition(*partition), offset)

    def heartbeat(self) -> None:
        self.heartbeats += 1

    def bootstrap_connected(self) -> bool:
        return bool(self._consumer.bootstrap_connected())

    def close(self) -> None:
        self._consumer.close()


@dataclass
class QueueClients:
    producer: QueueProducer
    consumer: QueueConsumer | None
    raw_producer: Any


def validate_queue_settings(settings: QueueSettings) -> None:
    """
    Reject connection settings that cannot work before any client is built.
    """

    if not [broker for broker in settings.brokers if broker.strip()]:
        raise ConfigurationError("At least one Kafka broker is required.", field="brokers")
    if not settings.client_id.strip():
        raise ConfigurationError("Kafka client id is required.", field="client_id")
    if settings.consumer_max_retries < 0:
        raise ConfigurationError(
            "Consumer retry count cannot be negative.",
            field="consumer_max_retries",
        )
    if settings.consumer_backoff_multiplier < 1:
        raise ConfigurationError(
            "Consumer backoff multiplier must be at least 1.",
            field="consumer_backoff_multiplier",
        )
    if settings.dead_letter_max_attempts < 1:
        raise ConfigurationError(
            "Dead-letter max attempts must be at least 1.",
            field="dead_letter_max_attempts",
        )
    if settings.partitions_consumed_concurrently < 1:
        raise ConfigurationError(
            "At least one partition must be consumed at a time.",
            field="partitions_consumed_concurrently",
        )
    if settings.sasl_mechanism and not (settings.sasl_username and settings.sasl_password):
        raise ConfigurationError(
            "SASL authentication needs a username and password.",
            field="sasl_username",
        )


def security_options(settings: QueueSettings) -> dict[str, Any]:
    if settings.sasl_mechanism:
        protocol = "SASL_SSL" if settings.ssl else "SASL_PLAINTEXT"
        return {
            "security_protocol": protocol,
            "sasl_mechanism": settings.sasl_mechanism.upper(),
            "sasl_plain_username": settings.sasl_username,
            "sasl_plain_password": settings.sasl_password,
        }
    return {"security_protocol": "SSL" if settings.ssl else "PLAINTEXT"}


def producer_options(settings: QueueSettings) -> dict[str, Any]:
    return {
        "bootstrap_servers": list(settings.brokers),
        "client_id": settings.client_id,
        "acks": "all",
        "compression_type": "gzip",
        "request_timeout_ms": int(settings.publish_timeout_seconds * 1000),
        "api_version_auto_timeout_ms": settings.connection_timeout_ms,
        **security_options(settings),
    }


def consumer_options(settings: QueueSettings) -> dict[str, Any]:
    return {
        "bootstrap_servers": list(settings.brokers),
        "client_id": settings.client_id,
        "group_id": settings.consumer_group_id,
        "enable_auto_commit": False,
        "auto_offset_reset": "earliest",
        "session_timeout_ms": settings.session_timeout_ms,
        "fetch_max_wait_ms": settings.max_wait_ms,
        "max_partition_fetch_bytes": settings.max_bytes_per_partition,
        "max_poll_records": settings.max_batch_size,
        "api_version_auto_timeout_ms": settings.connection_timeout_ms,
        **security_options(settings),
    }


def create_queue_clients(
    settings: QueueSettings,
    *,
    consume_topics: Sequence[str] | None = None,
    metrics: MetricsSink | None = None,
) -> QueueClients:
    """
    Build the producer and, when ``consume_topics`` is given, the consumer.

    Raises:
        ConfigurationError: If the settings are unusable.
        PipelineError: If the brokers cannot be reached.
    """

    validate_queue_settings(settings)
    try:
        raw_producer = KafkaProducer(**producer_options(settings))
    except KafkaError as exc:
        raise PipelineError(f"Kafka producer could not connect: {exc}") from exc
    producer = QueueProducer(
        raw_producer,
        publish_timeout_seconds=settings.publish_timeout_seconds,
        metrics=metrics,
    )

    consumer = None
    if consume_topics:
        try:
            raw_consumer = KafkaConsumer(**consumer_options(settings))
        except KafkaError as exc:
            producer.close()
            raise PipelineError(f"Kafka consumer could not connect: {exc}") from exc
        consumer = QueueConsumer(
            KafkaConsumerClient(raw_consumer),
            settings=settings,
            topics=consume_topics,
            dead_letter_producer=producer,
            metrics=metrics,
        )

    logger.info(
        "Kafka clients created brokers=%s client_id=%s consumer=%s",
        ",".join(settings.brokers),
        settings.client_id,
        consumer is not None,
    )
    return QueueClients(producer=producer, consumer=consumer, raw_producer=raw_producer)
