"""
Batch consumer with manual commits and dead-letter rerouting.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from listing_pipeline.config.models import QueueSettings
from listing_pipeline.errors import PipelineError, PublishError
from listing_pipeline.logging_utils import log_event
from listing_pipeline.observability import MetricsSink, NullMetricsSink
from listing_pipeline.queue.messages import QueueMessage
from listing_pipeline.queue.producer import QueueProducer

logger = logging.getLogger(__name__)

PartitionKey = tuple[str, int]
MessageHandler = Callable[[QueueMessage], None]


class ConsumerClient(Protocol):
    def subscribe(self, topics: Sequence[str]) -> None:
        ...

    def poll(self, *, timeout_ms: int, max_records: int) -> dict[PartitionKey, list[QueueMessage]]:
        ...

    def commit(self, offsets: dict[PartitionKey, int]) -> None:
        ...

    def seek(self, partition: PartitionKey, offset: int) -> None:
        ...

    def heartbeat(self) -> None:
        ...

    def close(self) -> None:
        ...


class ConsumerState(str, Enum):
    IDLE = "idle"
    CONNECTED = "connected"
    CONSUMING = "consuming"
    STOPPED = "stopped"


class MessageOutcome(str, Enum):
    COMMITTED = "committed"
    DEAD_LETTERED = "dead_lettered"
    DROPPED = "dropped"


@dataclass(frozen=True)
class MessageResult:
    topic: str
    partition: int
    offset: int
    outcome: MessageOutcome
    handler_attempts: int


@dataclass
class _PartitionRun:
    results: list[MessageResult]
    next_offset: int | None = None
    seek_to: int | None = None


class QueueConsumer:
    """
    Consumes record topics in per-partition batches.

    Messages of one partition are handled sequentially in offset order;
    partitions run concurrently, bounded by
    ``partitions_consumed_concurrently``. A failing handler is retried in
    process first; a message that still fails is rerouted to the dead-letter
    topic while its attempt count allows, otherwise dropped. Offsets are
    committed only after every partition worker of the batch has finished.
    """

    def __init__(
        self,
        client: ConsumerClient,
        *,
        settings: QueueSettings,
        topics: Sequence[str],
        dead_letter_producer: QueueProducer,
        metrics: MetricsSink | None = None,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        self._client = client
        self.settings = settings
        self.topics = tuple(topics)
        self._producer = dead_letter_producer
        self._metrics = metrics or NullMetricsSink()
        self._stop_event = threading.Event()
        self._sleep = sleep or self._stop_event.wait
        self._executor: ThreadPoolExecutor | None = None
        self._state = ConsumerState.IDLE
        self._state_lock = threading.Lock()

    @property
    def state(self) -> ConsumerState:
        return self._state

    def connect(self) -> None:
        with self._state_lock:
            if self._state is not ConsumerState.IDLE:
                raise PipelineError(f"Consumer cannot connect from state {self._state.value}.")
            self._client.subscribe(list(self.topics))
            self._executor = ThreadPoolExecutor(
                max_workers=max(1, self.settings.partitions_consumed_concurrently),
                thread_name_prefix="queue-partition",
            )
            self._state = ConsumerState.CONNECTED
        log_event(
            logger,
            logging.INFO,
            "consumer_connected",
            topics=list(self.topics),
            group_id=self.settings.consumer_group_id,
        )

    def poll_once(self, handler: MessageHandler) -> list[MessageResult]:
        """
        Poll one batch, process it and commit the resolved offsets.
        """

        with self._state_lock:
            if self._state not in (ConsumerState.CONNECTED, ConsumerState.CONSUMING):
                raise PipelineError(f"Consumer cannot poll from state {self._state.value}.")
            self._state = ConsumerState.CONSUMING
            executor = self._executor
        assert executor is not None

        batches = self._client.poll(
            timeout_ms=self.settings.max_wait_ms,
            max_records=self.settings.max_batch_size,
        )
        if not batches:
            return []

        futures = {
            partition: executor.submit(self._consume_partition, partition, messages, handler)
            for partition, messages in batches.items()
            if messages
        }
        runs = {partition: future.result() for partition, future in futures.items()}

        offsets = {
            partition: run.next_offset
            for partition, run in runs.items()
            if run.next_offset is not None
        }
        if offsets:
            self._client.commit(offsets)
        for partition, run in runs.items():
            if run.seek_to is not None:
                self._client.seek(partition, run.seek_to)

        results = [result for run in runs.values() for result in run.results]
        log_event(
            logger,
            logging.DEBUG,
            "batch_processed",
            partitions=len(runs),
            messages=len(results),
            committed_partitions=len(offsets),
        )
        return results

    def run(self, handler: MessageHandler, stop_event: threading.Event | None = None) -> None:
        """
        Poll until ``stop_event`` (or ``close``) stops the loop.
        """

        external = stop_event or threading.Event()
        if self._state is ConsumerState.IDLE:
            self.connect()
        while not external.is_set() and not self._stop_event.is_set():
            self.poll_once(handler)

    def close(self) -> None:
        with self._state_lock:
            if self._state is ConsumerState.STOPPED:
                return
            self._state = ConsumerState.STOPPED
            self._stop_event.set()
            executor = self._executor
            self._executor = None
        if executor is not None:
            executor.shutdown(wait=True)
        self._client.close()
        log_event(logger, logging.INFO, "consumer_stopped", topics=list(self.topics))

    def _consume_partition(
        self,
        partition: PartitionKey,
        messages: list[QueueMessage],
        handler: MessageHandler,
    ) -> _PartitionRun:
        run = _PartitionRun(results=[])
        for message in sorted(messages, key=lambda item: item.offset or 0):
            offset = message.offset or 0
            handler_attempts, error = self._handle_with_retries(message, handler)

            if error is None:
                outcome = MessageOutcome.COMMITTED
            else:
                try:
                    outcome = self._reroute_or_drop(message, error)
                except PublishError:
                    # Nothing at or past this offset may be committed.
                    run.seek_to = offset
                    log_event(
                        logger,
                        logging.ERROR,
                        "dead_letter_publish_failed",
                        topic=partition[0],
                        partition=partition[1],
                        offset=offset,
                    )
                    break

            run.next_offset = offset + 1
            run.results.append(
                MessageResult(
                    topic=partition[0],
                    partition=partition[1],
                    offset=offset,
                    outcome=outcome,
                    handler_attempts=handler_attempts,
                )
            )
            self._metrics.counter_inc(
                "queue_messages_processed_total",
                {"topic": partition[0], "outcome": outcome.value},
            )
            self._client.heartbeat()
        return run

    def _handle_with_retries(
        self,
        message: QueueMessage,
        handler: MessageHandler,
    ) -> tuple[int, Exception | None]:
        max_retries = max(0, self.settings.consumer_max_retries)
        delay_ms = float(self.settings.consumer_backoff_ms)
        attempts = 0
        while True:
            attempts += 1
            try:
                handler(message)
                return attempts, None
            except Exception as exc:
                if attempts > max_retries:
                    return attempts, exc
                logger.warning(
                    "Handler attempt %d/%d failed for %s[%s]@%s, retrying in %.0fms: %s",
                    attempts,
                    max_retries + 1,
                    message.topic,
                    message.partition,
                    message.offset,
                    delay_ms,
                    exc,
                )
                self._sleep(delay_ms / 1000.0)
                delay_ms *= self.settings.consumer_backoff_multiplier

    def _reroute_or_drop(self, message: QueueMessage, error: Exception) -> MessageOutcome:
        if message.attempt < self.settings.dead_letter_max_attempts:
            rerouted = message.rerouted(self.settings.dead_letter_topic)
            self._producer.publish_message(rerouted)
            log_event(
                logger,
                logging.WARNING,
                "message_dead_lettered",
                original_topic=message.original_topic,
                dead_letter_topic=self.settings.dead_letter_topic,
                attempt=rerouted.attempt,
                offset=message.offset,
                error=str(error),
            )
            return MessageOutcome.DEAD_LETTERED

        log_event(
            logger,
            logging.ERROR,
            "message_dropped",
            original_topic=message.original_topic,
            attempt=message.attempt,
            offset=message.offset,
            error=str(error),
        )
        return MessageOutcome.DROPPED
