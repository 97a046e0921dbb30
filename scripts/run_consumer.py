"""
Consume listing topics and log each decoded record.
"""

from __future__ import annotations

import argparse
import logging
import signal
import threading

from listing_pipeline.config import get_queue_settings
from listing_pipeline.errors import PipelineError
from listing_pipeline.logging_utils import log_event
from listing_pipeline.queue import QueueMessage, create_queue_clients, decode_record

logger = logging.getLogger("run_consumer")


def log_record(message: QueueMessage) -> None:
    record = decode_record(message.payload)
    log_event(
        logger,
        logging.INFO,
        "record_consumed",
        topic=message.topic,
        partition=message.partition,
        offset=message.offset,
        attempt=message.attempt,
        kind=record.kind,
        title=record.title,
        source_url=record.source_url,
    )


def main() -> int:
    parser = argparse.ArgumentParser(description="Consume listing topics.")
    parser.add_argument(
        "--include-dead-letter",
        action="store_true",
        help="Also consume the dead-letter topic as a delayed retry path.",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level.")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(name)s %(message)s")

    settings = get_queue_settings()
    topics = sorted(set(settings.topics.values()))
    if args.include_dead_letter:
        topics.append(settings.dead_letter_topic)

    try:
        clients = create_queue_clients(settings, consume_topics=topics)
    except PipelineError as exc:
        logger.error("Unable to start consumer: %s", exc)
        return 2
    consumer = clients.consumer
    assert consumer is not None

    stop_event = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop_event.set())
    signal.signal(signal.SIGTERM, lambda *_: stop_event.set())

    try:
        consumer.run(log_record, stop_event)
    finally:
        clients.producer.close()
        consumer.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
