from listing_pipeline.queue.consumer import (
    ConsumerState,
    MessageOutcome,
    MessageResult,
    QueueConsumer,
)
from listing_pipeline.queue.health import register_health_checks
from listing_pipeline.queue.kafka_client import (
    KafkaConsumerClient,
    QueueClients,
    create_queue_clients,
    validate_queue_settings,
)
from listing_pipeline.queue.messages import (
    ATTEMPT_HEADER,
    ORIGINAL_TOPIC_HEADER,
    QueueMessage,
)
from listing_pipeline.queue.producer import PublishAck, QueueProducer
from listing_pipeline.queue.serialization import decode_record, encode_record

__all__ = [
    "ATTEMPT_HEADER",
    "ConsumerState",
    "KafkaConsumerClient",
    "MessageOutcome",
    "MessageResult",
    "ORIGINAL_TOPIC_HEADER",
    "PublishAck",
    "QueueClients",
    "QueueConsumer",
    "QueueMessage",
    "QueueProducer",
    "create_queue_clients",
    "decode_record",
    "encode_record",
    "register_health_checks",
    "validate_queue_settings",
]
