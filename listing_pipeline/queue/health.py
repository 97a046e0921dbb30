"""
Kafka health probe registration.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from kafka.errors import KafkaError

from listing_pipeline.observability import HealthCheckRegistry

logger = logging.getLogger(__name__)

KAFKA_CHECK_NAME = "kafka"


class BootstrapAware(Protocol):
    def bootstrap_connected(self) -> bool:
        ...


def kafka_probe(client: BootstrapAware, brokers: tuple[str, ...] = ()) -> dict[str, Any]:
    try:
        connected = bool(client.bootstrap_connected())
    except KafkaError as exc:
        logger.warning("Kafka health probe failed: %s", exc)
        return {"status": "down", "brokers": list(brokers), "error": str(exc)}
    return {"status": "up" if connected else "down", "brokers": list(brokers)}


def register_health_checks(
    registry: HealthCheckRegistry,
    client: BootstrapAware,
    *,
    brokers: tuple[str, ...] = (),
) -> None:
    registry.register_check(KAFKA_CHECK_NAME, lambda: kafka_probe(client, brokers))
