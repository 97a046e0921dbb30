"""
Container health check: Kafka bootstrap servers must be reachable.
"""

from __future__ import annotations

import json
import sys

from listing_pipeline.config import get_queue_settings
from listing_pipeline.errors import PipelineError
from listing_pipeline.observability import DictHealthCheckRegistry
from listing_pipeline.queue import create_queue_clients, register_health_checks


def main() -> int:
    settings = get_queue_settings()
    try:
        clients = create_queue_clients(settings)
    except PipelineError as exc:
        print(json.dumps({"kafka": {"status": "down", "error": str(exc)}}), file=sys.stderr)
        return 1

    registry = DictHealthCheckRegistry()
    register_health_checks(registry, clients.raw_producer, brokers=settings.brokers)
    try:
        results = registry.run()
    finally:
        clients.producer.close()

    print(json.dumps(results))
    return 0 if results.get("kafka", {}).get("status") == "up" else 1


if __name__ == "__main__":
    raise SystemExit(main())
