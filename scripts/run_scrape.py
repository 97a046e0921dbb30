"""
Run listing scraping from CLI.
"""

from __future__ import annotations

import argparse
import json
import logging

from listing_pipeline.config import get_queue_settings, get_scraper_settings
from listing_pipeline.errors import PipelineError
from listing_pipeline.queue import create_queue_clients
from listing_pipeline.scrapers import ScraperFactory, ScrapingEngine


def main() -> int:
    parser = argparse.ArgumentParser(description="Scrape listing sources and publish them to Kafka.")
    parser.add_argument(
        "--source",
        dest="sources",
        action="append",
        default=None,
        help="Optional source name from the config file; repeatable.",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level.")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(name)s %(message)s")

    settings = get_scraper_settings()
    queue_settings = get_queue_settings()
    try:
        clients = create_queue_clients(queue_settings)
    except PipelineError as exc:
        print(json.dumps({"error": str(exc)}))
        return 2

    factory = ScraperFactory(
        settings=settings,
        producer=clients.producer,
        topics=queue_settings.topics,
    )
    engine = ScrapingEngine(settings=settings, factory=factory, producer=clients.producer)
    factory.start_reporting()
    try:
        summaries = engine.run(names=args.sources)
    except (PipelineError, FileNotFoundError, ValueError) as exc:
        print(json.dumps({"error": str(exc)}))
        return 1
    finally:
        engine.shutdown()

    print(json.dumps([summary.as_dict() for summary in summaries], indent=2))
    return 0 if all(summary.status != "failed" for summary in summaries) else 1


if __name__ == "__main__":
    raise SystemExit(main())
