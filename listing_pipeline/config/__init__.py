"""
Config helpers for listing scrapers and the queue.
"""

from listing_pipeline.config.loader import (
    SourceDefinition,
    get_queue_settings,
    get_scraper_settings,
    load_source_options,
)
from listing_pipeline.config.models import (
    CircuitBreakerConfig,
    GrantSelectors,
    ProxyConfig,
    QueueSettings,
    RateLimitConfig,
    RetryPolicy,
    ScraperConfig,
    ScraperSettings,
    TechnologySelectors,
    UniversitySelectors,
    ValidationSettings,
)

__all__ = [
    "CircuitBreakerConfig",
    "GrantSelectors",
    "ProxyConfig",
    "QueueSettings",
    "RateLimitConfig",
    "RetryPolicy",
    "ScraperConfig",
    "ScraperSettings",
    "SourceDefinition",
    "TechnologySelectors",
    "UniversitySelectors",
    "ValidationSettings",
    "get_queue_settings",
    "get_scraper_settings",
    "load_source_options",
]
