from listing_pipeline.scrapers.engine import ScrapingEngine
from listing_pipeline.scrapers.factory import KIND_DEFAULTS, ScraperFactory, merge_options
from listing_pipeline.scrapers.handle import ScraperHandle

__all__ = [
    "KIND_DEFAULTS",
    "ScraperFactory",
    "ScraperHandle",
    "ScrapingEngine",
    "merge_options",
]
