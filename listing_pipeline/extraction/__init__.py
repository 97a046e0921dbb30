from listing_pipeline.extraction.base import ListingExtractor
from listing_pipeline.extraction.grant import DEFAULT_GRANT_SELECTORS, GrantExtractor
from listing_pipeline.extraction.technology import TechnologyExtractor
from listing_pipeline.extraction.university import (
    MAX_DESCRIPTION_LENGTH,
    UniversityIndexExtractor,
)

__all__ = [
    "DEFAULT_GRANT_SELECTORS",
    "GrantExtractor",
    "ListingExtractor",
    "MAX_DESCRIPTION_LENGTH",
    "TechnologyExtractor",
    "UniversityIndexExtractor",
]
