"""
University technology index extractor.
"""

from __future__ import annotations

from bs4 import Tag

from listing_pipeline.config.models import UniversitySelectors
from listing_pipeline.domain.records import PatentStatus, TechnologyCandidate
from listing_pipeline.extraction.base import ListingExtractor
from listing_pipeline.parsing.sanitize import normalize_patent_status, parse_date

MAX_DESCRIPTION_LENGTH = 5000
KNOWN_PATENT_STATUSES = {status.value for status in PatentStatus}


class UniversityIndexExtractor(ListingExtractor[UniversitySelectors]):
    """
    Reads the technology index pages universities publish.

    Index pages are looser than dedicated listing pages: descriptions are
    truncated and an unreadable patent status falls back to NOT_PATENTED.
    """

    def __init__(
        self,
        *,
        source_url: str,
        university: str,
        source_name: str | None = None,
        security_level: str | None = None,
    ) -> None:
        super().__init__(source_url=source_url, source_name=source_name)
        self.university = university
        self.security_level = security_level

    def listing_selector(self, selectors: UniversitySelectors) -> str:
        return selectors.listing_container

    def build_candidate(self, node: Tag, selectors: UniversitySelectors) -> TechnologyCandidate:
        description = self.select_text(node, selectors.description)
        return TechnologyCandidate(
            title=self.select_text(node, selectors.title),
            description=description[:MAX_DESCRIPTION_LENGTH],
            university=self.university,
            source_url=self.source_url,
            patent_status=self.read_field(
                "patent_status",
                lambda: self._patent_status(node, selectors),
                PatentStatus.NOT_PATENTED.value,
            ),
            security_level=self.security_level,
            inventors=self.select_list(node, selectors.inventors),
            keywords=self.select_list(node, selectors.keywords),
            filing_date=self.read_field(
                "filing_date",
                lambda: parse_date(self.select_raw_text(node, selectors.filing_date)),
                None,
            ),
        )

    def _patent_status(self, node: Tag, selectors: UniversitySelectors) -> str:
        status = normalize_patent_status(self.select_raw_text(node, selectors.patent_status))
        if status not in KNOWN_PATENT_STATUSES:
            return PatentStatus.NOT_PATENTED.value
        return status
