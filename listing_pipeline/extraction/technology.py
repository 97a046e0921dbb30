"""
Technology-transfer listing extractor.
"""

from __future__ import annotations

from bs4 import Tag

from listing_pipeline.config.models import TechnologySelectors
from listing_pipeline.domain.records import TechnologyCandidate
from listing_pipeline.extraction.base import ListingExtractor
from listing_pipeline.parsing.sanitize import normalize_patent_status, parse_date, parse_trl


class TechnologyExtractor(ListingExtractor[TechnologySelectors]):
    """
    Reads technology listings from a university tech-transfer office page.
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

    def listing_selector(self, selectors: TechnologySelectors) -> str:
        return selectors.listing

    def build_candidate(self, node: Tag, selectors: TechnologySelectors) -> TechnologyCandidate:
        return TechnologyCandidate(
            title=self.select_text(node, selectors.title),
            description=self.select_text(node, selectors.description),
            university=self.university,
            source_url=self.source_url,
            patent_status=self.read_field(
                "patent_status",
                lambda: normalize_patent_status(self.select_raw_text(node, selectors.patent_status)),
                None,
            ),
            security_level=self.security_level,
            trl=self.read_field(
                "trl",
                lambda: parse_trl(self.select_raw_text(node, selectors.trl)),
                None,
            ),
            inventors=self.select_list(node, selectors.inventors),
            categories=self.select_list(node, selectors.categories),
            keywords=self.select_list(node, selectors.keywords),
            publication_date=self.read_field(
                "publication_date",
                lambda: parse_date(self.select_raw_text(node, selectors.publication_date)),
                None,
            ),
            filing_date=self.read_field(
                "filing_date",
                lambda: parse_date(self.select_raw_text(node, selectors.filing_date)),
                None,
            ),
            contact_info=self.select_text(node, selectors.contact_info) or None,
        )
