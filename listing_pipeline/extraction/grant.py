"""
Grant opportunity extractor.
"""

from __future__ import annotations

from urllib.parse import urljoin

from bs4 import Tag

from listing_pipeline.config.models import GrantSelectors
from listing_pipeline.domain.records import GrantCandidate
from listing_pipeline.extraction.base import ListingExtractor
from listing_pipeline.parsing.sanitize import parse_amount, parse_date, sanitize_text

DEFAULT_GRANT_SELECTORS = GrantSelectors(
    listing=".grant-listing",
    title=".grant-title",
    description=".grant-description",
    amount=".grant-amount",
    deadline=".grant-deadline",
    agency=".grant-agency",
    requirements=".grant-requirements",
    eligibility=".grant-eligibility",
    focus_areas=".grant-focus-areas",
)


class GrantExtractor(ListingExtractor[GrantSelectors]):
    """
    Reads grant listings from a funding agency page.

    The page's own agency text wins over the configured agency name.
    """

    def __init__(
        self,
        *,
        source_url: str,
        agency: str | None = None,
        grant_type: str | None = None,
        source_name: str | None = None,
    ) -> None:
        super().__init__(source_url=source_url, source_name=source_name)
        self.agency = agency or ""
        self.grant_type = grant_type

    def listing_selector(self, selectors: GrantSelectors) -> str:
        return selectors.listing

    def build_candidate(self, node: Tag, selectors: GrantSelectors) -> GrantCandidate:
        return GrantCandidate(
            title=self.select_text(node, selectors.title),
            description=self.select_text(node, selectors.description),
            agency=self.select_text(node, selectors.agency) or self.agency,
            source_url=self.source_url,
            grant_type=self.grant_type,
            amount=self.read_field(
                "amount",
                lambda: parse_amount(self.select_raw_text(node, selectors.amount)),
                None,
            ),
            deadline=self.read_field(
                "deadline",
                lambda: parse_date(self.select_raw_text(node, selectors.deadline)),
                None,
            ),
            requirements=self.read_field(
                "requirements",
                lambda: self._requirements(node, selectors),
                {},
            ),
            eligibility=self.select_list(node, selectors.eligibility),
            focus_areas=self.select_list(node, selectors.focus_areas),
            application_url=self.read_field(
                "application_url",
                lambda: self._application_url(node, selectors),
                None,
            ),
        )

    def _requirements(self, node: Tag, selectors: GrantSelectors) -> dict[str, str]:
        if not selectors.requirements:
            return {}
        requirements: dict[str, str] = {}
        for block in node.select(selectors.requirements):
            keys = block.select(selectors.requirement_key)
            values = block.select(selectors.requirement_value)
            for key_node, value_node in zip(keys, values):
                key = sanitize_text(key_node.get_text(" ", strip=True)).rstrip(":").strip()
                if key:
                    requirements[key] = sanitize_text(value_node.get_text(" ", strip=True))
        return requirements

    def _application_url(self, node: Tag, selectors: GrantSelectors) -> str | None:
        if not selectors.application_link:
            return None
        link = node.select_one(selectors.application_link)
        if link is None:
            return None
        href = str(link.get("href") or "").strip()
        if not href:
            return None
        return urljoin(self.source_url, href)
