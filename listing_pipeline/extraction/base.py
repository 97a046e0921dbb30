"""
Selector-driven extractor base class.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from typing import Generic, TypeVar

from bs4 import Tag

from listing_pipeline.config.models import FieldSelectors
from listing_pipeline.domain.records import CandidateRecord
from listing_pipeline.parsing.html_parser import DocumentTree
from listing_pipeline.parsing.sanitize import sanitize_text, split_list

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=FieldSelectors)
V = TypeVar("V")


class ListingExtractor(ABC, Generic[S]):
    """
    Maps listing elements of a parsed page to candidate records.

    Field mapping is purely selector-driven. A field that cannot be read is
    left empty; the candidate is still emitted so the validator decides.
    """

    def __init__(self, *, source_url: str, source_name: str | None = None) -> None:
        self.source_url = source_url
        self.source_name = source_name or source_url

    def extract(self, tree: DocumentTree, selectors: S) -> Iterator[CandidateRecord]:
        """
        Yield one candidate per listing element, in document order.

        The returned generator is lazy and can only be consumed once.
        """

        for node in tree.select(self.listing_selector(selectors)):
            yield self.build_candidate(node, selectors)

    @abstractmethod
    def listing_selector(self, selectors: S) -> str:
        """
        CSS selector matching one element per listing.
        """

    @abstractmethod
    def build_candidate(self, node: Tag, selectors: S) -> CandidateRecord:
        """
        Build the candidate for one listing element.
        """

    def read_field(self, field_name: str, reader: Callable[[], V], default: V) -> V:
        try:
            return reader()
        except (AttributeError, TypeError, ValueError) as exc:
            logger.debug(
                "Field extraction failed source=%s field=%s error=%s",
                self.source_name,
                field_name,
                exc,
            )
            return default

    @staticmethod
    def select_text(node: Tag, selector: str | None) -> str:
        if not selector:
            return ""
        found = node.select(selector)
        return sanitize_text(" ".join(item.get_text(" ", strip=True) for item in found))

    @staticmethod
    def select_raw_text(node: Tag, selector: str | None) -> str | None:
        if not selector:
            return None
        found = node.select_one(selector)
        if found is None:
            return None
        return found.get_text(" ", strip=True)

    @staticmethod
    def select_list(node: Tag, selector: str | None) -> list[str]:
        """
        Text of every match; a single match is split on commas instead.
        """

        if not selector:
            return []
        found = node.select(selector)
        if len(found) == 1:
            return split_list(found[0].get_text(" ", strip=True))
        items = (sanitize_text(item.get_text(" ", strip=True)) for item in found)
        return [item for item in items if item]
