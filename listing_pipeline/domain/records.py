"""
listing_pipeline/domain/records.py

Record types flowing through extraction, validation and publishing.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union


class SourceKind(str, Enum):
    TECHNOLOGY = "technology"
    GRANT = "grant"
    UNIVERSITY = "university"


class PatentStatus(str, Enum):
    PENDING = "PENDING"
    GRANTED = "GRANTED"
    PROVISIONAL = "PROVISIONAL"
    NOT_PATENTED = "NOT_PATENTED"


class SecurityClassification(str, Enum):
    PUBLIC = "PUBLIC"
    INTERNAL = "INTERNAL"
    CONFIDENTIAL = "CONFIDENTIAL"
    RESTRICTED = "RESTRICTED"


class GrantType(str, Enum):
    SBIR = "SBIR"
    STTR = "STTR"
    FEDERAL = "FEDERAL"
    STATE = "STATE"
    PRIVATE = "PRIVATE"
    FOUNDATION = "FOUNDATION"


@dataclass
class TechnologyCandidate:
    """
    Unvalidated technology-transfer listing.

    Produced by the technology and university-index extractors. Dates are ISO
    ``YYYY-MM-DD`` strings or ``None`` when the source value could not be read.
    """

    title: str
    description: str
    university: str
    source_url: str
    patent_status: str | None = None
    security_level: str | None = None
    trl: int | None = None
    inventors: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    publication_date: str | None = None
    filing_date: str | None = None
    contact_info: str | None = None
    scraped_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def kind(self) -> str:
        return "technology"


@dataclass
class GrantCandidate:
    """
    Unvalidated grant opportunity.
    """

    title: str
    description: str
    agency: str
    source_url: str
    grant_type: str | None = None
    amount: float | None = None
    deadline: str | None = None
    requirements: dict[str, str] = field(default_factory=dict)
    eligibility: list[str] = field(default_factory=list)
    focus_areas: list[str] = field(default_factory=list)
    application_url: str | None = None
    scraped_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @property
    def kind(self) -> str:
        return "grant"


CandidateRecord = Union[TechnologyCandidate, GrantCandidate]

_TRUSTED = object()


class ValidatedRecord:
    """
    A candidate that passed validation; the only type allowed onto the queue.

    Instances come from ``RecordValidator.validate`` or from decoding a queue
    payload. Calling the constructor directly raises ``TypeError``.
    """

    __slots__ = ("_candidate", "_validated_at")

    def __init__(
        self,
        candidate: CandidateRecord,
        validated_at: datetime,
        *,
        _token: object = None,
    ) -> None:
        if _token is not _TRUSTED:
            raise TypeError("ValidatedRecord can only be produced by the record validator.")
        self._candidate = candidate
        self._validated_at = validated_at

    @classmethod
    def _trusted(cls, candidate: CandidateRecord, validated_at: datetime) -> ValidatedRecord:
        return cls(copy.deepcopy(candidate), validated_at, _token=_TRUSTED)

    @property
    def candidate(self) -> CandidateRecord:
        """
        A copy of the validated fields; changing it does not touch the record.
        """

        return copy.deepcopy(self._candidate)

    @property
    def kind(self) -> str:
        return self._candidate.kind

    @property
    def validated_at(self) -> datetime:
        return self._validated_at

    @property
    def source_url(self) -> str:
        return self._candidate.source_url

    @property
    def title(self) -> str:
        return self._candidate.title

    def as_dict(self) -> dict[str, Any]:
        return {
            item.name: copy.deepcopy(getattr(self._candidate, item.name))
            for item in fields(self._candidate)
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ValidatedRecord):
            return NotImplemented
        return self._candidate == other._candidate and self._validated_at == other._validated_at

    def __hash__(self) -> int:
        return hash((self.kind, self._candidate.source_url, self._candidate.title, self._validated_at))

    def __repr__(self) -> str:
        return f"ValidatedRecord(kind={self.kind!r}, title={self.title!r})"
