"""
listing_pipeline/domain package marker.
"""

from listing_pipeline.domain.records import (
    CandidateRecord,
    GrantCandidate,
    GrantType,
    PatentStatus,
    SecurityClassification,
    SourceKind,
    TechnologyCandidate,
    ValidatedRecord,
)
from listing_pipeline.domain.summaries import ScrapeSummary

__all__ = [
    "CandidateRecord",
    "GrantCandidate",
    "GrantType",
    "PatentStatus",
    "ScrapeSummary",
    "SecurityClassification",
    "SourceKind",
    "TechnologyCandidate",
    "ValidatedRecord",
]
