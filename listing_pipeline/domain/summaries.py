"""
listing_pipeline/domain/summaries.py

Outcome models for scrape runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ScrapeSummary:
    """
    Summary for one source scrape cycle.
    """

    source: str
    kind: str
    status: str
    records_extracted: int = 0
    records_valid: int = 0
    records_invalid: int = 0
    records_published: int = 0
    publish_failures: int = 0
    duration_ms: int = 0
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {
            "source": self.source,
            "kind": self.kind,
            "status": self.status,
            "records_extracted": self.records_extracted,
            "records_valid": self.records_valid,
            "records_invalid": self.records_invalid,
            "records_published": self.records_published,
            "publish_failures": self.publish_failures,
            "duration_ms": self.duration_ms,
            "errors": list(self.errors),
        }
