"""Wire schemas for validated records."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from listing_pipeline.domain.records import (
    GrantCandidate,
    TechnologyCandidate,
    ValidatedRecord,
)
from listing_pipeline.errors import ParseError


class TechnologyPayload(BaseModel):
    """Technology listing as carried on the queue."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["technology"] = "technology"
    validated_at: datetime
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    university: str = Field(min_length=1)
    source_url: str
    patent_status: str | None = None
    security_level: str | None = None
    trl: int | None = Field(default=None, ge=1, le=9)
    inventors: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    publication_date: str | None = None
    filing_date: str | None = None
    contact_info: str | None = None
    scraped_at: str


class GrantPayload(BaseModel):
    """Grant opportunity as carried on the queue."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["grant"] = "grant"
    validated_at: datetime
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    agency: str = Field(min_length=1)
    source_url: str
    grant_type: str | None = None
    amount: float = Field(gt=0)
    deadline: str | None = None
    requirements: dict[str, str] = Field(default_factory=dict)
    eligibility: list[str] = Field(default_factory=list)
    focus_areas: list[str] = Field(default_factory=list)
    application_url: str | None = None
    scraped_at: str


RecordPayload = Annotated[Union[TechnologyPayload, GrantPayload], Field(discriminator="kind")]

_payload_adapter: TypeAdapter[TechnologyPayload | GrantPayload] = TypeAdapter(RecordPayload)


def to_payload(record: ValidatedRecord) -> TechnologyPayload | GrantPayload:
    fields = record.as_dict()
    if isinstance(record.candidate, GrantCandidate):
        return GrantPayload(validated_at=record.validated_at, **fields)
    return TechnologyPayload(validated_at=record.validated_at, **fields)


def encode_record(record: ValidatedRecord) -> bytes:
    """Serialize a validated record to UTF-8 JSON bytes."""
    return to_payload(record).model_dump_json().encode("utf-8")


def decode_record(data: bytes | str) -> ValidatedRecord:
    """Rebuild the validated record carried in a queue payload.

    Raises:
        ParseError: If the payload is not a well-formed record.
    """
    try:
        payload = _payload_adapter.validate_json(data)
    except ValidationError as exc:
        raise ParseError(f"Invalid record payload: {exc.error_count()} error(s)") from exc

    fields = payload.model_dump(exclude={"kind", "validated_at"})
    if isinstance(payload, GrantPayload):
        candidate: TechnologyCandidate | GrantCandidate = GrantCandidate(**fields)
    else:
        candidate = TechnologyCandidate(**fields)
    return ValidatedRecord._trusted(candidate, payload.validated_at)
