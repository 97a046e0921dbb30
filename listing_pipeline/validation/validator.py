"""
Structural and business validation for extracted candidates.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from listing_pipeline.config.models import ValidationSettings
from listing_pipeline.domain.records import (
    CandidateRecord,
    GrantCandidate,
    GrantType,
    PatentStatus,
    SecurityClassification,
    TechnologyCandidate,
    ValidatedRecord,
)

REQUIRED = "required"
TOO_SHORT = "too_short"
OUT_OF_RANGE = "out_of_range"
INVALID_ENUM = "invalid_enum"
INVALID_DATE = "invalid_date"
DEADLINE_TOO_SOON = "deadline_too_soon"

MIN_TRL = 1
MAX_TRL = 9


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    reason: str


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating one candidate; ``record`` is set only when valid.
    """

    is_valid: bool
    errors: tuple[ValidationIssue, ...] = ()
    record: ValidatedRecord | None = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_iso_date(value: str) -> date | None:
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


class RecordValidator:
    """
    Checks candidates against required fields, ranges, enumerations and
    dates. Holds no state beyond its settings and clock.
    """

    def __init__(
        self,
        settings: ValidationSettings | None = None,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.settings = settings or ValidationSettings()
        self._clock = clock

    def validate(self, candidate: CandidateRecord) -> ValidationResult:
        validated_at = self._clock()
        if validated_at.tzinfo is None:
            validated_at = validated_at.replace(tzinfo=timezone.utc)

        issues: list[ValidationIssue] = []
        self._check_common(candidate, issues)
        if isinstance(candidate, TechnologyCandidate):
            self._check_technology(candidate, issues)
        elif isinstance(candidate, GrantCandidate):
            self._check_grant(candidate, validated_at, issues)
        else:
            raise TypeError(f"Unsupported candidate type: {type(candidate).__name__}")

        if issues:
            return ValidationResult(is_valid=False, errors=tuple(issues))
        return ValidationResult(
            is_valid=True,
            record=ValidatedRecord._trusted(candidate, validated_at),
        )

    def _check_common(self, candidate: CandidateRecord, issues: list[ValidationIssue]) -> None:
        if not (candidate.title or "").strip():
            issues.append(ValidationIssue("title", REQUIRED))

        description = (candidate.description or "").strip()
        if not description:
            issues.append(ValidationIssue("description", REQUIRED))
        elif len(description) < self.settings.min_description_length:
            issues.append(ValidationIssue("description", TOO_SHORT))

    def _check_technology(
        self,
        candidate: TechnologyCandidate,
        issues: list[ValidationIssue],
    ) -> None:
        if not (candidate.university or "").strip():
            issues.append(ValidationIssue("university", REQUIRED))

        if candidate.trl is not None and not MIN_TRL <= candidate.trl <= MAX_TRL:
            issues.append(ValidationIssue("trl", OUT_OF_RANGE))

        if candidate.patent_status is not None and not _is_member(
            PatentStatus, candidate.patent_status
        ):
            issues.append(ValidationIssue("patent_status", INVALID_ENUM))

        if candidate.security_level is not None and not _is_member(
            SecurityClassification, candidate.security_level
        ):
            issues.append(ValidationIssue("security_level", INVALID_ENUM))

        for field_name in ("publication_date", "filing_date"):
            value = getattr(candidate, field_name)
            if value is not None and _parse_iso_date(value) is None:
                issues.append(ValidationIssue(field_name, INVALID_DATE))

    def _check_grant(
        self,
        candidate: GrantCandidate,
        validated_at: datetime,
        issues: list[ValidationIssue],
    ) -> None:
        if not (candidate.agency or "").strip():
            issues.append(ValidationIssue("agency", REQUIRED))

        if candidate.amount is None:
            issues.append(ValidationIssue("amount", REQUIRED))
        elif not 0 < candidate.amount <= self.settings.max_amount_threshold:
            issues.append(ValidationIssue("amount", OUT_OF_RANGE))

        if candidate.grant_type is not None and not _is_member(GrantType, candidate.grant_type):
            issues.append(ValidationIssue("grant_type", INVALID_ENUM))

        if candidate.deadline is None:
            issues.append(ValidationIssue("deadline", REQUIRED))
            return
        deadline = _parse_iso_date(candidate.deadline)
        if deadline is None:
            issues.append(ValidationIssue("deadline", INVALID_DATE))
            return
        earliest = validated_at.date() + timedelta(days=self.settings.min_deadline_days)
        if deadline < earliest:
            issues.append(ValidationIssue("deadline", DEADLINE_TOO_SOON))


def _is_member(enum_type: type, value: str) -> bool:
    return value in {member.value for member in enum_type}
