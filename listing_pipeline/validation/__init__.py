from listing_pipeline.validation.validator import (
    DEADLINE_TOO_SOON,
    INVALID_DATE,
    INVALID_ENUM,
    OUT_OF_RANGE,
    REQUIRED,
    TOO_SHORT,
    RecordValidator,
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    "DEADLINE_TOO_SOON",
    "INVALID_DATE",
    "INVALID_ENUM",
    "OUT_OF_RANGE",
    "REQUIRED",
    "TOO_SHORT",
    "RecordValidator",
    "ValidationIssue",
    "ValidationResult",
]
