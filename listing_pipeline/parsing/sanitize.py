"""
Text sanitation and field coercion shared by the source extractors.
"""

from __future__ import annotations

import re
from datetime import datetime

from bs4 import BeautifulSoup

from listing_pipeline.domain.records import PatentStatus

ALLOWED_PUNCTUATION = frozenset(".,;:!?'\"()[]/&%$€£#@+-*=_")
MARKUP_HINT = re.compile(r"<[a-zA-Z/!]")
WHITESPACE = re.compile(r"\s+")
AMOUNT_REGEX = re.compile(
    r"(\d[\d,]*(?:\.\d+)?)\s*(k|m|b|thousand|million|billion)?\b",
    flags=re.IGNORECASE,
)
AMOUNT_MULTIPLIERS = {
    "k": 1_000,
    "thousand": 1_000,
    "m": 1_000_000,
    "million": 1_000_000,
    "b": 1_000_000_000,
    "billion": 1_000_000_000,
}
INTEGER_REGEX = re.compile(r"\b(\d{1,2})\b")
DATE_PATTERNS = [
    "%Y-%m-%d",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%Y/%m/%d",
]
DATE_TOKEN_REGEX = re.compile(
    r"\b(?:\d{4}-\d{2}-\d{2}|\d{4}/\d{1,2}/\d{1,2}|\d{1,2}/\d{1,2}/\d{4}|"
    r"\d{1,2}\s+(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\s+\d{4}|"
    r"(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?\s+\d{1,2},\s+\d{4})\b",
    flags=re.IGNORECASE,
)


def sanitize_text(value: str | None) -> str:
    """
    Strip markup, drop characters outside the allow-list and collapse
    whitespace.
    """

    if not value:
        return ""
    text = value
    if MARKUP_HINT.search(text):
        text = BeautifulSoup(text, "html.parser").get_text(" ")
    filtered = "".join(
        char
        for char in text
        if char.isalnum() or char.isspace() or char in ALLOWED_PUNCTUATION
    )
    return WHITESPACE.sub(" ", filtered).strip()


def split_list(value: str | None, *, separators: str = ",;") -> list[str]:
    if not value:
        return []
    pattern = "[" + re.escape(separators) + "]"
    items = (sanitize_text(part) for part in re.split(pattern, value))
    return [item for item in items if item]


def parse_date(value: str | None) -> str | None:
    """
    Return an ISO ``YYYY-MM-DD`` date for the first recognizable date in
    ``value``, or ``None``.
    """

    compact = sanitize_text(value)
    if not compact:
        return None

    for candidate in (compact, *DATE_TOKEN_REGEX.findall(compact)):
        normalized = candidate.replace(".", "")
        for pattern in DATE_PATTERNS:
            try:
                return datetime.strptime(normalized, pattern).date().isoformat()
            except ValueError:
                continue
    return None


def parse_amount(value: str | None) -> float | None:
    """
    Read a money amount such as ``$250,000`` or ``USD 1.5M``.
    """

    if not value:
        return None
    match = AMOUNT_REGEX.search(value)
    if match is None:
        return None
    try:
        number = float(match.group(1).replace(",", ""))
    except ValueError:
        return None
    suffix = (match.group(2) or "").lower()
    return number * AMOUNT_MULTIPLIERS.get(suffix, 1)


def parse_trl(value: str | None) -> int | None:
    """
    Read a Technology Readiness Level; range checks belong to the validator.
    """

    if not value:
        return None
    match = INTEGER_REGEX.search(value)
    if match is None:
        return None
    return int(match.group(1))


def normalize_patent_status(value: str | None, *, default: str | None = None) -> str | None:
    """
    Map free-text patent status onto the closed enumeration.

    Text that matches nothing is returned upper-cased so the validator can
    reject it.
    """

    status = sanitize_text(value).lower()
    if not status:
        return default
    if "pending" in status:
        return PatentStatus.PENDING.value
    if "granted" in status or "issued" in status:
        return PatentStatus.GRANTED.value
    if "provisional" in status:
        return PatentStatus.PROVISIONAL.value
    if "not" in status or "unpatented" in status or "none" in status:
        return PatentStatus.NOT_PATENTED.value
    return status.upper().replace(" ", "_")
