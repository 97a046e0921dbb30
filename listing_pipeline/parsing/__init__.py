"""
Parsing and sanitation exports.
"""

from listing_pipeline.parsing.html_parser import DocumentTree, parse
from listing_pipeline.parsing.sanitize import (
    normalize_patent_status,
    parse_amount,
    parse_date,
    parse_trl,
    sanitize_text,
    split_list,
)

__all__ = [
    "DocumentTree",
    "normalize_patent_status",
    "parse",
    "parse_amount",
    "parse_date",
    "parse_trl",
    "sanitize_text",
    "split_list",
]
