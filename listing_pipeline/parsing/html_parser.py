"""
Markup to document tree conversion.
"""

from __future__ import annotations

from bs4 import BeautifulSoup, Tag

from listing_pipeline.errors import ParseError

DocumentTree = BeautifulSoup


def parse(html: str | bytes | None, *, parser: str = "html.parser") -> DocumentTree:
    """
    Parse raw markup into a queryable tree.

    Raises ``ParseError`` for empty or undecodable input and for content that
    contains no elements at all. The caller decides whether to retry.
    """

    if html is None:
        raise ParseError("No markup to parse.")
    if isinstance(html, bytes):
        try:
            html = html.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(f"Markup is not valid UTF-8: {exc}") from exc
    if not html.strip():
        raise ParseError("Markup is empty.")

    try:
        tree = BeautifulSoup(html, parser)
    except Exception as exc:
        raise ParseError(f"Markup could not be parsed: {exc}") from exc

    if tree.find(lambda node: isinstance(node, Tag)) is None:
        raise ParseError("Markup contains no elements.")
    return tree
