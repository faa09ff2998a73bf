"""Blocklist parsing, fetching and matching."""

from .engine import SERVICE_REASON, BlocklistEngine
from .fetch import fetch_text, fetch_text_async
from .parser import (
    LineKind,
    ParsedLine,
    ParseResult,
    extract_title,
    is_valid_source,
    parse_blocklist,
    parse_line,
)

__all__ = [
    "SERVICE_REASON",
    "BlocklistEngine",
    "LineKind",
    "ParseResult",
    "ParsedLine",
    "extract_title",
    "fetch_text",
    "fetch_text_async",
    "is_valid_source",
    "parse_blocklist",
    "parse_line",
]
