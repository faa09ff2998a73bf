"""Tokenizer for the blocklist dialects the gateway understands.

Brief:
  Each line of a downloaded list is classified into exactly one of the
  supported shapes and, where it carries a domain, turned into a typed
  ParsedLine. Supported shapes:

    - ABP / AdGuard:  ``||ads.example.com^`` (optionally ``$options``)
    - dnsmasq:        ``local=/ads.example.com/``
    - hosts file:     ``0.0.0.0 ads.example.com`` (any IP literal)

  Lines containing ``!`` or starting with ``#`` are comments; anything else
  is dropped.
"""

from __future__ import annotations

import enum
import ipaddress
import re
from dataclasses import dataclass, field
from typing import Optional, Set

# A block entry as accepted by the format gate: optional '||', '|' or '@'
# prefix, a non-whitespace body, a mandatory '^' and optional '$options'.
BLOCK_ENTRY_PATTERN = re.compile(r"^(\|\|?|@)?[^\s]+?\^(\$[^\s]+)?$")

_TITLE_TOKEN = "title:"


class LineKind(enum.Enum):
    ABP = "abp"
    DNSMASQ = "dnsmasq"
    HOSTS = "hosts"


@dataclass(frozen=True)
class ParsedLine:
    """Brief: One domain extracted from a list line.

    Inputs:
      - kind: LineKind of the source line.
      - domain: Lowercase domain.
      - options: ABP ``$options`` suffix without the ``$`` (empty otherwise).
    """

    kind: LineKind
    domain: str
    options: str = ""


@dataclass
class ParseResult:
    """Brief: Outcome of parsing a whole list payload."""

    domains: Set[str] = field(default_factory=set)
    title: Optional[str] = None
    dropped: int = 0


def _is_comment(line: str) -> bool:
    return "!" in line or line.startswith("#")


def _clean_domain(text: str) -> Optional[str]:
    domain = text.strip().lower()
    if not domain or any(ch.isspace() for ch in domain):
        return None
    return domain


def _parse_abp(line: str) -> Optional[ParsedLine]:
    if not line.startswith("||") or "^" not in line:
        return None
    body, _, rest = line[2:].partition("^")
    domain = _clean_domain(body)
    if domain is None:
        return None
    options = rest[1:] if rest.startswith("$") else ""
    return ParsedLine(LineKind.ABP, domain, options)


def _parse_dnsmasq(line: str) -> Optional[ParsedLine]:
    if not line.startswith("local=/"):
        return None
    body = line[len("local=/") :]
    if not body.endswith("/"):
        return None
    domain = _clean_domain(body[:-1])
    if domain is None or "/" in domain:
        return None
    return ParsedLine(LineKind.DNSMASQ, domain)


def _parse_hosts(line: str) -> Optional[ParsedLine]:
    parts = line.split()
    if len(parts) < 2:
        return None
    try:
        ipaddress.ip_address(parts[0])
    except ValueError:
        return None
    domain = _clean_domain(parts[1])
    if domain is None:
        return None
    return ParsedLine(LineKind.HOSTS, domain)


_PARSERS = (_parse_abp, _parse_dnsmasq, _parse_hosts)


def parse_line(raw: str) -> Optional[ParsedLine]:
    """Brief: Classify a single list line.

    Inputs:
      - raw: One line of list text.

    Outputs:
      - ParsedLine or None for comments, blanks and unrecognized lines.

    Example:
      >>> parse_line("||ads.example.com^$third-party")
      ParsedLine(kind=<LineKind.ABP: 'abp'>, domain='ads.example.com', options='third-party')
      >>> parse_line("0.0.0.0 86apple.com").domain
      '86apple.com'
      >>> parse_line("# hosts header") is None
      True
    """

    line = raw.strip()
    if not line or _is_comment(line):
        return None
    for parser in _PARSERS:
        parsed = parser(line)
        if parsed is not None:
            return parsed
    return None


def extract_title(payload: str) -> Optional[str]:
    """Brief: Find a ``Title:`` header in a list's comment lines.

    Inputs:
      - payload: Whole list text.

    Outputs:
      - Lowercased text after the last ``title:`` token of the first comment
        line carrying one, or None.

    Example:
      >>> extract_title("! Title: AdGuard DNS filter\\n||x.com^")
      'adguard dns filter'
    """

    for raw in payload.splitlines():
        line = raw.strip()
        if not line or line[0] not in "!#":
            continue
        lowered = line.lower()
        if _TITLE_TOKEN in lowered:
            return lowered.split(_TITLE_TOKEN)[-1].strip()
    return None


def first_content_line(payload: str) -> Optional[str]:
    for raw in payload.splitlines():
        if raw.strip():
            return raw.strip()
    return None


def parse_blocklist(payload: str) -> ParseResult:
    """Brief: Parse a list payload into its domain set and title.

    Inputs:
      - payload: Whole list text.

    Outputs:
      - ParseResult with lowercase domains, the header title (if any) and the
        number of non-comment lines that were dropped.

    Example:
      >>> r = parse_blocklist("! Title: Test List\\n||ads.example.com^\\n# comment")
      >>> sorted(r.domains), r.title
      (['ads.example.com'], 'test list')
    """

    result = ParseResult(title=extract_title(payload))
    for raw in payload.splitlines():
        line = raw.strip()
        if not line or _is_comment(line):
            continue
        parsed = parse_line(line)
        if parsed is None:
            result.dropped += 1
            continue
        result.domains.add(parsed.domain)
    return result


def is_valid_source(payload: str) -> bool:
    """Brief: Format gate for candidate lists.

    Inputs:
      - payload: Downloaded list text.

    Outputs:
      - bool: True iff at least one trimmed, non-empty line is a block entry.

    Example:
      >>> is_valid_source("||x.com^")
      True
      >>> is_valid_source("just text\\nno rules here")
      False
    """

    for raw in payload.splitlines():
        line = raw.strip()
        if line and BLOCK_ENTRY_PATTERN.match(line):
            return True
    return False
