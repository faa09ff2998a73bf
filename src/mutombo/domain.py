"""Helpers for turning raw query strings into hostnames.

Brief:
  Requests arrive as either a bare host (``example.com``) or a full URL
  (``https://www.example.com/watch?v=1``). The gateway only ever reasons
  about the lowercase hostname part.
"""

from __future__ import annotations

import functools
import re

# Characters accepted in a raw query; anything else is rejected before the
# blocklist is consulted.
QUERY_PATTERN = re.compile(r"^[a-zA-Z0-9\-._~:/?#\[\]@!$&'()*+,;=%]*$")


def is_valid_query(query: str) -> bool:
    """Brief: Return True when a raw query is non-empty and uses URL characters only.

    Inputs:
      - query: Raw request string.

    Outputs:
      - bool

    Example:
      >>> is_valid_query("https://example.com/a?b=c")
      True
      >>> is_valid_query("<script>")
      False
    """

    if not isinstance(query, str) or not query.strip():
        return False
    return bool(QUERY_PATTERN.match(query.strip()))


def strip_url_to_domain(url: str) -> str:
    """Brief: Reduce a URL (or bare host) to its host part.

    Inputs:
      - url: e.g. ``https://www.youtube.com/watch?v=``.

    Outputs:
      - str: host without scheme, leading ``www.`` or path.

    Example:
      >>> strip_url_to_domain("https://www.youtube.com/watch?v=")
      'youtube.com'
    """

    domain = url.strip()
    if domain.startswith("http://"):
        domain = domain[len("http://") :]
    elif domain.startswith("https://"):
        domain = domain[len("https://") :]
    if domain.startswith("www."):
        domain = domain[len("www.") :]
    if "/" in domain:
        domain = domain.split("/", 1)[0]
    return domain


@functools.lru_cache(maxsize=1024)
def normalize_domain(domain: str) -> str:
    """
    Normalize a domain name for set membership and cache keys.

    Inputs:
        domain: Raw domain name string (may have trailing dot, mixed case)

    Outputs:
        Normalized lowercase domain without surrounding whitespace or trailing dot

    Example:
        >>> normalize_domain(" Example.COM. ")
        'example.com'
    """
    return domain.strip().rstrip(".").lower()


def canonicalize(query: str) -> str:
    """Brief: Strip a raw query to its host and normalize it.

    Inputs:
      - query: URL or bare host.

    Outputs:
      - str: lowercase hostname.
    """

    return normalize_domain(strip_url_to_domain(query.strip().lower()))
