"""
Brief: Tests for mutombo.blocklist.parser (tokenizer, title extraction, format gate).

Inputs:
  - None

Outputs:
  - None
"""

import pytest

from mutombo.blocklist.parser import (
    LineKind,
    extract_title,
    first_content_line,
    is_valid_source,
    parse_blocklist,
    parse_line,
)


def test_parse_abp_sample_yields_domains_and_title():
    """
    Brief: The canonical ABP sample parses to two domains and a lowercased title.

    Inputs:
      - None

    Outputs:
      - None: Asserts domain set and title
    """
    payload = "! Title: Test List\n||ads.example.com^\n||track.example.com^\n# comment"
    result = parse_blocklist(payload)
    assert result.domains == {"ads.example.com", "track.example.com"}
    assert result.title == "test list"
    assert result.dropped == 0


def test_parse_hosts_line():
    parsed = parse_line("0.0.0.0 86apple.com")
    assert parsed is not None
    assert parsed.kind is LineKind.HOSTS
    assert parsed.domain == "86apple.com"


def test_parse_hosts_line_with_ipv6_and_uppercase():
    parsed = parse_line("  ::1   LocalHost.Example  ")
    assert parsed.kind is LineKind.HOSTS
    assert parsed.domain == "localhost.example"


def test_parse_hosts_requires_ip_literal():
    """
    Brief: A two-token line whose first token is not an IP is dropped.

    Inputs:
      - None

    Outputs:
      - None: Asserts parse_line returns None
    """
    assert parse_line("blocked ads.example.com") is None


def test_parse_dnsmasq_line():
    parsed = parse_line("local=/Ads.Example.org/")
    assert parsed.kind is LineKind.DNSMASQ
    assert parsed.domain == "ads.example.org"


def test_parse_abp_options_are_kept_separately():
    parsed = parse_line("||cdn.example.com^$third-party")
    assert parsed.kind is LineKind.ABP
    assert parsed.domain == "cdn.example.com"
    assert parsed.options == "third-party"


@pytest.mark.parametrize(
    "line",
    [
        "",
        "   ",
        "# hosts header",
        "! comment",
        "||ads.example.com^ ! trailing comment",
        "@@||allowed.example.com^",
        "/banner/*/img^",
        "local=/missing-slash",
    ],
)
def test_comments_and_unknown_lines_are_skipped(line):
    assert parse_line(line) is None


def test_dropped_lines_are_counted():
    payload = "||a.example^\nnot a rule\n127.0.0.1 b.example\nanother junk line\n# c"
    result = parse_blocklist(payload)
    assert result.domains == {"a.example", "b.example"}
    assert result.dropped == 2


def test_extract_title_uses_last_token_of_first_title_line():
    payload = "# Title: ignored title: Real Title\n! Title: second\n||x.com^"
    assert extract_title(payload) == "real title"


def test_extract_title_ignores_non_comment_lines():
    assert extract_title("title: not a comment\n||x.com^") is None


def test_first_content_line_skips_blanks():
    assert first_content_line("\n\n  ||x.com^  \n") == "||x.com^"
    assert first_content_line("   \n") is None


def test_is_valid_source_samples():
    assert is_valid_source("just text\nno rules here") is False
    assert is_valid_source("||x.com^") is True


def test_is_valid_source_accepts_options_and_exceptions():
    assert is_valid_source("! header\n@@||x.com^$important") is True
    assert is_valid_source("! header\n  |x.com^$important  ") is True
    assert is_valid_source("! header\n||x.com^ with spaces") is False


def test_is_valid_source_rejects_hosts_only_lists():
    assert is_valid_source("0.0.0.0 ads.example.com") is False
