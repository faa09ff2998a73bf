"""
Brief: Tests for mutombo.resolver.trace (dig output parsing and subprocess runner).

Inputs:
  - None

Outputs:
  - None
"""

import asyncio
import os
import stat
import sys

import pytest

from mutombo.errors import ResolutionError
from mutombo.resolver.trace import DigTraceResolver, parse_trace_output

DIG_OUTPUT = """
; <<>> DiG 9.18.18 <<>> +trace example.com
;; global options: +cmd
.			518400	IN	NS	a.root-servers.net.
;; Received 239 bytes from 192.168.1.1#53(192.168.1.1) in 4 ms

com.			172800	IN	NS	a.gtld-servers.net.
;; Received 1170 bytes from 199.7.83.42#53(l.root-servers.net) in 20 ms

example.com.		300	IN	A	93.184.215.14
example.com.		300	IN	AAAA	2606:2800:21f:cb07:6820:80da:af6b:8b2c
;; Received 56 bytes from 199.43.135.53#53(a.iana-servers.net) in 16 ms
"""

posix_only = pytest.mark.skipif(sys.platform.startswith("win"), reason="needs a POSIX shell")


def _fake_dig(tmp_path, body: str) -> str:
    script = tmp_path / "fake-dig"
    script.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(script)


def test_parse_trace_output_skips_metadata_lines():
    """
    Brief: Addresses in ';;' lines (the servers queried) are ignored.

    Inputs:
      - None

    Outputs:
      - None: Asserts only answer records are collected
    """
    result = parse_trace_output(DIG_OUTPUT)
    assert result.ipv4 == ["93.184.215.14"]
    assert result.ipv6 == ["2606:2800:21f:cb07:6820:80da:af6b:8b2c"]
    assert not result.empty


def test_parse_trace_output_rejects_invalid_literals():
    result = parse_trace_output("bogus.example. 300 IN A 999.1.2.3\n")
    assert result.empty


def test_parse_trace_output_prefers_ipv4_per_line():
    result = parse_trace_output("x 300 IN TXT 2001:db8::5 10.0.0.1\n")
    assert result.ipv4 == ["10.0.0.1"]
    assert result.ipv6 == []


@posix_only
def test_dig_trace_resolver_parses_subprocess_stdout(tmp_path):
    command = _fake_dig(tmp_path, 'echo "$2. 300 IN A 1.2.3.4"')
    result = asyncio.run(DigTraceResolver(command=command).trace("example.com"))
    assert result.ipv4 == ["1.2.3.4"]


@posix_only
def test_dig_trace_resolver_nonzero_exit_raises(tmp_path):
    command = _fake_dig(tmp_path, 'echo "no servers" >&2; exit 9')
    with pytest.raises(ResolutionError) as excinfo:
        asyncio.run(DigTraceResolver(command=command).trace("example.com"))
    assert "no servers" in str(excinfo.value)


@posix_only
def test_dig_trace_resolver_times_out(tmp_path):
    command = _fake_dig(tmp_path, "exec sleep 5")
    resolver = DigTraceResolver(command=command, timeout_seconds=0.2)
    with pytest.raises(ResolutionError):
        asyncio.run(resolver.trace("example.com"))


def test_dig_trace_resolver_missing_binary(tmp_path):
    missing = os.path.join(str(tmp_path), "no-such-dig")
    with pytest.raises(ResolutionError):
        asyncio.run(DigTraceResolver(command=missing).trace("example.com"))


def test_dig_trace_resolver_requires_domain():
    with pytest.raises(ResolutionError):
        asyncio.run(DigTraceResolver().trace(""))
