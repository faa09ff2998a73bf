"""Authoritative (recursive) resolution capability.

Brief:
  The resolver cache never talks to name servers itself; it asks a Resolver
  for the addresses of a domain. DigTraceResolver is the production
  implementation: it runs ``dig +trace <domain>`` as a subprocess without
  blocking the event loop and scrapes address literals from its output.
  Tests substitute any object with an async ``trace(domain)`` method.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import re
from dataclasses import dataclass, field
from typing import List, Protocol

from ..errors import ResolutionError

logger = logging.getLogger(__name__)

_IPV4_PATTERN = re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b")
_IPV6_PATTERN = re.compile(r"\b(?:[a-fA-F0-9]{1,4}:){1,7}[a-fA-F0-9]{1,4}\b")


@dataclass
class TraceResult:
    """Brief: Addresses found for one domain, in discovery order."""

    ipv4: List[str] = field(default_factory=list)
    ipv6: List[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.ipv4 and not self.ipv6


class Resolver(Protocol):
    async def trace(self, domain: str) -> TraceResult:
        """Return the addresses of ``domain``; may raise ResolutionError."""
        ...


def _first_valid(pattern: re.Pattern, line: str) -> str | None:
    for match in pattern.finditer(line):
        try:
            return str(ipaddress.ip_address(match.group(0)))
        except ValueError:
            continue
    return None


def parse_trace_output(output: str) -> TraceResult:
    """Brief: Scrape address literals from ``dig +trace`` output.

    Inputs:
      - output: Decoded stdout.

    Outputs:
      - TraceResult: For each non-metadata line (no ``;;``), the first valid
        IPv4 literal, or failing that the first valid IPv6 literal.

    Example:
      >>> out = ";; Received 239 bytes from 192.5.5.241#53\\nexample.com. 300 IN A 93.184.215.14\\n"
      >>> parse_trace_output(out).ipv4
      ['93.184.215.14']
    """

    result = TraceResult()
    for line in output.splitlines():
        if ";;" in line:
            continue
        v4 = _first_valid(_IPV4_PATTERN, line)
        if v4 is not None:
            result.ipv4.append(v4)
            continue
        v6 = _first_valid(_IPV6_PATTERN, line)
        if v6 is not None:
            result.ipv6.append(v6)
    return result


class DigTraceResolver:
    """Brief: Resolver backed by the ``dig +trace`` utility.

    Inputs (constructor):
      - command: Executable to run (default 'dig').
      - timeout_seconds: Kill the subprocess after this many seconds.

    Outputs:
      - DigTraceResolver instance.

    Example:
      >>> import asyncio
      >>> asyncio.run(DigTraceResolver().trace("example.com"))  # doctest: +SKIP
      TraceResult(ipv4=['93.184.215.14'], ipv6=[])
    """

    def __init__(self, command: str = "dig", timeout_seconds: float = 10.0) -> None:
        self.command = command
        self.timeout_seconds = float(timeout_seconds)

    async def trace(self, domain: str) -> TraceResult:
        if not domain:
            raise ResolutionError("No domain defined!")
        try:
            proc = await asyncio.create_subprocess_exec(
                self.command,
                "+trace",
                domain,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ResolutionError(f"Cannot run {self.command}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise ResolutionError(
                f"Trace for {domain} timed out after {self.timeout_seconds:.1f}s"
            ) from exc

        if proc.returncode != 0:
            raise ResolutionError(
                f"Trace for {domain} failed ({proc.returncode}): "
                f"{stderr.decode(errors='replace').strip()}"
            )
        result = parse_trace_output(stdout.decode(errors="replace"))
        logger.debug("Trace for %s: %s", domain, result)
        return result
