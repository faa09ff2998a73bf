"""
Brief: Global pytest configuration: src/ on sys.path, shared fakes and a
per-test 10s timeout.

Inputs:
  - None

Outputs:
  - None
"""

import os
import signal
import sys
from typing import Dict, List, Optional

import pytest

# Ensure 'src' is on sys.path so 'mutombo' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from mutombo.errors import FetchError, ResolutionError  # noqa: E402
from mutombo.resolver.trace import TraceResult  # noqa: E402

AD_LIST = "! Title: Test List\n||ads.example.com^\n||track.example.com^\n# comment"
HOSTS_LIST = "# hosts\n0.0.0.0 86apple.com\n0.0.0.0 Tracker.Example.net\n"


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


# Install handler if supported on this platform
if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


class FakeFetcher:
    """Brief: Async url -> text fetcher backed by a dict; unknown URLs raise FetchError."""

    def __init__(self, payloads: Optional[Dict[str, str]] = None) -> None:
        self.payloads: Dict[str, str] = dict(payloads or {})
        self.calls: List[str] = []

    async def __call__(self, url: str) -> str:
        self.calls.append(url)
        if url not in self.payloads:
            raise FetchError(f"Cannot fetch {url}: 404")
        return self.payloads[url]


class FakeResolver:
    """Brief: Resolver returning canned TraceResults and counting trace() calls."""

    def __init__(self, answers: Optional[Dict[str, TraceResult]] = None) -> None:
        self.answers: Dict[str, TraceResult] = dict(answers or {})
        self.calls: List[str] = []

    async def trace(self, domain: str) -> TraceResult:
        self.calls.append(domain)
        if domain not in self.answers:
            raise ResolutionError(f"Cannot resolve domain: {domain}")
        answer = self.answers[domain]
        return TraceResult(ipv4=list(answer.ipv4), ipv6=list(answer.ipv6))


@pytest.fixture
def fake_fetcher():
    return FakeFetcher(
        {
            "https://lists.example/ads.txt": AD_LIST,
            "https://lists.example/hosts.txt": HOSTS_LIST,
        }
    )


@pytest.fixture
def fake_resolver():
    return FakeResolver(
        {
            "example.com": TraceResult(ipv4=["93.184.215.14"], ipv6=["2606:2800:21f:cb07:6820:80da:af6b:8b2c"]),
            "v6only.example": TraceResult(ipv4=[], ipv6=["2001:db8::1"]),
            "empty.example": TraceResult(),
        }
    )


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        # Fallback: no-op on platforms without SIGALRM
        yield
