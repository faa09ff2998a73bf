from __future__ import annotations

import asyncio
import logging
import os
from typing import Awaitable, Callable
from urllib.parse import urlparse

import requests

from ..errors import FetchError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 20

AsyncFetcher = Callable[[str], Awaitable[str]]


def fetch_text(url: str, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> str:
    """Brief: Retrieve a blocklist as text.

    Inputs:
      - url: ``http(s)://`` URL, ``file://`` URL or plain local path.
      - timeout: Request timeout in seconds for remote URLs.

    Outputs:
      - str: Response body.

    Raises:
      - FetchError: On network errors, non-2xx responses or unreadable files.

    Example:
      >>> fetch_text("https://adguardteam.github.io/HostlistsRegistry/assets/filter_1.txt")  # doctest: +SKIP
    """

    parsed = urlparse(url)
    if parsed.scheme in ("http", "https"):
        logger.debug("Fetching list %s", url)
        try:
            r = requests.get(url, timeout=timeout)
            r.raise_for_status()
        except requests.RequestException as exc:
            raise FetchError(f"Cannot fetch {url}: {exc}") from exc
        return r.text

    path = parsed.path if parsed.scheme == "file" else url
    path = os.path.abspath(os.path.expanduser(path))
    try:
        with open(path, "r", encoding="utf-8", errors="ignore") as fh:
            return fh.read()
    except OSError as exc:
        raise FetchError(f"Cannot read {url}: {exc}") from exc


async def fetch_text_async(url: str) -> str:
    """Brief: Run fetch_text in the default executor so the loop keeps serving."""

    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, fetch_text, url)
