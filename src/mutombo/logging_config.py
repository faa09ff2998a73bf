from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "crit": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

# Minute-granularity stamp shared by the audit log and the stats timeseries.
AUDIT_TIME_FORMAT = "%m/%d/%y %H:%M"


class BracketLevelFormatter(logging.Formatter):
    """Custom formatter that adds bracketed lowercase level tags and UTC timestamps."""

    _TAGS = {
        logging.DEBUG: "[debug]",
        logging.INFO: "[info]",
        logging.WARNING: "[warn]",
        logging.ERROR: "[error]",
        logging.CRITICAL: "[crit]",
    }

    def formatTime(self, record, datefmt=None):
        """Format time as UTC ISO-8601 with Z suffix."""
        return datetime.fromtimestamp(record.created, timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%SZ"
        )

    def format(self, record):
        """Add level_tag attribute and format the record."""
        record.level_tag = self._TAGS.get(record.levelno, f"[lvl{record.levelno}]")
        return super().format(record)


def _ensure_parent_dir(path: str) -> str:
    path = os.path.abspath(os.path.expanduser(path.strip()))
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    return path


def init_logging(cfg: Optional[Dict[str, Any]]) -> None:
    """
    Initialize logging configuration based on the provided config.

    Args:
        cfg: Logging configuration dictionary with optional keys:
            - level: debug, info, warn, error, crit (default: info)
            - stderr: boolean to log to stderr (default: True)
            - file: string path to log file (optional)

    Example config:
        {
            "level": "info",
            "stderr": True,
            "file": "./logs/mutombo.log"
        }
    """
    cfg = cfg or {}

    level_str = str(cfg.get("level", "info")).lower()
    level = _LEVELS.get(level_str, logging.INFO)

    fmt = "%(asctime)s %(level_tag)s %(name)s: %(message)s"
    formatter = BracketLevelFormatter(fmt=fmt)

    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for h in list(root.handlers):
        root.removeHandler(h)

    if cfg.get("stderr", True):
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(formatter)
        root.addHandler(stderr_handler)

    file_path = cfg.get("file")
    if isinstance(file_path, str) and file_path.strip():
        path = _ensure_parent_dir(file_path)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Capture warnings to use the same logging configuration
    logging.captureWarnings(True)


class AuditLog:
    """Brief: Append-only, timestamped audit sink for pipeline decisions.

    Inputs (constructor):
      - path: File the audit lines are appended to. When None, messages are
        discarded.

    Outputs:
      - AuditLog instance exposing log() and read().

    Each line has the shape ``"<mm/dd/yy HH:MM>\\t<message>"``.

    Example:
      >>> audit = AuditLog(None)
      >>> audit.log('Resolved query "example.com"')
      >>> audit.read()
      []
    """

    def __init__(self, path: Optional[str], name: str = "mutombo.audit") -> None:
        self.path: Optional[str] = None
        self._logger = logging.getLogger(name)
        # Audit lines have their own format and must not leak into the
        # operational log.
        self._logger.propagate = False
        self._logger.setLevel(logging.INFO)
        for h in list(self._logger.handlers):
            self._logger.removeHandler(h)
            h.close()
        if isinstance(path, str) and path.strip():
            self.path = _ensure_parent_dir(path)
            handler = logging.FileHandler(self.path, mode="a", encoding="utf-8")
            handler.setFormatter(
                logging.Formatter("%(asctime)s\t%(message)s", datefmt=AUDIT_TIME_FORMAT)
            )
            self._logger.addHandler(handler)
        else:
            self._logger.addHandler(logging.NullHandler())

    def log(self, message: str) -> None:
        """Brief: Append one audit line.

        Inputs:
          - message: Free text; tabs and newlines are replaced by spaces.

        Outputs:
          - None
        """

        text = str(message).replace("\t", " ").replace("\n", " ")
        self._logger.info(text)

    def read(self, search: Optional[str] = None, limit: int = 100) -> List[Dict[str, str]]:
        """Brief: Return the newest audit entries first.

        Inputs:
          - search: Optional case-insensitive substring filter.
          - limit: Maximum number of entries returned.

        Outputs:
          - list of ``{"time": str, "log": str}`` dicts.
        """

        if not self.path or not os.path.isfile(self.path):
            return []
        for h in self._logger.handlers:
            h.flush()
        with open(self.path, "r", encoding="utf-8", errors="replace") as fh:
            lines = fh.read().splitlines()

        needle = search.lower() if search else None
        entries: List[Dict[str, str]] = []
        for line in reversed(lines):
            if len(entries) >= max(0, int(limit)):
                break
            if not line:
                continue
            if needle is not None and needle not in line.lower():
                continue
            time_part, _, message = line.partition("\t")
            entries.append({"time": time_part, "log": message})
        return entries

    def close(self) -> None:
        for h in list(self._logger.handlers):
            self._logger.removeHandler(h)
            h.close()
