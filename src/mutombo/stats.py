"""
Request statistics for the mutombo gateway.

This module records every block/resolve decision made by the pipeline into
per-kind buckets (running totals, per-domain counters and a minute-keyed
timeseries) and periodically derives top-N views from them. Recording is
synchronous and O(1) so it can sit on the hot request path; the sorting
work happens in refresh(), driven by a background task.
"""

from __future__ import annotations

import importlib.metadata as importlib_metadata
import json
import logging
import socket
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .logging_config import AUDIT_TIME_FORMAT

logger = logging.getLogger(__name__)


try:
    MUTOMBO_VERSION = importlib_metadata.version("mutombo")
except importlib_metadata.PackageNotFoundError:  # pragma: no cover - source checkout
    MUTOMBO_VERSION = "unknown"


KINDS = ("resolutions", "blocks")


def timestamp(now: Optional[float] = None) -> str:
    """
    Coarse (minute granularity) local timestamp used as timeseries key.

    Inputs:
        now: Optional unix time; defaults to the current time.

    Outputs:
        String formatted as ``mm/dd/yy HH:MM``.

    Example:
        >>> len(timestamp())
        14
    """
    moment = datetime.fromtimestamp(time.time() if now is None else now)
    return moment.strftime(AUDIT_TIME_FORMAT)


def parse_timestamp(value: str) -> int:
    """
    Convert a ``mm/dd/yy HH:MM`` key back to unix seconds (local time).

    Raises ValueError when the string does not match the format.
    """
    return int(datetime.strptime(value, AUDIT_TIME_FORMAT).timestamp())


@dataclass
class StatsBucket:
    """
    Aggregate for one event kind.

    Inputs (constructor):
        total_events: Number of recorded events.
        by_domain: Domain -> event count.
        timeseries: Minute key -> events recorded in that minute.
    """

    total_events: int = 0
    by_domain: Dict[str, int] = field(default_factory=dict)
    timeseries: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)


@dataclass
class StatsSnapshot:
    """
    Point-in-time copy of the aggregator state for a stats endpoint.

    All collections are copies so the snapshot can be serialized while the
    aggregator keeps recording.
    """

    created_at: float
    totals: Dict[str, int]
    by_domain: Dict[str, Dict[str, int]]
    top_queried_domains: List[Dict[str, Any]]
    top_blocked_domains: List[Dict[str, Any]]
    timeseries: Dict[str, List[Dict[str, int]]] = field(default_factory=dict)


class StatsAggregator:
    """
    Per-kind event counters with periodically refreshed top-N views.

    Inputs (constructor):
        top_n: Number of entries kept in each published top view (default 50).

    Outputs:
        StatsAggregator instance.

    Example:
        >>> stats = StatsAggregator(top_n=5)
        >>> stats.record_event("ads.example.com", "blocks")
        >>> stats.refresh()
        >>> stats.get_top_domains("blocks")
        [{'domain': 'ads.example.com', 'count': 1, 'percent': 100.0}]
    """

    def __init__(self, top_n: int = 50) -> None:
        self.top_n = max(1, int(top_n))
        self.buckets: Dict[str, StatsBucket] = {kind: StatsBucket() for kind in KINDS}
        self._top: Dict[str, List[Dict[str, Any]]] = {kind: [] for kind in KINDS}
        self.last_refresh: Optional[float] = None

    def _bucket(self, kind: str) -> StatsBucket:
        bucket = self.buckets.get(kind)
        if bucket is None:
            raise ValueError(f"Unknown stats kind {kind!r}; expected one of {KINDS}")
        return bucket

    def record_event(
        self,
        domain: str,
        kind: str,
        meta: Optional[Dict[str, Any]] = None,
        client: str = "n/a",
        agent: str = "n/a",
    ) -> None:
        """
        Record one pipeline decision.

        Inputs:
            domain: Normalized domain the decision was about.
            kind: "resolutions" or "blocks".
            meta: Optional mapping carrying "client"/"agent"; overrides the
                keyword values when present.
            client: Requesting client identifier.
            agent: Requesting user agent.

        Outputs:
            None

        Raises ValueError for an unknown kind.
        """
        bucket = self._bucket(kind)
        if meta:
            client = str(meta.get("client", client))
            agent = str(meta.get("agent", agent))

        now = time.time()
        key = timestamp(now)
        bucket.timeseries.setdefault(key, []).append(
            {"domain": domain, "client": client, "agent": agent, "time": int(now)}
        )
        bucket.by_domain[domain] = bucket.by_domain.get(domain, 0) + 1
        bucket.total_events += 1

    def _compute_top(self, bucket: StatsBucket) -> List[Dict[str, Any]]:
        total = bucket.total_events
        top: List[Dict[str, Any]] = []
        for domain, count in list(bucket.by_domain.items())[: self.top_n]:
            percent = round(100.0 * count / total, 1) if total else 0.0
            top.append({"domain": domain, "count": count, "percent": percent})
        return top

    def refresh(self) -> None:
        """
        Re-sort every bucket by count and publish its top-N view.

        ``by_domain`` is rebuilt in descending count order and both it and the
        view are swapped in whole, so readers never observe a partially built
        mapping or list.
        """
        for kind, bucket in self.buckets.items():
            bucket.by_domain = dict(
                sorted(bucket.by_domain.items(), key=lambda x: x[1], reverse=True)
            )
            self._top[kind] = self._compute_top(bucket)
        self.last_refresh = time.time()
        logger.debug(
            "Stats refreshed: %s",
            {kind: b.total_events for kind, b in self.buckets.items()},
        )

    def get_top_domains(self, kind: str) -> List[Dict[str, Any]]:
        """
        Return the last published top view for ``kind``.

        Outputs:
            List of {"domain", "count", "percent"} dicts, count descending.
        """
        self._bucket(kind)
        return [dict(entry) for entry in self._top[kind]]

    def snapshot(self) -> StatsSnapshot:
        return StatsSnapshot(
            created_at=time.time(),
            totals={kind: b.total_events for kind, b in self.buckets.items()},
            by_domain={kind: dict(b.by_domain) for kind, b in self.buckets.items()},
            top_queried_domains=self.get_top_domains("resolutions"),
            top_blocked_domains=self.get_top_domains("blocks"),
            timeseries={
                kind: [
                    {"time": parse_timestamp(key), "count": len(events)}
                    for key, events in b.timeseries.items()
                ]
                for kind, b in self.buckets.items()
            },
        )


def format_snapshot_json(snapshot: StatsSnapshot) -> str:
    """
    Format a stats snapshot as single-line JSON with meta information.

    Inputs:
        snapshot: StatsSnapshot to serialize.

    Outputs:
        JSON string (single line, no trailing newline).

    Example:
        >>> stats = StatsAggregator()
        >>> stats.record_event("example.com", "resolutions")
        >>> "totals" in format_snapshot_json(stats.snapshot())
        True
    """
    ts = datetime.fromtimestamp(snapshot.created_at, tz=timezone.utc).isoformat()

    try:
        hostname = socket.gethostname()
    except OSError:  # pragma: no cover - environment specific
        hostname = "unknown-host"

    output: Dict[str, Any] = {
        "ts": ts,
        "totals": snapshot.totals,
        "meta": {"timestamp": ts, "hostname": hostname, "version": MUTOMBO_VERSION},
    }
    if any(snapshot.by_domain.values()):
        output["by_domain"] = snapshot.by_domain
    if snapshot.top_queried_domains:
        output["top_queried_domains"] = snapshot.top_queried_domains
    if snapshot.top_blocked_domains:
        output["top_blocked_domains"] = snapshot.top_blocked_domains
    if any(snapshot.timeseries.values()):
        output["timeseries"] = snapshot.timeseries

    return json.dumps(output, separators=(",", ":"))
