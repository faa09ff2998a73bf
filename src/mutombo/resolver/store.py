from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from dataclasses import dataclass, field
from typing import List, Optional

from ..errors import PersistenceError

logger = logging.getLogger(__name__)


@dataclass
class CacheRow:
    """Brief: One resolver cache entry.

    Inputs:
      - id: sqlite rowid.
      - domain: Lowercase domain key.
      - ipv4: IPv4 address strings in trace order.
      - ipv6: IPv6 address strings in trace order.
      - hit_count: Successful lookups since insert or last repair.
    """

    id: int
    domain: str
    ipv4: List[str] = field(default_factory=list)
    ipv6: List[str] = field(default_factory=list)
    hit_count: int = 0

    @property
    def empty(self) -> bool:
        return not self.ipv4 and not self.ipv6


class ResolverStore:
    """SQLite-backed table of domain -> address lists with hit counters.

    Brief:
      A small, thread-safe row store used by ResolverCache. Address lists are
      stored as JSON text. Rows are keyed by domain (UNIQUE) so concurrent
      inserts for the same domain converge on one row.

    Inputs (constructor):
      - db_path: Path to sqlite3 DB file. Use ':memory:' for in-memory.
      - journal_mode: SQLite journal mode string (default 'WAL'). Best-effort.
      - create_dir: When True, create parent directory for db_path if needed.

    Outputs:
      - ResolverStore instance.

    Notes:
      - All DB operations are synchronized with an RLock so the store can be
        driven from executor threads.
      - sqlite errors are re-raised as PersistenceError.

    Example:
      >>> store = ResolverStore(":memory:")
      >>> store.insert("example.com", ["93.184.215.14"], [])
      >>> store.get("example.com").hit_count
      1
    """

    def __init__(
        self,
        db_path: str,
        *,
        journal_mode: str = "WAL",
        create_dir: bool = True,
    ) -> None:
        self.db_path = str(db_path)
        self.journal_mode = str(journal_mode or "WAL")
        self.create_dir = bool(create_dir)
        self._lock = threading.RLock()
        self._conn = self._init_connection()

    def _init_connection(self) -> sqlite3.Connection:
        """Brief: Create sqlite connection and initialize schema.

        Inputs:
          - None.

        Outputs:
          - sqlite3.Connection: Open sqlite connection with schema ensured.
        """

        db_path = self.db_path
        if db_path != ":memory:":
            db_path = os.path.abspath(os.path.expanduser(db_path))
            self.db_path = db_path

            if self.create_dir:
                dir_path = os.path.dirname(db_path)
                if dir_path:
                    os.makedirs(dir_path, exist_ok=True)

        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        try:
            conn.execute(f"PRAGMA journal_mode={self.journal_mode}")
        except sqlite3.DatabaseError:
            # Best-effort: some environments restrict PRAGMAs.
            pass

        conn.execute(
            "CREATE TABLE IF NOT EXISTS domains ("
            "id INTEGER PRIMARY KEY, "
            "domain TEXT NOT NULL UNIQUE, "
            "ipv4_list TEXT NOT NULL, "
            "ipv6_list TEXT NOT NULL, "
            "count INTEGER NOT NULL DEFAULT 0"
            ")"
        )
        conn.commit()
        return conn

    @staticmethod
    def _decode_list(text: Optional[str]) -> List[str]:
        try:
            value = json.loads(text or "[]")
        except (TypeError, ValueError):
            return []
        if not isinstance(value, list):
            return []
        return [str(v) for v in value]

    def get(self, domain: str) -> Optional[CacheRow]:
        """Brief: Fetch the row for ``domain`` or None."""

        with self._lock:
            try:
                cur = self._conn.execute(
                    "SELECT id, domain, ipv4_list, ipv6_list, count FROM domains WHERE domain=?",
                    (domain,),
                )
                row = cur.fetchone()
            except sqlite3.Error as exc:
                raise PersistenceError(f"Cache read failed for {domain}: {exc}") from exc
        if not row:
            return None
        row_id, row_domain, v4, v6, count = row
        return CacheRow(
            id=int(row_id),
            domain=str(row_domain),
            ipv4=self._decode_list(v4),
            ipv6=self._decode_list(v6),
            hit_count=int(count or 0),
        )

    def _write(self, sql: str, params: tuple) -> None:
        with self._lock:
            try:
                self._conn.execute(sql, params)
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise PersistenceError(f"Cache write failed: {exc}") from exc

    def increment_hits(self, row_id: int) -> None:
        self._write("UPDATE domains SET count = count + 1 WHERE id=?", (int(row_id),))

    def insert(self, domain: str, ipv4: List[str], ipv6: List[str]) -> None:
        """Brief: Insert a freshly resolved row with one hit.

        A row written concurrently for the same domain is updated instead and
        its counter incremented, so racing misses converge on one row.
        """

        self._write(
            "INSERT INTO domains (domain, ipv4_list, ipv6_list, count) VALUES (?, ?, ?, 1) "
            "ON CONFLICT(domain) DO UPDATE SET "
            "ipv4_list=excluded.ipv4_list, ipv6_list=excluded.ipv6_list, count=count + 1",
            (domain, json.dumps(list(ipv4)), json.dumps(list(ipv6))),
        )

    def repair(self, row_id: int, ipv4: List[str], ipv6: List[str]) -> None:
        """Brief: Fill an empty row in place; the repairing lookup counts as its first hit."""

        self._write(
            "UPDATE domains SET ipv4_list=?, ipv6_list=?, count=1 WHERE id=?",
            (json.dumps(list(ipv4)), json.dumps(list(ipv6)), int(row_id)),
        )

    def reset_counts(self) -> None:
        self._write("UPDATE domains SET count=0", ())

    def count_rows(self) -> int:
        with self._lock:
            try:
                row = self._conn.execute("SELECT COUNT(*) FROM domains").fetchone()
            except sqlite3.Error as exc:
                raise PersistenceError(f"Cache read failed: {exc}") from exc
        return int(row[0]) if row and row[0] is not None else 0

    def close(self) -> None:
        with self._lock:
            try:
                self._conn.close()
            except sqlite3.Error:  # pragma: no cover - best effort on shutdown
                logger.debug("ResolverStore close failed", exc_info=True)
