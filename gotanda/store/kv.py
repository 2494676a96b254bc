"""
store/kv.py

Ordered key-value store over SQLite.

Contract:
- Keys are strings, ordered by SQLite BINARY collation (UTF-8 byte order).
- Values are JSON documents (serialized on write, decoded on read). A stored value that is
  not valid JSON raises StoreDecodeError; `has()` checks presence without decoding.
- One connection per call. Reads see a per-call snapshot and take no application lock.
- Multi-key writes go through Batch.write(), which commits in a single transaction.
- sqlite3.Error is never swallowed here; callers decide what a store failure means.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple


class StoreDecodeError(ValueError):
    """A stored value could not be decoded as JSON."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"value under {key!r} is not valid JSON: {reason}")
        self.key = key


def prefix_upper_bound(prefix: str) -> str:
    """
    Exclusive upper bound for keys starting with `prefix`.
    Example: "ro/creator/" -> "ro/creator0"
    """
    if not prefix:
        raise ValueError("prefix must be non-empty")
    return prefix[:-1] + chr(ord(prefix[-1]) + 1)


class Batch:
    """
    Chained put/delete builder. Nothing touches the database until write().
    """

    def __init__(self, store: "KVStore") -> None:
        self._store = store
        self._ops: List[Tuple[str, str, Optional[str]]] = []
        self._written = False

    def put(self, key: str, value: Any) -> "Batch":
        self._ops.append(("put", key, json.dumps(value, ensure_ascii=False)))
        return self

    def delete(self, key: str) -> "Batch":
        self._ops.append(("del", key, None))
        return self

    def __len__(self) -> int:
        return len(self._ops)

    def write(self) -> None:
        if self._written:
            raise RuntimeError("batch already written")
        self._written = True
        if not self._ops:
            return
        self._store._apply(self._ops)


class KVStore:
    def __init__(self, path: str) -> None:
        # File-backed only: every call opens its own connection, so ":memory:" would
        # hand each call a fresh empty database.
        self.path = str(path)
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            ensure_schema(conn)

    def __repr__(self) -> str:
        return f"KVStore({self.path!r})"

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path)
        try:
            yield conn
        finally:
            conn.close()

    # ----------------------------
    # Point operations
    # ----------------------------

    def get(self, key: str) -> Optional[Any]:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row[0])
        except ValueError as exc:
            raise StoreDecodeError(key, str(exc)) from exc

    def has(self, key: str) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM kv WHERE key = ?", (key,)).fetchone()
        return row is not None

    def put(self, key: str, value: Any) -> None:
        self.batch().put(key, value).write()

    def delete(self, key: str) -> None:
        self.batch().delete(key).write()

    def batch(self) -> Batch:
        return Batch(self)

    def _apply(self, ops: List[Tuple[str, str, Optional[str]]]) -> None:
        with self._connect() as conn:
            # `with conn` commits on success and rolls back on any exception.
            with conn:
                for op, key, value in ops:
                    if op == "put":
                        conn.execute(
                            "INSERT INTO kv (key, value) VALUES (?, ?) "
                            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                            (key, value),
                        )
                    else:
                        conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    # ----------------------------
    # Range scans
    # ----------------------------

    def scan_keys(self, gte: str, lt: str) -> List[str]:
        """Keys k with gte <= k < lt, ascending."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT key FROM kv WHERE key >= ? AND key < ? ORDER BY key ASC",
                (gte, lt),
            ).fetchall()
        return [r[0] for r in rows]

    def scan_prefix(self, prefix: str) -> List[str]:
        return self.scan_keys(prefix, prefix_upper_bound(prefix))

    # ----------------------------
    # Health
    # ----------------------------

    def count(self) -> int:
        with self._connect() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM kv").fetchone()[0])

    def ping(self) -> None:
        with self._connect() as conn:
            conn.execute("SELECT 1")


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Create the kv table if missing (non-destructive)."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS kv (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        ) WITHOUT ROWID
        """
    )
    conn.commit()
