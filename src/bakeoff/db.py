# Copyright (c) Syntropy Systems
"""SQLite key-value store with WAL mode and per-entry expiry."""

import json
import sqlite3
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

# SQL schema for the bakeoff store
SCHEMA = """
-- Single key-value table; every record the orchestrator keeps lives here
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,       -- JSON
    updated_at TEXT NOT NULL,
    expires_at REAL            -- epoch seconds, NULL = never
);

CREATE INDEX IF NOT EXISTS idx_kv_expires ON kv(expires_at);
"""


class CorruptRecordError(ValueError):
    """A stored value could not be decoded."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Corrupt record at {key!r}: {reason}")
        self.key = key


def get_connection(db_path: Path) -> sqlite3.Connection:
    """
    Get a database connection with proper settings for concurrent access.

    - isolation_level=None for explicit transaction control
    - WAL mode for concurrent readers/writers
    - busy_timeout to wait for locks instead of failing immediately
    - Row factory for dict-like access
    - check_same_thread=False so FastAPI's threadpool can close it
    """
    conn = sqlite3.connect(
        str(db_path), timeout=5.0, isolation_level=None, check_same_thread=False
    )
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Path) -> None:
    """Initialize the database with the schema."""
    conn = get_connection(db_path)
    try:
        conn.executescript(SCHEMA)
    finally:
        conn.close()


def utcnow() -> str:
    """Get current UTC time as ISO format string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def now_ms() -> int:
    """Get current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


# --- Key-value operations ---

def kv_get(conn: sqlite3.Connection, key: str) -> Optional[Any]:
    """
    Read and decode the JSON value stored under key.

    Returns None when the key is absent or expired.
    Raises CorruptRecordError if the stored text is not valid JSON.
    """
    row = conn.execute(
        """
        SELECT value FROM kv
        WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)
        """,
        (key, time.time()),
    ).fetchone()

    if row is None:
        return None

    try:
        return json.loads(row["value"])
    except json.JSONDecodeError as e:
        raise CorruptRecordError(key, str(e)) from e


def kv_put(
    conn: sqlite3.Connection,
    key: str,
    value: Any,
    ttl_seconds: Optional[int] = None,
) -> None:
    """Write value under key as JSON, replacing any previous value."""
    expires_at = time.time() + ttl_seconds if ttl_seconds else None
    conn.execute(
        """
        INSERT INTO kv (key, value, updated_at, expires_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET
            value = excluded.value,
            updated_at = excluded.updated_at,
            expires_at = excluded.expires_at
        """,
        (key, json.dumps(value), utcnow(), expires_at),
    )


def kv_delete(conn: sqlite3.Connection, key: str) -> bool:
    """Delete key. Returns True if a row was removed."""
    cursor = conn.execute("DELETE FROM kv WHERE key = ?", (key,))
    return cursor.rowcount > 0


def kv_keys(conn: sqlite3.Connection, prefix: str = "") -> list[str]:
    """List live keys starting with prefix, in key order."""
    rows = conn.execute(
        """
        SELECT key FROM kv
        WHERE substr(key, 1, ?) = ?
          AND (expires_at IS NULL OR expires_at > ?)
        ORDER BY key
        """,
        (len(prefix), prefix, time.time()),
    ).fetchall()
    return [row["key"] for row in rows]


def purge_expired(conn: sqlite3.Connection) -> int:
    """Delete expired entries. Returns count of removed rows."""
    cursor = conn.execute(
        "DELETE FROM kv WHERE expires_at IS NOT NULL AND expires_at <= ?",
        (time.time(),),
    )
    return cursor.rowcount
