"""SQLite persistence for the shared marker service.

The ``markers`` table's primary key is the atomicity guarantee: two
concurrent ``INSERT ... ON CONFLICT DO NOTHING`` statements for the same key
cannot both insert, so exactly one caller observes ``created``.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

SCHEMA = """
CREATE TABLE IF NOT EXISTS markers (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    created_at TEXT NOT NULL
)
"""


def configure_connection(connection: sqlite3.Connection) -> sqlite3.Connection:
    """Apply connection-level pragmas.

    Notes:
        - ``busy_timeout`` absorbs short lock waits between concurrent
          writers instead of failing immediately.
        - WAL lets readers proceed while a writer holds the lock.
    """
    connection.execute("PRAGMA busy_timeout = 5000")
    connection.execute("PRAGMA journal_mode = WAL")
    return connection


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Create and configure a new SQLite connection."""
    return configure_connection(sqlite3.connect(str(db_path)))


@contextmanager
def connection_scope(db_path: Path, *, write: bool = False) -> Iterator[sqlite3.Connection]:
    """Yield a configured connection with guaranteed cleanup semantics.

    Args:
        db_path: Database file.
        write: When True, commit on success and rollback on exceptions.
    """
    connection = get_connection(db_path)
    try:
        yield connection
        if write:
            connection.commit()
    except Exception:
        if write:
            try:
                connection.rollback()
            except sqlite3.Error:
                # Preserve the original exception while best-effort rolling back.
                pass
        raise
    finally:
        connection.close()


def init_db(db_path: Path) -> None:
    """Create the database file and schema if absent."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with connection_scope(db_path, write=True) as conn:
        conn.execute(SCHEMA)


def get_marker(db_path: Path, key: str) -> str | None:
    """Return the marker value for ``key``, or None if absent."""
    with connection_scope(db_path) as conn:
        row = conn.execute("SELECT value FROM markers WHERE key = ? LIMIT 1", (key,)).fetchone()
    return row[0] if row else None


def create_marker(db_path: Path, key: str, value: str) -> bool:
    """Insert the marker unless it exists. Returns True if this call inserted it."""
    created_at = datetime.now(UTC).isoformat()
    with connection_scope(db_path, write=True) as conn:
        cursor = conn.execute(
            """
            INSERT INTO markers (key, value, created_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO NOTHING
            """,
            (key, value, created_at),
        )
        return cursor.rowcount == 1


def count_markers(db_path: Path) -> int:
    with connection_scope(db_path) as conn:
        return int(conn.execute("SELECT COUNT(*) FROM markers").fetchone()[0])
