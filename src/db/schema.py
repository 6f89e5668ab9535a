"""SQLite Schema Definitions

Defines the ``store`` table holding one row per restaurant / place plus the
``schema_meta`` key/value table. Provides helpers to apply the schema to a
sqlite3 connection and to open a ready-to-use connection.

Design Principles:
 - Singular table names
 - Store-assigned integer identity (``store_id INTEGER PRIMARY KEY``)
 - Record rules mirrored as CHECK constraints so a bad write fails inside the
   surrounding transaction instead of being persisted
 - ``name`` is indexed but NOT unique (merge matching uses first match)
 - Timestamps stored as integer milliseconds since epoch

Only a single fixed schema version exists; there is no migration path.
"""

from __future__ import annotations
import sqlite3
from pathlib import Path

SCHEMA_VERSION = 1

# DDL statements
DDL: list[str] = [
    # Metadata table
    """
    CREATE TABLE IF NOT EXISTS schema_meta (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );
    """.strip(),
    # Store
    """
    CREATE TABLE IF NOT EXISTS store (
        store_id INTEGER PRIMARY KEY,
        name TEXT NOT NULL CHECK (length(trim(name)) > 0),
        address TEXT NOT NULL DEFAULT '',
        opening_hours TEXT NOT NULL DEFAULT '',
        delivery_threshold NUMERIC CHECK (delivery_threshold IS NULL OR delivery_threshold >= 0),
        notes TEXT NOT NULL DEFAULT '',
        menu_image TEXT NOT NULL DEFAULT '',
        is_favorite INTEGER NOT NULL DEFAULT 0,
        updated_at INTEGER NOT NULL
    );
    """.strip(),
    # Indexes
    "CREATE INDEX IF NOT EXISTS idx_store_name ON store(name)",
    "CREATE INDEX IF NOT EXISTS idx_store_is_favorite ON store(is_favorite)",
    "CREATE INDEX IF NOT EXISTS idx_store_updated_at ON store(updated_at)",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    for stmt in DDL:
        cur.execute(stmt)
    # Set schema version
    cur.execute(
        "INSERT OR REPLACE INTO schema_meta(key, value) VALUES ('schema_version', ?)",
        (str(SCHEMA_VERSION),),
    )
    conn.commit()


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    cur = conn.cursor()
    cur.execute("SELECT name FROM sqlite_master WHERE type='table'")
    return sorted(r[0] for r in cur.fetchall())


def get_schema_version(conn: sqlite3.Connection) -> int | None:
    try:
        row = conn.execute(
            "SELECT value FROM schema_meta WHERE key='schema_version'"
        ).fetchone()
    except sqlite3.OperationalError:
        return None
    return int(row[0]) if row else None


def open_database(path: str | Path) -> sqlite3.Connection:
    """Open (creating if needed) the store database and apply the schema.

    ``":memory:"`` is accepted for tests and throwaway sessions.
    """
    if str(path) != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    apply_schema(conn)
    return conn
